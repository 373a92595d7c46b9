import asyncio
import concurrent.futures
import logging
import math
import threading

from mavsdk import System
from mavsdk.action import ActionError
from mavsdk.offboard import OffboardError, PositionNedYaw
from mavsdk.telemetry import FlightMode

from offboard_arbiter.gnc.conversions import convert_NED_ENU_in_inertial, convert_NED_ENU_yaw
from offboard_arbiter.gnc.errors import CommandRejected, TransportFailure
from offboard_arbiter.gnc.setpoint import Setpoint
from offboard_arbiter.gnc.vehicle_state import UNKNOWN_MODE, VehicleStateCache, VehicleStatus
from offboard_arbiter.transport.base import VehicleLink

SHUTDOWN_TIMEOUT = 1.0

# MAVSDK flight modes under the names MAVROS uses
FLIGHT_MODE_NAMES = {
    FlightMode.READY: "AUTO.READY",
    FlightMode.TAKEOFF: "AUTO.TAKEOFF",
    FlightMode.HOLD: "AUTO.LOITER",
    FlightMode.MISSION: "AUTO.MISSION",
    FlightMode.RETURN_TO_LAUNCH: "AUTO.RTL",
    FlightMode.LAND: "AUTO.LAND",
    FlightMode.OFFBOARD: "OFFBOARD",
    FlightMode.FOLLOW_ME: "AUTO.FOLLOW_TARGET",
    FlightMode.MANUAL: "MANUAL",
    FlightMode.ALTCTL: "ALTCTL",
    FlightMode.POSCTL: "POSCTL",
    FlightMode.ACRO: "ACRO",
    FlightMode.STABILIZED: "STABILIZED",
    FlightMode.RATTITUDE: "RATTITUDE",
}


class MavsdkLink(VehicleLink):
    '''
    Talks to PX4 through MAVSDK.

    MAVSDK is asyncio-only, so the link runs its own event loop on a
    background thread and the blocking calls hand coroutines over to it.
    Connection, armed and flight mode arrive on separate streams and are
    merged into one VehicleStatus before reaching the cache.

    MAVSDK can only switch to the modes it has an action for: OFFBOARD,
    AUTO.LOITER, AUTO.LAND, AUTO.RTL and AUTO.TAKEOFF.
    Setpoints always carry a heading; a setpoint without yaw points north.
    '''

    def __init__(self, system_address: str = "udp://:14540", drone=None):
        self.system_address = system_address
        self._drone = drone
        self._cache: VehicleStateCache | None = None
        self._status = VehicleStatus()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._runner: concurrent.futures.Future | None = None
        self._pending_setpoint: concurrent.futures.Future | None = None

        self.logger = logging.getLogger(__name__)

    def start(self, cache: VehicleStateCache) -> None:
        self._cache = cache
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="mavsdk-loop", daemon=True)
        self._thread.start()
        self._runner = asyncio.run_coroutine_threadsafe(self._run(), self._loop)
        self._runner.add_done_callback(self._on_runner_done)

    def close(self) -> None:
        if self._loop is None:
            return
        # cancel on the loop first so no task is left pending when it stops
        shutdown = asyncio.run_coroutine_threadsafe(self._shutdown(), self._loop)
        try:
            shutdown.result(SHUTDOWN_TIMEOUT)
        except concurrent.futures.TimeoutError:
            self.logger.warning("MAVSDK tasks did not finish cancelling in time")
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=SHUTDOWN_TIMEOUT)
        if not self._thread.is_alive():
            self._loop.close()
        self._loop = None

    def send_setpoint(self, setpoint: Setpoint) -> None:
        drone = self._require_drone()
        north, east, down = (float(v) for v in convert_NED_ENU_in_inertial(setpoint.position))
        yaw_deg = 0.0 if setpoint.yaw is None else math.degrees(convert_NED_ENU_yaw(setpoint.yaw))

        # newest setpoint wins over one still in flight
        if self._pending_setpoint is not None and not self._pending_setpoint.done():
            self._pending_setpoint.cancel()

        self._pending_setpoint = self._submit(
            drone.offboard.set_position_ned(PositionNedYaw(north, east, down, yaw_deg)), "setpoint")
        self._pending_setpoint.add_done_callback(self._log_setpoint_failure)

    def set_mode(self, mode: str, timeout: float) -> None:
        drone = self._require_drone()
        actions = {
            "OFFBOARD": drone.offboard.start,
            "AUTO.LOITER": drone.action.hold,
            "AUTO.LAND": drone.action.land,
            "AUTO.RTL": drone.action.return_to_launch,
            "AUTO.TAKEOFF": drone.action.takeoff,
        }
        try:
            action = actions[mode.upper()]
        except KeyError:
            raise CommandRejected(f"MAVSDK has no way to switch to {mode}")
        self._call(action(), f"set mode {mode}", timeout)

    def arm(self, value: bool, timeout: float) -> None:
        drone = self._require_drone()
        if value:
            self._call(drone.action.arm(), "arm", timeout)
        else:
            self._call(drone.action.disarm(), "disarm", timeout)

    def _submit(self, coro, label: str) -> concurrent.futures.Future:
        try:
            return asyncio.run_coroutine_threadsafe(coro, self._loop)
        except RuntimeError as e:
            coro.close()
            raise TransportFailure(f"{label}: MAVSDK event loop is gone ({e})")

    def _call(self, coro, label: str, timeout: float):
        future = self._submit(coro, label)
        try:
            future.result(timeout)
        except (OffboardError, ActionError) as e:
            raise CommandRejected(f"{label}: {e}")
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise TransportFailure(f"{label} got no answer within {timeout:.2f}s")
        except Exception as e:
            # grpc.RpcError when mavsdk_server goes away, among others
            raise TransportFailure(f"{label} failed: {type(e).__name__}: {e}") from e

    def _require_drone(self):
        if self._drone is None or self._loop is None:
            raise TransportFailure("MAVSDK link is not connected")
        return self._drone

    def _log_setpoint_failure(self, future: concurrent.futures.Future):
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.logger.warning(f"Setpoint not delivered: {error}")

    def _on_runner_done(self, future: concurrent.futures.Future):
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            return
        self.logger.error(f"MAVSDK telemetry stopped: {type(error).__name__}: {error}", exc_info=error)
        self._merge(connected=False)

    async def _shutdown(self):
        current = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks() if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._loop.shutdown_asyncgens()

    async def _run(self):
        if self._drone is None:
            drone = System()
            self.logger.info(f"Connecting MAVSDK to {self.system_address}")
            await drone.connect(system_address=self.system_address)
            self._drone = drone

        await asyncio.gather(
            self._watch_connection(),
            self._watch_armed(),
            self._watch_flight_mode(),
        )

    async def _watch_connection(self):
        async for state in self._drone.core.connection_state():
            self._merge(connected=state.is_connected)

    async def _watch_armed(self):
        async for armed in self._drone.telemetry.armed():
            self._merge(armed=armed)

    async def _watch_flight_mode(self):
        async for flight_mode in self._drone.telemetry.flight_mode():
            self._merge(mode=FLIGHT_MODE_NAMES.get(flight_mode, UNKNOWN_MODE))

    def _merge(self, **fields):
        # only ever called from the loop thread
        self._status = self._status._replace(**fields)
        self._cache.on_update(self._status)
