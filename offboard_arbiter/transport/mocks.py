import logging
import time
from typing import Callable

from offboard_arbiter.gnc.commands import Arm, SetMode
from offboard_arbiter.gnc.errors import CommandRejected, TransportFailure
from offboard_arbiter.gnc.setpoint import Setpoint
from offboard_arbiter.gnc.vehicle_state import VehicleStateCache, VehicleStatus
from offboard_arbiter.transport.base import VehicleLink

# modes PX4 lets you arm in
ARMABLE_MODES = {"MANUAL", "ALTCTL", "POSCTL", "STABILIZED", "ACRO", "OFFBOARD", "AUTO.LOITER", "AUTO.TAKEOFF", "AUTO.MISSION"}


class ManualClock:
    """
    Clock that only moves when told to.
    """
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class SimulatedShutdown:
    """
    Stand-in for threading.Event whose wait() advances a ManualClock instead of sleeping.
    Sets itself once the clock reaches `stop_at`.
    """
    def __init__(self, clock: ManualClock, stop_at: float = float('inf')):
        self.clock = clock
        self.stop_at = stop_at
        self.waits: list[float] = []
        self._set = False

    def set(self):
        self._set = True

    def is_set(self) -> bool:
        return self._set or self.clock() >= self.stop_at

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        if timeout:
            self.clock.advance(timeout)
        return self.is_set()


class MockVehicleLink(VehicleLink):
    '''
    In-process imitation of PX4 for dry runs and tests.

    Follows the rules that matter to the offboard loop: OFFBOARD is only
    accepted while setpoints are arriving within the failsafe window, arming
    is only accepted in modes PX4 allows it in, and a stale setpoint stream
    drops the vehicle out of OFFBOARD into `fallback_mode`.
    Status goes to the cache synchronously on every change.
    '''

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        initial_mode: str = "POSCTL",
        failsafe_timeout: float = 0.5,
        fallback_mode: str = "AUTO.LOITER",
        reject_modes: tuple[str, ...] = (),
        reject_arm: bool = False,
        command_delay: float = 0.0,
    ):
        self._clock = clock
        self.mode = initial_mode
        self.armed = False
        self.connected = False
        self.failsafe_timeout = failsafe_timeout
        self.fallback_mode = fallback_mode
        self.reject_modes = set(reject_modes)
        self.reject_arm = reject_arm
        # seconds a command takes; advances the clock when it is a ManualClock
        self.command_delay = command_delay

        self.setpoints: list[tuple[float, Setpoint]] = []
        self.commands: list[tuple[float, SetMode | Arm]] = []
        self._last_setpoint: float | None = None
        self._cache: VehicleStateCache | None = None

        self.logger = logging.getLogger(__name__)

    def start(self, cache: VehicleStateCache) -> None:
        self._cache = cache
        self.connected = True
        self._report()

    def close(self) -> None:
        self.connected = False
        self._report()

    def send_setpoint(self, setpoint: Setpoint) -> None:
        if not self.connected:
            raise TransportFailure("mock vehicle is disconnected")
        self.check_failsafe()
        now = self._clock()
        self.setpoints.append((now, setpoint))
        self._last_setpoint = now

    def set_mode(self, mode: str, timeout: float) -> None:
        self.commands.append((self._clock(), SetMode(mode)))
        self._delay()
        self._require_connected()
        self.check_failsafe()

        if mode in self.reject_modes:
            raise CommandRejected(f"mock vehicle refuses {mode}")
        if mode == "OFFBOARD" and not self._stream_alive():
            raise CommandRejected("no offboard setpoint stream")

        self.mode = mode
        self._report()

    def arm(self, value: bool, timeout: float) -> None:
        self.commands.append((self._clock(), Arm(value)))
        self._delay()
        self._require_connected()

        if value and (self.reject_arm or self.mode not in ARMABLE_MODES):
            raise CommandRejected(f"arming denied in {self.mode}")

        self.armed = value
        self._report()

    def check_failsafe(self):
        if self.mode == "OFFBOARD" and not self._stream_alive():
            self.logger.info(f"Offboard setpoints stale, falling back to {self.fallback_mode}")
            self.mode = self.fallback_mode
            self._report()

    # Things the pilot or the autopilot do on their own.

    def override_mode(self, mode: str):
        self.mode = mode
        self._report()

    def override_disarm(self):
        self.armed = False
        self._report()

    def drop_connection(self):
        self.connected = False
        self._report()

    def restore_connection(self):
        self.connected = True
        self._report()

    def _stream_alive(self) -> bool:
        return self._last_setpoint is not None and self._clock() - self._last_setpoint <= self.failsafe_timeout

    def _require_connected(self):
        if not self.connected:
            raise TransportFailure("mock vehicle is disconnected")

    def _delay(self):
        if not self.command_delay:
            return
        if isinstance(self._clock, ManualClock):
            self._clock.advance(self.command_delay)
        else:
            time.sleep(self.command_delay)

    def _report(self):
        if self._cache is not None:
            self._cache.on_update(VehicleStatus(self.connected, self.armed, self.mode))
