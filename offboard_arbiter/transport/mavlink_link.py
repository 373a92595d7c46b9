import logging
import queue
import threading
import time

from pymavlink import mavutil

from offboard_arbiter.async_utils import OnceCallable
from offboard_arbiter.gnc.conversions import convert_NED_ENU_in_inertial, convert_NED_ENU_yaw
from offboard_arbiter.gnc.errors import CommandRejected, TransportFailure
from offboard_arbiter.gnc.setpoint import Setpoint
from offboard_arbiter.gnc.vehicle_state import VehicleStateCache, VehicleStatus
from offboard_arbiter.transport.base import VehicleLink
from offboard_arbiter.transport.px4_modes import decode_custom_mode, encode_mode

mavlink = mavutil.mavlink

# position only; velocity, acceleration and yaw rate are left to PX4
POSITION_TYPE_MASK = (
    mavlink.POSITION_TARGET_TYPEMASK_VX_IGNORE
    | mavlink.POSITION_TARGET_TYPEMASK_VY_IGNORE
    | mavlink.POSITION_TARGET_TYPEMASK_VZ_IGNORE
    | mavlink.POSITION_TARGET_TYPEMASK_AX_IGNORE
    | mavlink.POSITION_TARGET_TYPEMASK_AY_IGNORE
    | mavlink.POSITION_TARGET_TYPEMASK_AZ_IGNORE
    | mavlink.POSITION_TARGET_TYPEMASK_YAW_RATE_IGNORE
)

HEARTBEAT_PERIOD = 1.0


class MavlinkLink(VehicleLink):
    ''' Talks to PX4 directly over MAVLink with pymavlink.

        A reader thread owns recv_match: autopilot HEARTBEATs become
        VehicleStatus updates, COMMAND_ACKs go to a queue that set_mode/arm wait on.
        The vehicle counts as disconnected once no heartbeat arrived for
        heartbeat_timeout seconds. We also send our own 1 Hz heartbeat
        as an onboard controller. Sends from both threads share one lock.
    '''

    def __init__(
        self,
        url: str = 'udpin:localhost:14540',
        heartbeat_timeout: float = 3.0,
        source_system: int = 1,
        source_component: int = mavlink.MAV_COMP_ID_ONBOARD_COMPUTER,
        connection=None,
    ):
        self.url = url
        self.heartbeat_timeout = heartbeat_timeout
        self.source_system = source_system
        self.source_component = source_component

        self._conn = connection
        self._cache: VehicleStateCache | None = None
        self._send_lock = threading.Lock()
        self._acks: queue.Queue = queue.Queue()

        self._target: tuple[int, int] | None = None
        self._last_heartbeat: float | None = None
        self._last_heartbeat_sent = float('-inf')
        self._connected = False
        self._boot_time = time.monotonic()

        self._running = False
        self._reader: threading.Thread | None = None

        self.logger = logging.getLogger(__name__)
        self._log_first_heartbeat = OnceCallable(
            lambda system, component: self.logger.info(
                f"Detected heartbeat from system {system} component {component}"))

    @property
    def target(self) -> tuple[int, int] | None:
        return self._target

    def start(self, cache: VehicleStateCache) -> None:
        self._cache = cache
        if self._conn is None:
            self.logger.info(f"Opening MAVLink connection {self.url}")
            self._conn = mavutil.mavlink_connection(
                self.url, source_system=self.source_system, source_component=self.source_component)

        self._running = True
        self._reader = threading.Thread(target=self._read_loop, name="mavlink-reader", daemon=True)
        self._reader.start()

    def close(self) -> None:
        self._running = False
        if self._reader is not None:
            self._reader.join(timeout=1.0)
            self._reader = None
        if self._conn is not None:
            self._conn.close()

    def send_setpoint(self, setpoint: Setpoint) -> None:
        system, component = self._require_target()
        x, y, z = (float(v) for v in convert_NED_ENU_in_inertial(setpoint.position))

        type_mask = POSITION_TYPE_MASK
        yaw = 0.0
        if setpoint.yaw is None:
            type_mask |= mavlink.POSITION_TARGET_TYPEMASK_YAW_IGNORE
        else:
            yaw = convert_NED_ENU_yaw(setpoint.yaw)

        with self._send_lock:
            self._conn.mav.set_position_target_local_ned_send(
                self._time_boot_ms(),
                system,
                component,
                mavlink.MAV_FRAME_LOCAL_NED,
                type_mask,
                x, y, z,
                0.0, 0.0, 0.0,
                0.0, 0.0, 0.0,
                yaw,
                0.0)

    def set_mode(self, mode: str, timeout: float) -> None:
        try:
            main_mode, sub_mode = encode_mode(mode)
        except KeyError:
            raise CommandRejected(f"PX4 has no mode named {mode}")

        self._command_with_ack(
            mavlink.MAV_CMD_DO_SET_MODE,
            (mavlink.MAV_MODE_FLAG_CUSTOM_MODE_ENABLED, main_mode, sub_mode, 0, 0, 0, 0),
            timeout)

    def arm(self, value: bool, timeout: float) -> None:
        self._command_with_ack(
            mavlink.MAV_CMD_COMPONENT_ARM_DISARM,
            (1.0 if value else 0.0, 0, 0, 0, 0, 0, 0),
            timeout)

    def _command_with_ack(self, command: int, params: tuple, timeout: float):
        ''' Sends a COMMAND_LONG and waits up to `timeout` for its COMMAND_ACK.
        '''
        system, component = self._require_target()

        # acks left over from an earlier, timed out request
        while not self._acks.empty():
            self._acks.get_nowait()

        try:
            with self._send_lock:
                self._conn.mav.command_long_send(system, component, command, 0, *params)
        except OSError as e:
            raise TransportFailure(f"Could not send command {command}: {e}")

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransportFailure(f"No COMMAND_ACK for command {command} within {timeout:.2f}s")
            try:
                ack = self._acks.get(timeout=remaining)
            except queue.Empty:
                continue

            if ack.command != command:
                continue
            if ack.result == mavlink.MAV_RESULT_ACCEPTED:
                return
            if ack.result == mavlink.MAV_RESULT_IN_PROGRESS:
                continue
            raise CommandRejected(f"Command {command} answered with result {ack.result}")

    def _require_target(self) -> tuple[int, int]:
        if self._target is None or self._conn is None:
            raise TransportFailure("No heartbeat from the vehicle yet")
        return self._target

    def _time_boot_ms(self) -> int:
        return int((time.monotonic() - self._boot_time) * 1000) & 0xFFFFFFFF

    def _read_loop(self):
        while self._running:
            try:
                msg = self._conn.recv_match(type=['HEARTBEAT', 'COMMAND_ACK'], blocking=True, timeout=0.1)
                if msg is not None:
                    self.handle_message(msg)
            except OSError as e:
                self.logger.warning(f"MAVLink receive failed: {e}")
                time.sleep(0.1)
            except Exception:
                # heartbeat timeout and ACK dispatch only happen on this thread
                self.logger.exception("Dropped bad MAVLink input")
                time.sleep(0.1)

            now = time.monotonic()
            self.check_heartbeat_timeout(now)
            self.send_heartbeat(now)

    def handle_message(self, msg):
        mtype = msg.get_type()
        if mtype == 'HEARTBEAT':
            # ground stations and other companions share the link
            if msg.type == mavlink.MAV_TYPE_GCS or msg.autopilot == mavlink.MAV_AUTOPILOT_INVALID:
                return
            self._target = (msg.get_srcSystem(), msg.get_srcComponent())
            self._log_first_heartbeat(*self._target)
            self._last_heartbeat = time.monotonic()
            self._connected = True
            self._cache.on_update(VehicleStatus(
                connected=True,
                armed=bool(msg.base_mode & mavlink.MAV_MODE_FLAG_SAFETY_ARMED),
                mode=decode_custom_mode(msg.custom_mode)))
        elif mtype == 'COMMAND_ACK':
            self._acks.put(msg)

    def check_heartbeat_timeout(self, now: float):
        if not self._connected or self._last_heartbeat is None:
            return
        if now - self._last_heartbeat > self.heartbeat_timeout:
            self.logger.warning(f"No heartbeat for {now - self._last_heartbeat:.1f}s, marking vehicle disconnected")
            self._connected = False
            self._cache.on_update(self._cache.current()._replace(connected=False))

    def send_heartbeat(self, now: float):
        if now - self._last_heartbeat_sent < HEARTBEAT_PERIOD:
            return
        self._last_heartbeat_sent = now
        try:
            with self._send_lock:
                self._conn.mav.heartbeat_send(
                    mavlink.MAV_TYPE_ONBOARD_CONTROLLER,
                    mavlink.MAV_AUTOPILOT_INVALID,
                    0, 0,
                    mavlink.MAV_STATE_ACTIVE)
        except OSError as e:
            self.logger.warning(f"Could not send heartbeat: {e}")
