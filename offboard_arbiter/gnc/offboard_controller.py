import logging
import threading
import time
from enum import Enum
from typing import Callable, NamedTuple

from offboard_arbiter.async_utils import LatestValue
from offboard_arbiter.gnc.commands import Arm, CommandGateway, CommandRequest, SetMode
from offboard_arbiter.gnc.config import OffboardConfig
from offboard_arbiter.gnc.setpoint import Setpoint, SetpointPublisher
from offboard_arbiter.gnc.vehicle_state import VehicleStateCache, VehicleStatus


class Phase(Enum):
    AWAIT_CONNECTION = "await_connection"
    PRIME = "prime"
    ENGAGE = "engage"


class CycleReport(NamedTuple):
    """
    What one control cycle did. `accepted` is None when no command went out.
    """
    phase: Phase
    published: bool
    command: CommandRequest | None = None
    accepted: bool | None = None


def decide_command(status: VehicleStatus, target_mode: str, cooldown_elapsed: bool) -> CommandRequest | None:
    '''
    Picks at most one request for this cycle.

        mode == target | armed | cooldown elapsed | request
        ---------------+-------+------------------+------------------
        no             | any   | yes              | SetMode(target)
        yes            | no    | yes              | Arm(True)
        any            | any   | no               | None
        yes            | yes   | any              | None

    Arming is only tried once the mode already matches, so the two kinds
    never go out in the same cycle.
    '''
    if not cooldown_elapsed:
        return None
    if status.mode != target_mode:
        return SetMode(target_mode)
    if not status.armed:
        return Arm(True)
    return None


class OffboardController:
    '''
    Gets the vehicle into the target mode, armed, and keeps it there.

    Phases go AWAIT_CONNECTION -> PRIME -> ENGAGE. Nothing is published until
    the vehicle is connected. From then on every cycle publishes the current
    setpoint first, whatever else happens. PRIME only streams, so the
    autopilot sees an active setpoint stream before it is asked to switch.
    ENGAGE is where the vehicle stays: every cycle it consults decide_command,
    with one cooldown shared between mode and arm requests. If the pilot or a
    failsafe takes the vehicle out of the mode, or it gets disarmed, the same
    table sends the request again once the cooldown allows.
    '''

    def __init__(
        self,
        state_cache: VehicleStateCache,
        publisher: SetpointPublisher,
        gateway: CommandGateway,
        setpoint: Setpoint,
        config: OffboardConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = (config or OffboardConfig()).validate()
        self.state_cache = state_cache
        self.publisher = publisher
        self.gateway = gateway
        self._clock = clock
        self._setpoint: LatestValue[Setpoint] = LatestValue(setpoint)

        self.phase = Phase.AWAIT_CONNECTION
        self.prime_cycles = 0
        self.cycle_count = 0
        self.last_request: float | None = None

        self._was_connected = False
        self._last_wait_log: float | None = None

        self.logger = logging.getLogger(__name__)

    @property
    def setpoint(self) -> Setpoint:
        return self._setpoint.get()

    def update_setpoint(self, setpoint: Setpoint):
        '''
        Replaces the setpoint forwarded from the next cycle on. No smoothing is done.
        '''
        self._setpoint.put(setpoint)

    def cooldown_elapsed(self, now: float) -> bool:
        return self.last_request is None or now - self.last_request > self.config.request_cooldown

    def step(self) -> CycleReport:
        '''
        Runs one control cycle.
        '''
        self.cycle_count += 1
        status = self.state_cache.current()
        self._track_connection(status)

        if self.phase is Phase.AWAIT_CONNECTION:
            if not status.connected:
                self._log_waiting()
                return CycleReport(self.phase, published=False)
            self._enter(Phase.PRIME if self.config.prime_count > 0 else Phase.ENGAGE)

        self.publisher.publish(self._setpoint.get())

        if self.phase is Phase.PRIME:
            self.prime_cycles += 1
            if self.prime_cycles >= self.config.prime_count:
                self._enter(Phase.ENGAGE)
            return CycleReport(Phase.PRIME, published=True)

        now = self._clock()
        request = decide_command(status, self.config.target_mode, self.cooldown_elapsed(now))
        if request is None:
            return CycleReport(Phase.ENGAGE, published=True)

        result = self.gateway.issue(request, self.config.command_timeout)
        self.last_request = now
        return CycleReport(Phase.ENGAGE, published=True, command=request, accepted=result.accepted)

    def run(self, shutdown: threading.Event):
        '''
        Steps at config.rate_hz until shutdown is set.

        Sleeping is done with shutdown.wait so a shutdown request ends the loop
        right away. A late cycle is not made up with a burst; the schedule
        restarts from the current time.
        '''
        period = self.config.period
        self.logger.info(
            f"Starting offboard loop at {self.config.rate_hz:.1f} Hz, target mode {self.config.target_mode}")

        next_cycle = self._clock()
        while not shutdown.is_set():
            self.step()

            next_cycle += period
            delay = next_cycle - self._clock()
            if delay < 0:
                if -delay >= period:
                    self.logger.warning(f"Control cycle overran by {-delay * 1000:.0f}ms")
                next_cycle = self._clock()
                delay = 0.0

            if shutdown.wait(delay):
                break

        self.logger.info(f"Shutdown requested, leaving offboard loop after {self.cycle_count} cycles")

    def _enter(self, phase: Phase):
        self.logger.info(f"Offboard phase {self.phase.name} -> {phase.name}")
        self.phase = phase

    def _track_connection(self, status: VehicleStatus):
        if status.connected == self._was_connected:
            return
        self._was_connected = status.connected
        if not status.connected and self.phase is not Phase.AWAIT_CONNECTION:
            self.logger.warning("Lost vehicle connection, still streaming setpoints")

    def _log_waiting(self):
        now = self._clock()
        if self._last_wait_log is None or now - self._last_wait_log >= self.config.connection_log_period:
            self.logger.info("Waiting for vehicle connection")
            self._last_wait_log = now
