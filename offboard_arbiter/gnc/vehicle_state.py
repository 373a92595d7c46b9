import logging
import threading
import time
from typing import Callable, NamedTuple

from offboard_arbiter.async_utils import LatestValue
from offboard_arbiter.gnc.errors import ConnectionNotEstablished

UNKNOWN_MODE = "UNKNOWN"


class VehicleStatus(NamedTuple):
    """
    What the flight controller last told us about itself.
    """
    connected: bool = False
    armed: bool = False
    mode: str = UNKNOWN_MODE


class VehicleStateCache:
    '''
    Holds the most recent VehicleStatus reported by the status feed.

    The feed calls on_update from its own thread while the control loop
    calls current(); both go through a locked single-value slot so a reader
    never sees a half-written status. Nothing is validated here, the feed is trusted.
    '''

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._status: LatestValue[VehicleStatus] = LatestValue(VehicleStatus())
        self._last_update: LatestValue[float | None] = LatestValue(None)
        self.logger = logging.getLogger(__name__)

    def current(self) -> VehicleStatus:
        return self._status.get()

    def on_update(self, status: VehicleStatus):
        previous = self._status.get()
        self._status.put(status)
        self._last_update.put(self._clock())

        if previous.connected != status.connected:
            self.logger.info(f"Vehicle {'connected' if status.connected else 'disconnected'}")
        if previous.mode != status.mode:
            self.logger.info(f"Vehicle mode {previous.mode} -> {status.mode}")
        if previous.armed != status.armed:
            self.logger.info(f"Vehicle {'armed' if status.armed else 'disarmed'}")

    @property
    def update_count(self) -> int:
        return self._status.version

    @property
    def last_update_time(self) -> float | None:
        '''
        Clock reading of the most recent update, or None before the first one.
        '''
        return self._last_update.get()

    def wait_for_connection(
        self,
        timeout_seconds: float = float('inf'),
        poll_seconds: float = 0.1,
        shutdown: threading.Event | None = None,
    ) -> bool:
        """
        Blocks until the feed reports a connected vehicle and returns True.
        Returns False as soon as `shutdown` is set.
        Meant for process bootstrap; the controller itself never calls this.
        """
        start = self._clock()

        while not self.current().connected:
            diff = self._clock() - start
            if diff >= timeout_seconds:
                raise ConnectionNotEstablished(f"No vehicle connection after {diff:.1f}s")

            if shutdown is None:
                time.sleep(poll_seconds)
            elif shutdown.wait(poll_seconds):
                return False
        return True
