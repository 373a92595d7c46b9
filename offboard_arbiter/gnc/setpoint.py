import logging
import math
import time
from typing import Callable, NamedTuple

import numpy as np

from offboard_arbiter.gnc.errors import TransportFailure


class Setpoint(NamedTuple):
    """
    Target pose handed to the flight controller.
    Position is (x, y, z) in metres, local ENU frame.
    Yaw is ENU radians, or None to leave the heading alone.
    """
    position: tuple[float, float, float]
    yaw: float | None = None

    @staticmethod
    def from_xyz(x: float, y: float, z: float, yaw: float | None = None):
        position = (float(x), float(y), float(z))
        if not all(math.isfinite(v) for v in position):
            raise ValueError(f"Setpoint position must be finite. Got {position}")
        return Setpoint(position, None if yaw is None else float(yaw))

    def as_array(self) -> np.ndarray:
        return np.float32(self.position)


class SetpointPublisher:
    '''
    Pushes setpoints to the vehicle through a fire-and-forget sink.

    Each publish() hands exactly one setpoint to the sink and returns; nothing is
    queued, so if the link falls behind the next call simply carries the newer
    setpoint. Sink errors are logged and dropped so the stream never stops the loop.
    '''

    def __init__(self, sink: Callable[[Setpoint], None], clock: Callable[[], float] = time.monotonic):
        self._sink = sink
        self._clock = clock
        self.publish_count = 0
        self.failure_count = 0
        self.last_publish_time: float | None = None
        self.last_setpoint: Setpoint | None = None
        self.logger = logging.getLogger(__name__)

    def publish(self, setpoint: Setpoint) -> None:
        self.last_publish_time = self._clock()
        self.last_setpoint = setpoint
        self.publish_count += 1
        try:
            self._sink(setpoint)
        except (OSError, TransportFailure) as e:
            self.failure_count += 1
            self.logger.warning(f"Dropped setpoint {setpoint.position}: {e}")
        except Exception as e:
            self.failure_count += 1
            self.logger.warning(
                f"Dropped setpoint {setpoint.position}, unexpected {type(e).__name__}: {e}", exc_info=True)
