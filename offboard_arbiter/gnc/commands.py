import logging
from dataclasses import dataclass
from typing import Callable, Union

from offboard_arbiter.gnc.errors import CommandRejected, TransportFailure


@dataclass(frozen=True)
class SetMode:
    target_mode: str


@dataclass(frozen=True)
class Arm:
    value: bool = True


CommandRequest = Union[SetMode, Arm]


@dataclass(frozen=True)
class CommandResult:
    request: CommandRequest
    accepted: bool


class CommandGateway:
    '''
    Sends mode-change and arm requests to the vehicle and reports whether each was accepted.

    The link callables block for at most `timeout` seconds and raise
    CommandRejected or TransportFailure when the request doesn't go through.
    Whatever the reason, the caller only gets False back.
    '''

    def __init__(
        self,
        set_mode: Callable[[str, float], None],
        arm: Callable[[bool, float], None],
    ):
        self._set_mode = set_mode
        self._arm = arm
        self.logger = logging.getLogger(__name__)

    def request_mode_change(self, mode: str, timeout: float) -> bool:
        return self._call(f"set mode {mode}", self._set_mode, mode, timeout)

    def request_arm(self, value: bool, timeout: float) -> bool:
        return self._call("arm" if value else "disarm", self._arm, value, timeout)

    def issue(self, request: CommandRequest, timeout: float) -> CommandResult:
        if isinstance(request, SetMode):
            accepted = self.request_mode_change(request.target_mode, timeout)
        elif isinstance(request, Arm):
            accepted = self.request_arm(request.value, timeout)
        else:
            raise TypeError(f"Unknown command request {request!r}")
        return CommandResult(request, accepted)

    def _call(self, label: str, func, arg, timeout: float) -> bool:
        self.logger.info(f"Requesting {label}")
        try:
            func(arg, timeout)
        except CommandRejected as e:
            self.logger.warning(f"Request to {label} rejected: {e}")
            return False
        except (TransportFailure, TimeoutError, OSError) as e:
            self.logger.warning(f"Request to {label} failed: {e}")
            return False
        except Exception as e:
            # anything else the link raises is still just a failed request
            self.logger.warning(f"Request to {label} failed with unexpected {type(e).__name__}: {e}", exc_info=True)
            return False

        self.logger.info(f"Request to {label} accepted")
        return True
