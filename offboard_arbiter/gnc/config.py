from dataclasses import dataclass

# PX4 drops out of offboard when setpoints are older than this (COM_OF_LOSS_T).
FAILSAFE_TIMEOUT = 0.5


@dataclass
class OffboardConfig:
    target_mode: str = "OFFBOARD"
    rate_hz: float = 20.0
    prime_count: int = 100
    request_cooldown: float = 5.0
    command_timeout: float = 0.3
    failsafe_timeout: float = FAILSAFE_TIMEOUT
    # how often to say we're still waiting for a connection
    connection_log_period: float = 5.0

    @property
    def period(self) -> float:
        return 1.0 / self.rate_hz

    def validate(self) -> 'OffboardConfig':
        '''
        Raises ValueError if the settings could let the setpoint stream go stale.
        A command can stall one cycle for up to command_timeout, so a cycle plus
        the longest command has to fit inside the failsafe window.
        '''
        if not self.target_mode:
            raise ValueError("target_mode cannot be empty")
        if self.rate_hz <= 1.0 / self.failsafe_timeout:
            raise ValueError(
                f"rate_hz must be above {1.0 / self.failsafe_timeout:.1f} Hz to beat the failsafe. Got {self.rate_hz}")
        if self.prime_count < 0:
            raise ValueError(f"prime_count cannot be negative. Got {self.prime_count}")
        if self.request_cooldown < 0:
            raise ValueError(f"request_cooldown cannot be negative. Got {self.request_cooldown}")
        if self.command_timeout <= 0:
            raise ValueError(f"command_timeout must be positive. Got {self.command_timeout}")
        if self.period + self.command_timeout >= self.failsafe_timeout:
            raise ValueError(
                f"One cycle ({self.period:.3f}s) plus command_timeout ({self.command_timeout:.3f}s) "
                f"must stay under the {self.failsafe_timeout:.3f}s failsafe")
        return self
