from abc import ABC, abstractmethod

from offboard_arbiter.gnc.commands import CommandGateway
from offboard_arbiter.gnc.setpoint import Setpoint, SetpointPublisher
from offboard_arbiter.gnc.vehicle_state import VehicleStateCache


class VehicleLink(ABC):
    '''
    Connection to one flight controller.

    Subclasses push every status they receive into the cache given to start(),
    from whatever thread their transport uses, and convert ENU setpoints to the
    autopilot's frame themselves.
    '''

    @abstractmethod
    def start(self, cache: VehicleStateCache) -> None:
        """
        Opens the connection and starts feeding `cache`.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    @abstractmethod
    def send_setpoint(self, setpoint: Setpoint) -> None:
        """
        Fire-and-forget. Must not block waiting for the vehicle.
        """
        ...

    @abstractmethod
    def set_mode(self, mode: str, timeout: float) -> None:
        """
        Returns once the vehicle accepts the mode change.
        Raises CommandRejected or TransportFailure otherwise.
        """
        ...

    @abstractmethod
    def arm(self, value: bool, timeout: float) -> None:
        """
        Same contract as set_mode, for arming (True) or disarming (False).
        """
        ...

    def publisher(self, clock=None) -> SetpointPublisher:
        if clock is None:
            return SetpointPublisher(self.send_setpoint)
        return SetpointPublisher(self.send_setpoint, clock)

    def gateway(self) -> CommandGateway:
        return CommandGateway(self.set_mode, self.arm)
