from .errors import OffboardError, ConnectionNotEstablished, CommandRejected, TransportFailure
from .vehicle_state import VehicleStatus, VehicleStateCache
from .setpoint import Setpoint, SetpointPublisher
from .commands import SetMode, Arm, CommandResult, CommandGateway
from .config import OffboardConfig
from .offboard_controller import OffboardController, Phase, CycleReport, decide_command
