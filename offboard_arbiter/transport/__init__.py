from .base import VehicleLink
from .px4_modes import decode_custom_mode, encode_mode
from .mocks import MockVehicleLink, ManualClock, SimulatedShutdown
