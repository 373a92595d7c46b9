from .gnc import (
    OffboardController,
    OffboardConfig,
    Phase,
    Setpoint,
    SetpointPublisher,
    CommandGateway,
    VehicleStateCache,
    VehicleStatus,
)
