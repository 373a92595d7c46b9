class OffboardError(Exception):
    '''
    Base class for errors raised between the offboard core and a vehicle link.
    '''


class ConnectionNotEstablished(OffboardError):
    '''
    No live connection to the flight controller yet.
    Only raised by bootstrap helpers; the control loop keeps waiting instead.
    '''


class CommandRejected(OffboardError):
    '''
    The flight controller answered a mode or arm request with anything but "accepted".
    '''


class TransportFailure(OffboardError):
    '''
    The request never got an answer (timeout, closed link, send error).
    '''
