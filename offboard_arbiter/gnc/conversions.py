import math

import numpy as np


def convert_NED_ENU_in_inertial(x) -> np.ndarray:
    ''' Converts a position between NED or ENU inertial frames.
        This operation is commutative.
    '''
    assert len(x) == 3
    new_x = np.float32(
        [x[1], x[0], -x[2]])
    return new_x


def convert_NED_ENU_yaw(yaw: float) -> float:
    ''' Converts a heading between ENU (0 = east, counter-clockwise)
        and NED (0 = north, clockwise). Also commutative.
        Result is wrapped to [-pi, pi).
    '''
    new_yaw = math.pi / 2 - yaw
    return (new_yaw + math.pi) % (2 * math.pi) - math.pi
