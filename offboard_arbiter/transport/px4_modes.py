'''
PX4 packs its flight mode into HEARTBEAT.custom_mode as
(sub_mode << 24) | (main_mode << 16). These helpers go between that and the
mode names MAVROS reports ("OFFBOARD", "AUTO.LOITER", ...).
'''

from offboard_arbiter.gnc.vehicle_state import UNKNOWN_MODE

MAIN_MODE_MANUAL = 1
MAIN_MODE_ALTCTL = 2
MAIN_MODE_POSCTL = 3
MAIN_MODE_AUTO = 4
MAIN_MODE_ACRO = 5
MAIN_MODE_OFFBOARD = 6
MAIN_MODE_STABILIZED = 7
MAIN_MODE_RATTITUDE = 8

MODES = {
    "MANUAL": (MAIN_MODE_MANUAL, 0),
    "ALTCTL": (MAIN_MODE_ALTCTL, 0),
    "POSCTL": (MAIN_MODE_POSCTL, 0),
    "POSCTL.ORBIT": (MAIN_MODE_POSCTL, 1),
    "ACRO": (MAIN_MODE_ACRO, 0),
    "OFFBOARD": (MAIN_MODE_OFFBOARD, 0),
    "STABILIZED": (MAIN_MODE_STABILIZED, 0),
    "RATTITUDE": (MAIN_MODE_RATTITUDE, 0),
    "AUTO.READY": (MAIN_MODE_AUTO, 1),
    "AUTO.TAKEOFF": (MAIN_MODE_AUTO, 2),
    "AUTO.LOITER": (MAIN_MODE_AUTO, 3),
    "AUTO.MISSION": (MAIN_MODE_AUTO, 4),
    "AUTO.RTL": (MAIN_MODE_AUTO, 5),
    "AUTO.LAND": (MAIN_MODE_AUTO, 6),
    "AUTO.RTGS": (MAIN_MODE_AUTO, 7),
    "AUTO.FOLLOW_TARGET": (MAIN_MODE_AUTO, 8),
    "AUTO.PRECLAND": (MAIN_MODE_AUTO, 9),
}

_NAMES = {v: k for k, v in MODES.items()}


def decode_custom_mode(custom_mode: int) -> str:
    main_mode = (custom_mode >> 16) & 0xFF
    sub_mode = (custom_mode >> 24) & 0xFF
    # outside AUTO and POSCTL the sub mode carries no meaning
    if main_mode not in (MAIN_MODE_AUTO, MAIN_MODE_POSCTL):
        sub_mode = 0
    return _NAMES.get((main_mode, sub_mode), f"{UNKNOWN_MODE}({custom_mode:#x})")


def encode_mode(mode: str) -> tuple[int, int]:
    ''' Returns (main_mode, sub_mode) for MAV_CMD_DO_SET_MODE param2/param3.
        Raises KeyError for names PX4 doesn't have.
    '''
    return MODES[mode.upper()]
