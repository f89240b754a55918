# camstatus/protocol/constants.py
from enum import IntEnum

class EM5Constants(IntEnum):
    # Authentication header: [0x01, 0x01, 0x09, 0x0C, 0x01, 0x02]
    PACKET_START = 0x01
    AUTH_LENGTH = 0x09
    CMD_AUTHENTICATE = 0x0C
    AUTH_PARAM_COUNT = 0x01
    AUTH_PARAM_TYPE = 0x02

    # The checksum starts from the command byte
    CHECKSUM_SEED = CMD_AUTHENTICATE

    PACKET_END = 0x00

    # Non-ASCII passcode characters are sent as this byte
    NON_ASCII_BYTE = 0x00


AUTH_HEADER = bytes([
    EM5Constants.PACKET_START,
    EM5Constants.PACKET_START,
    EM5Constants.AUTH_LENGTH,
    EM5Constants.CMD_AUTHENTICATE,
    EM5Constants.AUTH_PARAM_COUNT,
    EM5Constants.AUTH_PARAM_TYPE,
])

# Bytes of the header after the command byte, included in the checksum
AUTH_CHECKSUM_PREFIX = AUTH_HEADER[4:]

# Fixed power-on command, no computed fields
POWER_ON_COMMAND = bytes([0x01, 0x01, 0x04, 0x0F, 0x01, 0x01, 0x02, 0x13, 0x00])
