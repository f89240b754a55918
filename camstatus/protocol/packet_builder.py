# camstatus/protocol/packet_builder.py
import logging
from typing import Iterable

import config
from camstatus.protocol.constants import (
    AUTH_CHECKSUM_PREFIX,
    AUTH_HEADER,
    POWER_ON_COMMAND,
    EM5Constants,
)

logger = logging.getLogger(__name__)


def compute_checksum(initial: int, data: Iterable[int]) -> int:
    """Sum of `initial` and every byte of `data`, truncated to 8 bits."""
    return (initial + sum(data)) & 0xFF


def passcode_to_bytes(passcode: str) -> bytes:
    return bytes(
        ord(char) if ord(char) < 0x80 else EM5Constants.NON_ASCII_BYTE
        for char in passcode
    )


class EM5PacketBuilder:
    """
    Builder for the two commands of the Olympus E-M5 Mark III BLE power-on.

    Both packets are written to the same characteristic, authentication first.
    """

    @staticmethod
    def build_authentication_packet(passcode: str = config.EM5_PASSCODE) -> bytes:
        """
        Builds the passcode authentication packet.

        Packet Structure:
        ├─ Offset 0-5:   01 01 09 0C 01 02   Header (0x0C = authenticate)
        ├─ Offset 6-N:   [Passcode]          Passcode as ASCII
        ├─ Offset N+1:   [Checksum]          (0x0C + 0x01 + 0x02 + passcode bytes) & 0xFF
        └─ Offset N+2:   00                  End marker

        Args:
            passcode: The camera passcode.

        Returns:
            bytes: The constructed packet.
        """
        code = passcode_to_bytes(passcode)
        checksum = compute_checksum(EM5Constants.CHECKSUM_SEED, AUTH_CHECKSUM_PREFIX + code)

        packet = AUTH_HEADER + code + bytes([checksum, EM5Constants.PACKET_END])

        logger.debug(f"[PACKET BUILDER] Built authentication packet: {packet.hex(' ')}")
        return packet

    @staticmethod
    def build_power_on_packet() -> bytes:
        logger.debug(f"[PACKET BUILDER] Built power-on packet: {POWER_ON_COMMAND.hex(' ')}")
        return POWER_ON_COMMAND
