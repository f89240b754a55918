"""Wire format of the BLE commands sent to the cameras."""

from .packet_builder import EM5PacketBuilder, compute_checksum, passcode_to_bytes

__all__ = [
    'EM5PacketBuilder',
    'compute_checksum',
    'passcode_to_bytes',
]
