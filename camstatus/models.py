# camstatus/models.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class RadioState(Enum):
    READY = "ready"
    OFF = "off"
    RESETTING = "resetting"
    UNAUTHORIZED = "unauthorized"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return RADIO_STATE_LABELS[self]


RADIO_STATE_LABELS = {
    RadioState.READY: "Powered On",
    RadioState.OFF: "Powered Off",
    RadioState.RESETTING: "Resetting",
    RadioState.UNAUTHORIZED: "Unauthorized",
    RadioState.UNSUPPORTED: "Unsupported",
    RadioState.UNKNOWN: "Unknown",
}


class CameraFamily(Enum):
    OLYMPUS_EM5 = "olympus_em5"
    RICOH_GR = "ricoh_gr"


@dataclass(frozen=True)
class Advertisement:
    """A single advertisement as delivered by the radio stack."""
    peripheral_id: str
    name: Optional[str]
    rssi: int
    data: dict = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class Device:
    """
    A camera seen over BLE.

    Equality and hashing use `id` only: two records for the same peripheral
    with a different signal strength are the same camera. Records are never
    mutated, a newer advertisement replaces the record.
    """
    id: str
    name: str = field(compare=False)
    is_available: bool = field(default=True, compare=False)
    rssi: int = field(default=0, compare=False)
    last_seen: datetime = field(default_factory=datetime.now, compare=False)
    family: Optional[CameraFamily] = field(default=None, compare=False)


@dataclass(frozen=True)
class CharacteristicInfo:
    uuid: str
    properties: Tuple[str, ...] = ()
    service_uuid: Optional[str] = None

    @property
    def is_writable(self) -> bool:
        # bleak property names
        return "write" in self.properties or "write-without-response" in self.properties
