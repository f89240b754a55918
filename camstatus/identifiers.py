# camstatus/identifiers.py
import logging
from datetime import datetime
from typing import Iterable, Iterator, List, Optional

import config
from camstatus.models import Advertisement, CameraFamily, Device

logger = logging.getLogger(__name__)


class CameraIdentifier:
    """
    Decides whether an advertisement belongs to one camera family and builds
    the device record for it.

    A peripheral matches when its advertised name contains one of the known
    name fragments, or when its id is one of the known ids. Without a name
    only the id is compared.
    """

    family: CameraFamily
    display_prefix = "Camera"

    def __init__(self, known_names: Iterable[str] = (), known_ids: Iterable[str] = ()):
        self.known_names = list(known_names)
        self.known_ids = list(known_ids)

    def matches(self, name: Optional[str], peripheral_id: str, advertisement_data=None) -> bool:
        if peripheral_id in self.known_ids:
            return True
        if name:
            return any(fragment in name for fragment in self.known_names)
        return False

    def build(self, name: Optional[str], peripheral_id: str, rssi: int) -> Optional[Device]:
        display_name = name or f"{self.display_prefix} ({peripheral_id[-6:]})"
        return Device(
            id=peripheral_id,
            name=display_name,
            is_available=True,
            rssi=rssi,
            last_seen=datetime.now(),
            family=self.family,
        )

    def __repr__(self):
        return f"{type(self).__name__}(names={self.known_names}, ids={self.known_ids})"


class EM5CameraIdentifier(CameraIdentifier):
    family = CameraFamily.OLYMPUS_EM5
    display_prefix = "EM5 Camera"

    def __init__(self, known_names=None, known_ids=None):
        super().__init__(
            config.EM5_CAMERA_NAMES if known_names is None else known_names,
            config.EM5_CAMERA_IDS if known_ids is None else known_ids,
        )


class RicohCameraIdentifier(CameraIdentifier):
    family = CameraFamily.RICOH_GR
    display_prefix = "Ricoh Camera"

    def __init__(self, known_names=None, known_ids=None):
        super().__init__(
            config.RICOH_CAMERA_NAMES if known_names is None else known_names,
            config.RICOH_CAMERA_IDS if known_ids is None else known_ids,
        )


class IdentifierRegistry:
    """Ordered set of identifiers. The first one that accepts an advertisement wins."""

    def __init__(self, identifiers: Iterable[CameraIdentifier] = ()):
        self._identifiers: List[CameraIdentifier] = list(identifiers)

    def register(self, identifier: CameraIdentifier) -> None:
        self._identifiers.append(identifier)

    def identify(self, advertisement: Advertisement) -> Optional[Device]:
        name = advertisement.name
        peripheral_id = advertisement.peripheral_id

        for identifier in self._identifiers:
            if not identifier.matches(name, peripheral_id, advertisement.data):
                continue
            device = identifier.build(name, peripheral_id, advertisement.rssi)
            if device is not None:
                return device
            logger.warning(f"[IDENTIFY] {identifier!r} matched {peripheral_id} but built no device")

        if name and any(hint in name for hint in config.CAMERA_NAME_HINTS):
            logger.debug(f"Possible camera device: {name} (ID: {peripheral_id}, RSSI: {advertisement.rssi})")
        return None

    def __iter__(self) -> Iterator[CameraIdentifier]:
        return iter(self._identifiers)

    def __len__(self) -> int:
        return len(self._identifiers)


def default_registry() -> IdentifierRegistry:
    return IdentifierRegistry([EM5CameraIdentifier(), RicohCameraIdentifier()])


def extract_wifi_identifier(camera_name: str, identifiers: Iterable[str] = None) -> str:
    """Returns the part of a camera name that also appears in its WiFi SSID."""
    if identifiers is None:
        identifiers = config.CAMERA_WIFI_IDENTIFIERS
    for identifier in identifiers:
        if identifier in camera_name:
            return identifier
    return camera_name


def is_network_associated(camera_name: str, ssid: Optional[str]) -> bool:
    if not ssid:
        return False
    return extract_wifi_identifier(camera_name) in ssid
