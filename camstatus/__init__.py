"""BLE presence tracking and remote power-on for WiFi cameras.

The BLEManager routes radio events either to the DeviceScanner, which keeps
the table of cameras seen nearby, or to the power-on controller of the
session currently running.
"""

from .ble_manager import BLEManager, PowerOnResult
from .em5_controller import EM5PowerOnController, PowerOnState, PowerOnStatus
from .identifiers import (
    CameraIdentifier,
    EM5CameraIdentifier,
    IdentifierRegistry,
    RicohCameraIdentifier,
    default_registry,
)
from .models import Advertisement, CameraFamily, CharacteristicInfo, Device, RadioState
from .scanner import DeviceScanner, ScanState

__all__ = [
    'Advertisement',
    'BLEManager',
    'CameraFamily',
    'CameraIdentifier',
    'CharacteristicInfo',
    'Device',
    'DeviceScanner',
    'EM5CameraIdentifier',
    'EM5PowerOnController',
    'IdentifierRegistry',
    'PowerOnResult',
    'PowerOnState',
    'PowerOnStatus',
    'RadioState',
    'RicohCameraIdentifier',
    'ScanState',
    'default_registry',
]
