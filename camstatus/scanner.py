# camstatus/scanner.py
import asyncio
import logging
from enum import Enum, auto
from typing import Dict, Optional, Tuple

import config
from camstatus.events import Subscribers
from camstatus.identifiers import IdentifierRegistry
from camstatus.models import Advertisement, Device, RadioState

logger = logging.getLogger(__name__)


class ScanState(Enum):
    IDLE = auto()
    SCANNING = auto()


class DeviceScanner:
    """
    Periodic BLE presence scan for the known cameras.

    Every advertisement (duplicates included) is classified through the
    identifier registry. A match replaces the device table entry for that
    peripheral and publishes a fresh snapshot of the table. The table is
    only emptied by `clear()`; there is no expiry.

    Timers:
    - scan timeout: armed by `start()`, cancelled by `stop()`
    - periodic trigger: armed by `start_periodic()`, cancelled by `stop_periodic()`
    """

    def __init__(
        self,
        radio,
        registry: IdentifierRegistry,
        loop=None,
        scan_timeout: float = config.SCAN_TIMEOUT,
        expected_count: int = config.EXPECTED_CAMERA_COUNT,
        logger=None,
    ):
        self.radio = radio
        self.registry = registry
        self.loop = loop or asyncio.get_running_loop()
        self.scan_timeout = scan_timeout
        self.expected_count = expected_count
        self.logger = logger or logging.getLogger(__name__)

        self.radio_state = RadioState.UNKNOWN
        self._state = ScanState.IDLE
        self._devices: Dict[str, Device] = {}
        self._timeout_handle = None
        self._periodic_handle = None
        self._periodic_interval: Optional[float] = None

        self.devices_changed = Subscribers("devices_changed")
        self.scanning_changed = Subscribers("scanning_changed")

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_scanning(self) -> bool:
        return self._state is ScanState.SCANNING

    @property
    def is_ready(self) -> bool:
        return self.radio_state is RadioState.READY

    @property
    def is_periodic(self) -> bool:
        return self._periodic_handle is not None

    @property
    def devices(self) -> Tuple[Device, ...]:
        return tuple(self._devices.values())

    def set_radio_state(self, state: RadioState) -> None:
        self.radio_state = state
        # resume a periodic scan requested while the radio was not ready
        if self.is_ready and self._periodic_interval is not None and not self.is_periodic:
            self.start_periodic(self._periodic_interval)

    def start(self) -> None:
        if not self.is_ready:
            self.logger.info(f"[SCAN] Bluetooth not available: {self.radio_state.value}")
            return

        self.logger.info("[SCAN] Starting scan for cameras...")
        self.radio.start_scan()
        self._set_state(ScanState.SCANNING)

        if self._timeout_handle:
            self._timeout_handle.cancel()
        self._timeout_handle = self.loop.call_later(self.scan_timeout, self._on_scan_timeout)

    def stop(self) -> None:
        if self._timeout_handle:
            self._timeout_handle.cancel()
            self._timeout_handle = None

        self.radio.stop_scan()
        self.logger.info(f"[SCAN] Scanner stopped scanning. Found {len(self._devices)} cameras")
        self._set_state(ScanState.IDLE)
        self.scanning_changed.emit(False)

    def start_periodic(self, interval: float = config.PERIODIC_SCAN_INTERVAL) -> None:
        self._periodic_interval = interval
        if not self.is_ready:
            self.logger.info("[SCAN] Bluetooth not ready, will start scanning when ready")
            return

        if self._periodic_handle:
            self._periodic_handle.cancel()

        self.start()
        self._periodic_handle = self.loop.call_later(interval, self._on_periodic_tick)

    def stop_periodic(self) -> None:
        self._periodic_interval = None
        if self._periodic_handle:
            self._periodic_handle.cancel()
            self._periodic_handle = None
        self.stop()

    def clear(self) -> None:
        self._devices.clear()
        self.devices_changed.emit(self.devices)

    def handle_advertisement(self, advertisement: Advertisement) -> None:
        device = self.registry.identify(advertisement)
        if device is not None:
            self.logger.info(
                f"[SCAN] Found camera: {device.name} "
                f"(ID: {device.id}, RSSI: {device.rssi})"
            )
            self._devices[device.id] = device
            self.devices_changed.emit(self.devices)

        if self.is_scanning and len(self._devices) >= self.expected_count:
            self.logger.info("[SCAN] Multiple cameras found, stopping scan")
            self.stop()

    def _set_state(self, new_state: ScanState) -> None:
        if self._state != new_state:
            self.logger.debug(f"[STATE] {self._state.name} → {new_state.name}")
            self._state = new_state
        if new_state is ScanState.SCANNING:
            self.scanning_changed.emit(True)

    def _on_scan_timeout(self) -> None:
        self._timeout_handle = None
        self.logger.debug(f"[SCAN] Scan timeout after {self.scan_timeout}s")
        self.stop()

    def _on_periodic_tick(self) -> None:
        interval = self._periodic_interval
        if interval is None:
            return
        self._periodic_handle = self.loop.call_later(interval, self._on_periodic_tick)
        self.logger.info("[SCAN] Starting periodic scan")
        self.start()
