# camstatus/ble_manager.py
import asyncio
import logging
from enum import Enum
from typing import List, Optional, Tuple

import config
from camstatus.em5_controller import EM5PowerOnController, PowerOnState, PowerOnStatus
from camstatus.events import Subscribers
from camstatus.identifiers import IdentifierRegistry, default_registry
from camstatus.models import Advertisement, CharacteristicInfo, Device, RadioState
from camstatus.scanner import DeviceScanner

logger = logging.getLogger(__name__)

# Closed set of camera families that support remote power-on
POWER_ON_CONTROLLERS = (EM5PowerOnController,)


class PowerOnResult(Enum):
    STARTED = "started"
    BUSY = "busy"
    UNSUPPORTED = "unsupported"


class BLEManager:
    """
    Owns the radio and decides which consumer receives each radio event.

    While a power-on session is active, advertisements and connection events
    go to its controller and periodic scanning is suspended. Otherwise
    advertisements go to the device scanner and connection events are dropped.
    """

    def __init__(
        self,
        radio,
        registry: Optional[IdentifierRegistry] = None,
        loop=None,
        scan_interval: float = config.PERIODIC_SCAN_INTERVAL,
        status_hold: float = config.POWER_ON_STATUS_HOLD,
        controllers=POWER_ON_CONTROLLERS,
        scanner: Optional[DeviceScanner] = None,
        logger=None,
    ):
        self.radio = radio
        self.loop = loop or asyncio.get_running_loop()
        self.scan_interval = scan_interval
        self.status_hold = status_hold
        self.controllers = tuple(controllers)
        self.logger = logger or logging.getLogger(__name__)

        self.scanner = scanner or DeviceScanner(
            radio, registry or default_registry(), loop=self.loop, logger=self.logger
        )

        self.radio_state = RadioState.UNKNOWN
        self.power_on_status = ""
        self._session: Optional[EM5PowerOnController] = None
        self._resume_periodic = False
        self._release_handle = None
        self._status_reset_handle = None

        self.power_on_changed = Subscribers("power_on_status")
        self.radio_state_changed = Subscribers("radio_state")

        radio.delegate = self
        self.logger.info("[BLE] BLEManager initialized")

    # ------------------------------------------------------------------
    # State for the presentation layer
    # ------------------------------------------------------------------

    @property
    def cameras(self) -> Tuple[Device, ...]:
        return self.scanner.devices

    @property
    def is_ready(self) -> bool:
        return self.radio_state is RadioState.READY

    @property
    def bluetooth_state(self) -> str:
        return self.radio_state.label

    @property
    def is_scanning(self) -> bool:
        return self.scanner.is_scanning

    @property
    def is_powering_on(self) -> bool:
        return self._session is not None

    @property
    def active_controller(self) -> Optional[EM5PowerOnController]:
        return self._session

    def on_devices_changed(self, callback):
        return self.scanner.devices_changed.subscribe(callback)

    def on_scanning_changed(self, callback):
        return self.scanner.scanning_changed.subscribe(callback)

    def on_power_on_status(self, callback):
        return self.power_on_changed.subscribe(callback)

    def on_radio_state_changed(self, callback):
        return self.radio_state_changed.subscribe(callback)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def start_scanning(self) -> None:
        if self.is_ready and self._session is None:
            self.scanner.start()

    def stop_scanning(self) -> None:
        if self.scanner.is_scanning:
            self.scanner.stop()

    def start_periodic_scanning(self, interval: Optional[float] = None) -> None:
        if interval is not None:
            self.scan_interval = interval
        if self._session is not None:
            self._resume_periodic = True
            return
        self.scanner.start_periodic(self.scan_interval)

    def stop_periodic_scanning(self) -> None:
        self._resume_periodic = False
        self.scanner.stop_periodic()

    # ------------------------------------------------------------------
    # Power on
    # ------------------------------------------------------------------

    def find_controller(self, device: Device):
        for controller_cls in self.controllers:
            if controller_cls.can_power_on(device):
                return controller_cls
        return None

    def power_on(self, device: Device) -> PowerOnResult:
        if self._session is not None:
            self.logger.warning("[POWER] Already in the process of powering on a camera")
            return PowerOnResult.BUSY

        controller_cls = self.find_controller(device)
        if controller_cls is None:
            self.logger.warning(f"[POWER] No controller available for camera: {device.name}")
            self._publish(PowerOnStatus(PowerOnState.FAILED, "This camera doesn't support power-on"))
            self._status_reset_handle = self.loop.call_later(
                config.UNSUPPORTED_STATUS_HOLD, self._reset_status
            )
            return PowerOnResult.UNSUPPORTED

        # The controller drives the radio scan from now on
        self._resume_periodic = self.scanner.is_periodic or self._resume_periodic
        self.scanner.stop_periodic()

        controller = controller_cls(device, self.radio, loop=self.loop)
        controller.subscribe(self._on_controller_status)
        self._session = controller
        self._publish(PowerOnStatus(PowerOnState.IDLE, "Preparing to connect..."))
        controller.start()
        return PowerOnResult.STARTED

    def _on_controller_status(self, status: PowerOnStatus) -> None:
        self._publish(status)
        if status.terminal:
            self.logger.info(f"[POWER] Power-on finished: {status.message}")
            session = self._session
            self._release_handle = self.loop.call_later(
                self.status_hold, self._release_session, session
            )

    def _release_session(self, session) -> None:
        self._release_handle = None
        if self._session is not session:
            return
        self._session = None
        self.logger.debug("[POWER] Power-on session released")

        if self._resume_periodic and self.is_ready:
            self._resume_periodic = False
            self.scanner.start_periodic(self.scan_interval)

    def _publish(self, status: PowerOnStatus) -> None:
        if self._status_reset_handle:
            self._status_reset_handle.cancel()
            self._status_reset_handle = None
        self.power_on_status = status.message
        self.power_on_changed.emit(status)

    def _reset_status(self) -> None:
        self._status_reset_handle = None
        self.power_on_status = ""

    # ------------------------------------------------------------------
    # Radio delegate
    # ------------------------------------------------------------------

    def on_radio_state(self, state: RadioState) -> None:
        self.logger.info(f"[BLE] Bluetooth is {state.label}")
        self.radio_state = state
        self.scanner.set_radio_state(state)

        if state is RadioState.READY:
            if self._session is not None:
                self._resume_periodic = True
            elif not self.scanner.is_periodic:
                self.scanner.start_periodic(self.scan_interval)
        elif state is RadioState.OFF:
            self.scanner.stop_periodic()
            self.scanner.clear()
        else:
            self.scanner.stop_periodic()

        self.radio_state_changed.emit(state)

    def on_advertisement(self, advertisement: Advertisement) -> None:
        session = self._session
        if session is not None and session.is_active:
            session.handle_advertisement(advertisement)
        else:
            self.scanner.handle_advertisement(advertisement)

    def _controller_for_event(self, event: str, peripheral_id: str):
        session = self._session
        if session is None or not session.is_active:
            self.logger.debug(f"[BLE] No active power-on session for {event} from {peripheral_id}")
            return None
        return session

    def on_connected(self, peripheral_id: str) -> None:
        controller = self._controller_for_event("connect", peripheral_id)
        if controller:
            controller.handle_connected(peripheral_id)

    def on_connect_failed(self, peripheral_id: str, error=None) -> None:
        controller = self._controller_for_event("connect failure", peripheral_id)
        if controller:
            controller.handle_connect_failed(peripheral_id, error)

    def on_disconnected(self, peripheral_id: str, error=None) -> None:
        controller = self._controller_for_event("disconnect", peripheral_id)
        if controller:
            controller.handle_disconnected(peripheral_id, error)

    def on_services_discovered(self, peripheral_id: str, services: List[str], error=None) -> None:
        controller = self._controller_for_event("services", peripheral_id)
        if controller:
            controller.handle_services_discovered(peripheral_id, services, error)

    def on_characteristics_discovered(
        self,
        peripheral_id: str,
        service_uuid: str,
        characteristics: List[CharacteristicInfo],
        error=None,
    ) -> None:
        controller = self._controller_for_event("characteristics", peripheral_id)
        if controller:
            controller.handle_characteristics_discovered(peripheral_id, service_uuid, characteristics, error)

    def on_write_completed(self, peripheral_id: str, characteristic_uuid: str, error=None) -> None:
        controller = self._controller_for_event("write", peripheral_id)
        if controller:
            controller.handle_write_completed(peripheral_id, characteristic_uuid, error)

    def shutdown(self) -> None:
        self.stop_periodic_scanning()
        for handle in (self._release_handle, self._status_reset_handle):
            if handle:
                handle.cancel()
