# camstatus/em5_controller.py
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional

import config
from camstatus.events import Subscribers
from camstatus.models import Advertisement, CameraFamily, CharacteristicInfo, Device
from camstatus.protocol import EM5PacketBuilder

logger = logging.getLogger(__name__)


class PowerOnState(Enum):
    IDLE = auto()
    CONNECTING = auto()
    WAITING_RETRY = auto()
    CONNECTED = auto()
    DISCOVERING_SERVICES = auto()
    DISCOVERING_CHARACTERISTICS = auto()
    AUTHENTICATING = auto()
    POWERING_ON = auto()
    DISCONNECTING = auto()
    SUCCEEDED = auto()
    FAILED = auto()


TERMINAL_STATES = frozenset({PowerOnState.SUCCEEDED, PowerOnState.FAILED})

# States in which the camera link is up (or being torn down by us)
LINKED_STATES = frozenset({
    PowerOnState.CONNECTED,
    PowerOnState.DISCOVERING_SERVICES,
    PowerOnState.DISCOVERING_CHARACTERISTICS,
    PowerOnState.AUTHENTICATING,
    PowerOnState.POWERING_ON,
    PowerOnState.DISCONNECTING,
})


@dataclass(frozen=True)
class PowerOnStatus:
    state: PowerOnState
    message: str
    attempt: int = 0

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def succeeded(self) -> bool:
        return self.state is PowerOnState.SUCCEEDED


class EM5PowerOnController:
    """
    Powers on an Olympus E-M5 Mark III over BLE.

    Flow:
    1. CONNECTING: re-scan until the camera advertises, then connect
    2. DISCOVERING_SERVICES / DISCOVERING_CHARACTERISTICS: pick the command characteristic
    3. AUTHENTICATING: write the passcode packet, wait for the camera to settle
    4. POWERING_ON: write the power-on packet
    5. DISCONNECTING: drop the link, the camera turns on its WiFi

    Whole attempts are retried (max 5) with backoff; a failed write or
    discovery ends the session.

    Each state owns at most one timer and every transition cancels it:
    - CONNECTING: attempt timeout (until the camera is found)
    - WAITING_RETRY: backoff before the next attempt
    - AUTHENTICATING: settle delay after the authentication write
    - POWERING_ON: delay before disconnecting
    - DISCONNECTING: disconnect timeout, counted as success
    """

    family = CameraFamily.OLYMPUS_EM5

    def __init__(
        self,
        device: Device,
        radio,
        loop=None,
        passcode: str = config.EM5_PASSCODE,
        max_attempts: int = config.MAX_CONNECTION_ATTEMPTS,
        attempt_timeout: float = config.CONNECT_ATTEMPT_TIMEOUT,
        target_names: Iterable[str] = None,
        working_characteristic: str = config.EM5_WORKING_CHAR_UUID,
        logger=None,
    ):
        self.device = device
        self.radio = radio
        self.loop = loop or asyncio.get_running_loop()
        self.passcode = passcode
        self.max_attempts = max_attempts
        self.attempt_timeout = attempt_timeout
        self.target_names = list(config.EM5_POWER_ON_NAMES if target_names is None else target_names)
        self.working_characteristic = working_characteristic.lower()
        self.logger = logger or logging.getLogger(__name__)

        self.status_changed = Subscribers("power_on_status")

        self._state = PowerOnState.IDLE
        self._status: Optional[PowerOnStatus] = None
        self._attempt = 0
        self._timer = None
        self._reset_attempt()

    @classmethod
    def can_power_on(cls, device: Device) -> bool:
        if device.family is not None and device.family is not cls.family:
            return False
        return any(fragment in device.name for fragment in config.EM5_POWER_ON_NAMES)

    @property
    def state(self) -> PowerOnState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def status(self) -> Optional[PowerOnStatus]:
        return self._status

    @property
    def is_active(self) -> bool:
        return self._state not in TERMINAL_STATES and self._state is not PowerOnState.IDLE

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def subscribe(self, callback):
        return self.status_changed.subscribe(callback)

    def start(self) -> None:
        if self._state is not PowerOnState.IDLE:
            raise RuntimeError(f"Power-on already started ({self._state.name})")
        self.logger.info(f"[POWER] Powering on {self.device.name} ({self.device.id})")
        self._start_attempt()

    # ------------------------------------------------------------------
    # Radio events
    # ------------------------------------------------------------------

    def handle_advertisement(self, advertisement: Advertisement) -> None:
        if self._state is not PowerOnState.CONNECTING or self._peripheral_id is not None:
            return
        if not self._is_target(advertisement):
            return

        self.logger.info(f"[POWER] Found camera {advertisement.name} for power on, connecting...")
        self._cancel_timer()
        self._stop_scan()
        self._peripheral_id = advertisement.peripheral_id
        self._link_open = True
        self._emit("Camera found, connecting...")
        self.radio.connect(self._peripheral_id)

    def handle_connected(self, peripheral_id: str) -> None:
        if self._state is not PowerOnState.CONNECTING or peripheral_id != self._peripheral_id:
            return

        self.logger.info(f"[POWER] Connected to camera: {peripheral_id}")
        self._transition(PowerOnState.CONNECTED, "connect succeeded")
        self._emit("Connected, discovering services...")
        self._transition(PowerOnState.DISCOVERING_SERVICES, "requesting services")
        self.radio.discover_services(peripheral_id)

    def handle_connect_failed(self, peripheral_id: str, error=None) -> None:
        if self._state is not PowerOnState.CONNECTING or peripheral_id != self._peripheral_id:
            return

        self.logger.warning(f"[POWER] Failed to connect to camera: {error or 'Unknown error'}")
        self._link_open = False

        if self._attempt < self.max_attempts:
            backoff = min(
                config.CONNECT_RETRY_BACKOFF_STEP * self._attempt,
                config.CONNECT_RETRY_BACKOFF_MAX,
            )
            self._schedule_retry(backoff, f"Connection failed, retrying in {backoff:g}s...")
        else:
            self._fail(f"Failed to connect after {self.max_attempts} attempts")

    def handle_disconnected(self, peripheral_id: str, error=None) -> None:
        if self._state not in LINKED_STATES or peripheral_id != self._peripheral_id:
            return

        self.logger.info(f"[POWER] Disconnected from camera: {peripheral_id} ({error or 'no error'})")
        self._link_open = False

        if self._power_on_sent:
            self._succeed("Camera powered on! WiFi should be available soon.")
        elif self._attempt >= self.max_attempts:
            self._fail(f"Disconnected unexpectedly after {self._attempt} attempts")
        elif self._attempt == 1:
            # The E-M5 drops the very first connection regularly
            self.logger.info("[POWER] First connection attempt disconnected unexpectedly, retrying...")
            self._emit("Initial connection established, retrying...")
            self._start_attempt()
        else:
            self.logger.info(f"[POWER] Unexpected disconnect on attempt {self._attempt}, retrying...")
            self._schedule_retry(config.DISCONNECT_RETRY_DELAY, "Disconnected, retrying...")

    def handle_services_discovered(self, peripheral_id: str, services: List[str], error=None) -> None:
        if self._state is not PowerOnState.DISCOVERING_SERVICES or peripheral_id != self._peripheral_id:
            return

        if error is not None:
            self.logger.error(f"[POWER] Error discovering services: {error}")
            self._fail("Error discovering services")
            return
        if not services:
            self.logger.error("[POWER] No services found")
            self._fail("No services found on camera")
            return

        self._service_order = list(services)
        self._pending_services = set(services)
        self._characteristics = {}
        self._transition(PowerOnState.DISCOVERING_CHARACTERISTICS, f"{len(services)} services")
        self._emit("Discovering characteristics...")

        for service_uuid in services:
            self.logger.debug(f"[POWER] Discovered service: {service_uuid}")
            self.radio.discover_characteristics(peripheral_id, service_uuid)

    def handle_characteristics_discovered(
        self,
        peripheral_id: str,
        service_uuid: str,
        characteristics: List[CharacteristicInfo],
        error=None,
    ) -> None:
        if self._state is not PowerOnState.DISCOVERING_CHARACTERISTICS or peripheral_id != self._peripheral_id:
            return

        if error is not None:
            self.logger.error(f"[POWER] Error discovering characteristics: {error}")
            self._fail("Error discovering characteristics")
            return

        for characteristic in characteristics:
            self.logger.debug(
                f"[POWER] Discovered characteristic: {characteristic.uuid}, "
                f"properties: {', '.join(characteristic.properties)}"
            )
        self._characteristics[service_uuid] = list(characteristics)
        self._pending_services.discard(service_uuid)

        working = self._find_working_characteristic()
        if working is not None:
            self.logger.info("[POWER] Found our target characteristic!")
            self._authenticate(working, "Sending authentication...")
            return

        if self._pending_services:
            return

        writable = self._first_writable_characteristic()
        if writable is None:
            self.logger.error("[POWER] No writable characteristics found")
            self._fail("No suitable characteristics found")
            return

        self.logger.warning(
            f"[POWER] No known working characteristic found, trying first writable: {writable.uuid}"
        )
        self._authenticate(writable, "Sending authentication (experimental)...")

    def handle_write_completed(self, peripheral_id: str, characteristic_uuid: str, error=None) -> None:
        if peripheral_id != self._peripheral_id or not self._awaiting_write:
            return
        if self._state not in (PowerOnState.AUTHENTICATING, PowerOnState.POWERING_ON):
            return

        self._awaiting_write = False
        if error is not None:
            self.logger.error(f"[POWER] Error writing characteristic: {error}")
            self._fail(f"Error sending command: {error}")
            return

        self.logger.debug(f"[POWER] Successfully wrote value to {characteristic_uuid}")
        if self._state is PowerOnState.AUTHENTICATING:
            self._emit("Authentication sent, sending power-on command...")
            self._arm_timer(config.AUTH_SETTLE_DELAY, self._send_power_on)
        else:
            self._power_on_sent = True
            self._emit("Power on command sent successfully!")
            self._arm_timer(config.POWER_ON_DISCONNECT_DELAY, self._disconnect)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _start_attempt(self) -> None:
        self._reset_attempt()
        self._attempt += 1

        if self._attempt > 1:
            message = f"Connecting to camera (attempt {self._attempt}/{self.max_attempts})..."
        else:
            message = "Connecting to camera..."

        self.logger.info(f"[POWER] Starting connection attempt {self._attempt}/{self.max_attempts}")
        self.radio.start_scan()
        self._scanning = True
        self._transition(PowerOnState.CONNECTING, f"attempt {self._attempt}")
        self._arm_timer(self.attempt_timeout, self._on_attempt_timeout)
        self._emit(message)

    def _on_attempt_timeout(self) -> None:
        self._timer = None
        if self._state is not PowerOnState.CONNECTING:
            return

        self._stop_scan()
        if self._attempt < self.max_attempts:
            self.logger.warning(f"[POWER] Attempt {self._attempt} timed out, will retry...")
            backoff = min(
                config.SCAN_RETRY_BACKOFF_STEP * self._attempt,
                config.SCAN_RETRY_BACKOFF_MAX,
            )
            self._schedule_retry(
                backoff,
                f"Connection attempt {self._attempt} failed, retrying in {backoff:g}s...",
            )
        else:
            self.logger.error(f"[POWER] All {self.max_attempts} attempts failed")
            self._fail(f"Failed to connect after {self.max_attempts} attempts")

    def _schedule_retry(self, delay: float, message: str) -> None:
        self._transition(PowerOnState.WAITING_RETRY, f"retry in {delay:g}s")
        self._arm_timer(delay, self._start_attempt)
        self._emit(message)

    def _authenticate(self, characteristic: CharacteristicInfo, message: str) -> None:
        self._characteristic = characteristic
        self._transition(PowerOnState.AUTHENTICATING, characteristic.uuid)
        self._emit(message)

        payload = EM5PacketBuilder.build_authentication_packet(self.passcode)
        self.logger.info(f"[POWER] Sending authentication: {payload.hex(' ')}")
        self._awaiting_write = True
        self.radio.write(self._peripheral_id, characteristic.uuid, payload, True)

    def _send_power_on(self) -> None:
        self._timer = None
        if self._state is not PowerOnState.AUTHENTICATING:
            return

        self._transition(PowerOnState.POWERING_ON, "settle delay elapsed")
        payload = EM5PacketBuilder.build_power_on_packet()
        self.logger.info(f"[POWER] Sending power-on: {payload.hex(' ')}")
        self._awaiting_write = True
        self.radio.write(self._peripheral_id, self._characteristic.uuid, payload, True)

    def _disconnect(self) -> None:
        self._timer = None
        if self._state is not PowerOnState.POWERING_ON:
            return
        self._transition(PowerOnState.DISCONNECTING, "power-on sent")
        self.radio.cancel_connection(self._peripheral_id)
        self._arm_timer(config.DISCONNECT_TIMEOUT, self._on_disconnect_timeout)

    def _on_disconnect_timeout(self) -> None:
        self._timer = None
        if self._state is not PowerOnState.DISCONNECTING:
            return
        self.logger.warning("[POWER] No disconnect event from camera, assuming the link is gone")
        self._link_open = False
        self._succeed("Camera powered on! WiFi should be available soon.")

    def _succeed(self, message: str) -> None:
        self._finish(PowerOnState.SUCCEEDED, message)

    def _fail(self, message: str) -> None:
        self._finish(PowerOnState.FAILED, message)

    def _finish(self, state: PowerOnState, message: str) -> None:
        self._stop_scan()
        if self._link_open and self._peripheral_id is not None:
            self.radio.cancel_connection(self._peripheral_id)

        self._transition(state, message)
        self._reset_attempt()
        self._emit(message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reset_attempt(self) -> None:
        self._scanning = False
        self._peripheral_id: Optional[str] = None
        self._link_open = False
        self._characteristic: Optional[CharacteristicInfo] = None
        self._service_order: List[str] = []
        self._pending_services = set()
        self._characteristics: Dict[str, List[CharacteristicInfo]] = {}
        self._awaiting_write = False
        self._power_on_sent = False

    def _stop_scan(self) -> None:
        if self._scanning:
            self._scanning = False
            self.radio.stop_scan()

    def _is_target(self, advertisement: Advertisement) -> bool:
        if advertisement.peripheral_id == self.device.id:
            return True
        name = advertisement.name
        return bool(name) and any(fragment in name for fragment in self.target_names)

    def _find_working_characteristic(self) -> Optional[CharacteristicInfo]:
        for service_uuid in self._service_order:
            for characteristic in self._characteristics.get(service_uuid, ()):
                if characteristic.uuid.lower() == self.working_characteristic:
                    return characteristic
        return None

    def _first_writable_characteristic(self) -> Optional[CharacteristicInfo]:
        for service_uuid in self._service_order:
            for characteristic in self._characteristics.get(service_uuid, ()):
                if characteristic.is_writable:
                    return characteristic
        return None

    def _transition(self, new_state: PowerOnState, reason: str = "") -> None:
        self._cancel_timer()
        if self._state != new_state:
            self.logger.info(f"[STATE] {self._state.name} → {new_state.name} ({reason})")
            self._state = new_state

    def _arm_timer(self, delay: float, callback) -> None:
        self._cancel_timer()
        self._timer = self.loop.call_later(delay, callback)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self, message: str) -> None:
        self._status = PowerOnStatus(self._state, message, self._attempt)
        self.status_changed.emit(self._status)
