# camstatus/radio.py
import asyncio
import logging
from functools import partial
from typing import Dict, Optional, Set

from bleak import BleakClient, BleakError, BleakScanner

import config
from camstatus.models import Advertisement, CharacteristicInfo, RadioState

logger = logging.getLogger(__name__)

# Errors bleak (and the OS stack below it) raise while connecting
CONNECT_ERRORS = (BleakError, asyncio.TimeoutError, OSError, EOFError)


def classify_adapter_error(error: Exception) -> RadioState:
    """Maps an adapter failure reported by bleak to a readiness state."""
    text = str(error).lower()
    if "powered off" in text or "not powered" in text or "turned off" in text:
        return RadioState.OFF
    if "unauthorized" in text or "not authorized" in text or "permission" in text or "denied" in text:
        return RadioState.UNAUTHORIZED
    if "no bluetooth adapters" in text or "not supported" in text or "unsupported" in text:
        return RadioState.UNSUPPORTED
    if "resetting" in text:
        return RadioState.RESETTING
    return RadioState.UNKNOWN


class BleakRadio:
    """
    Handles Bluetooth Low Energy (BLE) interactions through bleak.

    Every outbound request returns immediately; the work runs as a task on the
    event loop and its outcome is reported to `delegate` (the BLEManager):
    on_radio_state, on_advertisement, on_connected, on_connect_failed,
    on_disconnected, on_services_discovered, on_characteristics_discovered,
    on_write_completed.

    While the adapter is not ready it is probed again every `probe_interval`
    seconds; the first successful probe or scan start reports READY.
    """

    def __init__(self, delegate=None, adapter: Optional[str] = None,
                 connect_timeout: float = config.BLE_CONNECT_TIMEOUT,
                 probe_interval: float = config.ADAPTER_PROBE_INTERVAL, logger=None):
        self.delegate = delegate
        self.adapter = adapter
        self.connect_timeout = connect_timeout
        self.probe_interval = probe_interval
        self.logger = logger or logging.getLogger(__name__)

        self.state = RadioState.UNKNOWN
        self._scanner: Optional[BleakScanner] = None
        self._scanning = False
        self._scan_lock = asyncio.Lock()
        self._clients: Dict[str, BleakClient] = {}
        self._devices = {}
        self._tasks: Set[asyncio.Task] = set()
        self._probe_handle = None
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> RadioState:
        """Probes the adapter with a short scan start/stop and reports the result."""
        self._closed = False
        self.logger.info("[RADIO] Checking Bluetooth adapter...")
        return await self._probe()

    async def close(self) -> None:
        self._closed = True
        self._cancel_probe()

        async with self._scan_lock:
            await self._stop_scanner()

        for peripheral_id in list(self._clients):
            await self._disconnect(peripheral_id)

        for task in list(self._tasks):
            task.cancel()

    async def _probe(self) -> RadioState:
        async with self._scan_lock:
            if self._scanner is not None:
                # a running scan proves the adapter works
                state = RadioState.READY
            else:
                try:
                    scanner = self._create_scanner()
                    await scanner.start()
                    await scanner.stop()
                    state = RadioState.READY
                except BleakError as e:
                    self.logger.error(f"[RADIO] Bluetooth adapter not available: {e}")
                    state = classify_adapter_error(e)
                except Exception as e:
                    self.logger.exception(f"[RADIO] Unexpected error probing adapter: {e}")
                    state = classify_adapter_error(e)

        self._set_state(state)
        return state

    def _set_state(self, state: RadioState) -> None:
        self.state = state
        if state is RadioState.READY:
            self._cancel_probe()
        else:
            self._schedule_probe()
        if self.delegate:
            self.delegate.on_radio_state(state)

    def _schedule_probe(self) -> None:
        if self._closed or self._probe_handle is not None:
            return
        self.logger.info(f"[RADIO] Adapter is {self.state.value}, checking again in {self.probe_interval:g}s")
        self._probe_handle = asyncio.get_running_loop().call_later(self.probe_interval, self._on_probe_timer)

    def _cancel_probe(self) -> None:
        if self._probe_handle is not None:
            self._probe_handle.cancel()
            self._probe_handle = None

    def _on_probe_timer(self) -> None:
        self._probe_handle = None
        self._spawn(self._probe())

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _create_scanner(self) -> BleakScanner:
        kwargs = {"detection_callback": self._on_detection}
        if self.adapter:
            kwargs["adapter"] = self.adapter
        return BleakScanner(**kwargs)

    def start_scan(self) -> None:
        self._spawn(self._start_scan())

    def stop_scan(self) -> None:
        self._spawn(self._stop_scan())

    async def _start_scan(self) -> None:
        async with self._scan_lock:
            # A new scan request supersedes the running one
            await self._stop_scanner()
            # connect() only needs devices seen by the latest scan
            self._devices.clear()
            scanner = self._create_scanner()
            try:
                await scanner.start()
            except BleakError as e:
                self.logger.error(f"[RADIO] Scan start failed: {e}")
                self._set_state(classify_adapter_error(e))
                return
            except Exception as e:
                self.logger.exception(f"[RADIO] Unexpected error starting scan: {e}")
                self._set_state(classify_adapter_error(e))
                return
            self._scanner = scanner
            self._scanning = True
            self.logger.debug("[RADIO] Scan started")

            if self.state is not RadioState.READY:
                self._set_state(RadioState.READY)

    async def _stop_scan(self) -> None:
        async with self._scan_lock:
            await self._stop_scanner()

    async def _stop_scanner(self) -> None:
        scanner = self._scanner
        self._scanner = None
        self._scanning = False
        if scanner is None:
            return
        try:
            await scanner.stop()
            self.logger.debug("[RADIO] Scan stopped")
        except BleakError as e:
            self.logger.warning(f"[RADIO] Minor error while stopping scan: {e}")

    def _on_detection(self, device, advertisement_data) -> None:
        if not self._scanning:
            return

        self._devices[device.address] = device
        advertisement = Advertisement(
            peripheral_id=device.address,
            name=device.name or advertisement_data.local_name,
            rssi=advertisement_data.rssi,
            data={
                "service_uuids": list(advertisement_data.service_uuids),
                "manufacturer_data": dict(advertisement_data.manufacturer_data),
            },
        )
        if self.delegate:
            self.delegate.on_advertisement(advertisement)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(self, peripheral_id: str) -> None:
        self._spawn(self._connect(peripheral_id))

    def cancel_connection(self, peripheral_id: str) -> None:
        self._spawn(self._disconnect(peripheral_id))

    async def _connect(self, peripheral_id: str) -> None:
        target = self._devices.get(peripheral_id, peripheral_id)
        client = BleakClient(
            target,
            disconnected_callback=partial(self._on_client_disconnected, peripheral_id),
            timeout=self.connect_timeout,
        )
        self._clients[peripheral_id] = client

        try:
            self.logger.debug(f"[RADIO] Connecting to {peripheral_id}...")
            await client.connect()
        except CONNECT_ERRORS as e:
            self.logger.error(f"[RADIO] Connect to {peripheral_id} failed: {e!r}")
            self._clients.pop(peripheral_id, None)
            if self.delegate:
                self.delegate.on_connect_failed(peripheral_id, e)
            return
        except Exception as e:
            self.logger.exception(f"[RADIO] Unexpected error connecting to {peripheral_id}: {e}")
            self._clients.pop(peripheral_id, None)
            if self.delegate:
                self.delegate.on_connect_failed(peripheral_id, e)
            return

        if not client.is_connected:
            self._clients.pop(peripheral_id, None)
            if self.delegate:
                self.delegate.on_connect_failed(peripheral_id, BleakError("is_connected=False after connect"))
            return

        self.logger.info(f"[RADIO] Connected to {peripheral_id}")
        if self.delegate:
            self.delegate.on_connected(peripheral_id)

    async def _disconnect(self, peripheral_id: str) -> None:
        client = self._clients.get(peripheral_id)
        if client is None:
            return
        try:
            await client.disconnect()
        except (EOFError, asyncio.IncompleteReadError):
            # The camera usually kills the connection itself after the power-on command
            self.logger.warning("[RADIO] Ignored expected EOFError/IncompleteRead during disconnect.")
        except Exception as e:
            self.logger.warning(f"[RADIO] Minor error during disconnect cleanup: {e}")

    def _on_client_disconnected(self, peripheral_id: str, client) -> None:
        if self._clients.get(peripheral_id) is not client:
            return
        self._clients.pop(peripheral_id, None)
        self.logger.info(f"[RADIO] Disconnected from {peripheral_id}")
        if self.delegate:
            self.delegate.on_disconnected(peripheral_id, None)

    # ------------------------------------------------------------------
    # GATT
    # ------------------------------------------------------------------

    def discover_services(self, peripheral_id: str) -> None:
        self._spawn(self._discover_services(peripheral_id))

    def discover_characteristics(self, peripheral_id: str, service_uuid: str) -> None:
        self._spawn(self._discover_characteristics(peripheral_id, service_uuid))

    def write(self, peripheral_id: str, characteristic_uuid: str, payload: bytes, response: bool = True) -> None:
        self._spawn(self._write(peripheral_id, characteristic_uuid, payload, response))

    async def _discover_services(self, peripheral_id: str) -> None:
        # bleak resolves the GATT table while connecting
        services, error = [], None
        client = self._clients.get(peripheral_id)
        if client is None:
            error = BleakError(f"Client is not connected to {peripheral_id}")
        else:
            try:
                services = [service.uuid for service in client.services]
            except BleakError as e:
                error = e
            except Exception as e:
                self.logger.exception(f"[RADIO] Unexpected error reading services of {peripheral_id}: {e}")
                error = e

        if self.delegate:
            self.delegate.on_services_discovered(peripheral_id, services, error)

    async def _discover_characteristics(self, peripheral_id: str, service_uuid: str) -> None:
        characteristics, error = [], None
        client = self._clients.get(peripheral_id)
        if client is None:
            error = BleakError(f"Client is not connected to {peripheral_id}")
        else:
            try:
                service = client.services.get_service(service_uuid)
                if service is None:
                    raise BleakError(f"Service {service_uuid} not found")
                characteristics = [
                    CharacteristicInfo(
                        uuid=char.uuid,
                        properties=tuple(char.properties),
                        service_uuid=service_uuid,
                    )
                    for char in service.characteristics
                ]
            except BleakError as e:
                error = e
            except Exception as e:
                self.logger.exception(f"[RADIO] Unexpected error reading characteristics of {service_uuid}: {e}")
                error = e

        if self.delegate:
            self.delegate.on_characteristics_discovered(peripheral_id, service_uuid, characteristics, error)

    async def _write(self, peripheral_id: str, characteristic_uuid: str, payload: bytes, response: bool) -> None:
        error = None
        client = self._clients.get(peripheral_id)
        if client is None:
            error = BleakError(f"Client is not connected to {peripheral_id}")
        else:
            try:
                self.logger.debug(f"[RADIO] Writing {payload.hex(' ')} to {characteristic_uuid}")
                await client.write_gatt_char(characteristic_uuid, payload, response=response)
            except (BleakError, asyncio.TimeoutError, EOFError) as e:
                error = e
            except Exception as e:
                self.logger.exception(f"[RADIO] Unexpected error writing {characteristic_uuid}: {e}")
                error = e

        if self.delegate:
            self.delegate.on_write_completed(peripheral_id, characteristic_uuid, error)
