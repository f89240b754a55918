import asyncio
import logging
import subprocess
from typing import Iterable, List, Optional, Tuple

import config
from camstatus.events import Subscribers
from camstatus.identifiers import is_network_associated
from camstatus.models import Device

logger = logging.getLogger(__name__)


class WiFiMonitor:
    """
    Polls the SSID of the currently associated WiFi network.

    Uses `iwgetid -r` and falls back to NetworkManager (nmcli) when iwgetid
    is not installed.
    """

    def __init__(self, check_interval: float = config.WIFI_CHECK_INTERVAL, logger=None):
        self.check_interval = check_interval
        self.logger = logger or logging.getLogger(__name__)
        self.connected_ssid: Optional[str] = None
        self.ssid_changed = Subscribers("ssid_changed")
        self._task: Optional[asyncio.Task] = None

    def _run_command(self, command_list, log_errors=True):
        """
        Helper to run shell commands safely without shell=True.

        Args:
            command_list (list): The command and arguments.
            log_errors (bool): If False, errors won't be logged.
        """
        try:
            result = subprocess.run(
                command_list,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            if log_errors:
                cmd_str = " ".join(command_list)
                self.logger.error(f"Command failed: {cmd_str}\nError: {e.stderr}")
            return None

    def read_connected_ssid(self) -> Optional[str]:
        try:
            # iwgetid exits non-zero when not associated
            ssid = self._run_command(["iwgetid", "-r"], log_errors=False)
            return ssid or None
        except FileNotFoundError:
            pass

        try:
            output = self._run_command(["nmcli", "-t", "-f", "ACTIVE,SSID", "dev", "wifi"])
        except FileNotFoundError:
            self.logger.warning("[WIFI] Neither iwgetid nor nmcli is available")
            return None

        if output:
            for line in output.split('\n'):
                active, _, ssid = line.partition(':')
                if active == "yes" and ssid:
                    return ssid.replace('\\:', ':')
        return None

    def update(self) -> Optional[str]:
        ssid = self.read_connected_ssid()
        self._set_ssid(ssid)
        return ssid

    def _set_ssid(self, ssid: Optional[str]) -> None:
        if ssid == self.connected_ssid:
            return
        if ssid:
            self.logger.info(f"[WIFI] Connected to WiFi: {ssid}")
        else:
            self.logger.info("[WIFI] No WiFi connection found")
        self.connected_ssid = ssid
        self.ssid_changed.emit(ssid)

    def start(self) -> None:
        if self._task and not self._task.done():
            self.logger.warning("[WIFI] Already monitoring, ignoring start request")
            return
        self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _poll_loop(self) -> None:
        while True:
            ssid = await asyncio.to_thread(self.read_connected_ssid)
            self._set_ssid(ssid)
            await asyncio.sleep(self.check_interval)

    def is_connected_to(self, identifier: str) -> bool:
        if not self.connected_ssid:
            return False
        return identifier in self.connected_ssid

    def is_camera_network_associated(self, device: Device) -> bool:
        return is_network_associated(device.name, self.connected_ssid)

    def camera_wifi_status(self, devices: Iterable[Device]) -> List[Tuple[Device, bool]]:
        return [
            (device, self.is_camera_network_associated(device))
            for device in devices
        ]
