import argparse
import asyncio
import logging
import sys

import config
from camstatus.ble_manager import BLEManager, PowerOnResult
from camstatus.radio import BleakRadio
from camstatus.wifi_monitor import WiFiMonitor

logger = logging.getLogger("CameraStatus")


def setup_logging(debug=False):
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def find_camera(cameras, fragment):
    for camera in cameras:
        if fragment in camera.name or fragment in camera.id:
            return camera
    return None


async def run(args) -> int:
    radio = BleakRadio()
    manager = BLEManager(radio, scan_interval=args.interval)
    wifi = WiFiMonitor() if args.wifi else None

    def print_cameras(cameras):
        for camera in cameras:
            line = f"  - {camera.name} ({camera.id}) RSSI={camera.rssi}"
            if wifi:
                status = "available" if wifi.is_camera_network_associated(camera) else "not connected"
                line += f" WiFi={status}"
            logger.info(line)

    manager.on_devices_changed(print_cameras)
    manager.on_power_on_status(lambda status: logger.info(f"[POWER] {status.message}"))

    if wifi:
        wifi.ssid_changed.subscribe(lambda ssid: print_cameras(manager.cameras))
        wifi.start()

    state = await radio.open()
    if not manager.is_ready:
        logger.error(f"❌ Bluetooth not available: {state.label}")
        await radio.close()
        return 1

    try:
        if args.power_on:
            return await power_on(manager, args.power_on, args.duration)

        if args.duration:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
        return 0
    finally:
        manager.shutdown()
        if wifi:
            await wifi.stop()
        await radio.close()


async def power_on(manager: BLEManager, fragment: str, timeout=None) -> int:
    found = asyncio.Event()
    finished = asyncio.Event()
    outcome = {}

    def on_cameras(cameras):
        if find_camera(cameras, fragment):
            found.set()

    def on_status(status):
        if status.terminal and manager.is_powering_on:
            outcome["success"] = status.succeeded
            finished.set()

    manager.on_devices_changed(on_cameras)
    manager.on_power_on_status(on_status)
    on_cameras(manager.cameras)

    logger.info(f"Waiting for a camera matching '{fragment}'...")
    try:
        await asyncio.wait_for(found.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"❌ No camera matching '{fragment}' found.")
        return 1

    camera = find_camera(manager.cameras, fragment)
    result = manager.power_on(camera)
    if result is not PowerOnResult.STARTED:
        logger.error(f"❌ Power on not started: {result.value}")
        return 1

    await finished.wait()
    if outcome.get("success"):
        logger.info("✅ Camera powered on.")
        return 0
    logger.error("❌ Power on failed.")
    return 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Track nearby cameras over BLE and power them on.")
    parser.add_argument("--interval", type=float, default=config.PERIODIC_SCAN_INTERVAL,
                        help="Seconds between periodic scans")
    parser.add_argument("--duration", type=float, default=None,
                        help="Seconds to run (default: until interrupted)")
    parser.add_argument("--power-on", metavar="FRAGMENT",
                        help="Power on the first camera whose name or id contains FRAGMENT")
    parser.add_argument("--wifi", action="store_true", help="Show WiFi availability per camera")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    setup_logging(args.debug)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return 130


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
