# tests/test_main.py
import asyncio

import pytest

from camstatus.ble_manager import BLEManager
from camstatus.models import RadioState
from main import find_camera, power_on
from tests.mock_radio import EM5_ID, FakeRadio, em5_advertisement, ricoh_advertisement


def ready_manager():
    manager = BLEManager(FakeRadio(), loop=asyncio.get_running_loop())
    manager.on_radio_state(RadioState.READY)
    return manager


def test_find_camera_by_name_or_id(em5_device, ricoh_device):
    cameras = (em5_device, ricoh_device)

    assert find_camera(cameras, "E-M5") is em5_device
    assert find_camera(cameras, "GR_") is ricoh_device
    assert find_camera(cameras, EM5_ID[:8]) is em5_device
    assert find_camera(cameras, "X100V") is None


@pytest.mark.asyncio
async def test_power_on_gives_up_when_camera_never_shows():
    manager = ready_manager()

    assert await power_on(manager, "E-M5", timeout=0.05) == 1
    assert not manager.is_powering_on
    manager.shutdown()


@pytest.mark.asyncio
async def test_power_on_refuses_unsupported_camera():
    manager = ready_manager()
    manager.on_advertisement(ricoh_advertisement())

    assert await power_on(manager, "GR_", timeout=1) == 1
    assert not manager.is_powering_on
    manager.shutdown()


@pytest.mark.asyncio
async def test_power_on_starts_session_for_em5():
    manager = ready_manager()
    manager.on_advertisement(em5_advertisement())
    task = asyncio.ensure_future(power_on(manager, "E-M5", timeout=1))
    for _ in range(20):
        await asyncio.sleep(0)

    assert manager.is_powering_on
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    manager.shutdown()
