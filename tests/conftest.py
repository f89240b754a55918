import pytest

from camstatus.models import CameraFamily, Device
from tests.mock_radio import EM5_ID, EM5_NAME, RICOH_ID, RICOH_NAME, FakeLoop, FakeRadio


@pytest.fixture
def loop():
    return FakeLoop()


@pytest.fixture
def radio():
    return FakeRadio()


@pytest.fixture
def em5_device():
    return Device(id=EM5_ID, name=EM5_NAME, rssi=-60, family=CameraFamily.OLYMPUS_EM5)


@pytest.fixture
def ricoh_device():
    return Device(id=RICOH_ID, name=RICOH_NAME, rssi=-70, family=CameraFamily.RICOH_GR)
