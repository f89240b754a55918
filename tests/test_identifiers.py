# tests/test_identifiers.py
from camstatus.identifiers import (
    CameraIdentifier,
    EM5CameraIdentifier,
    IdentifierRegistry,
    RicohCameraIdentifier,
    default_registry,
    extract_wifi_identifier,
    is_network_associated,
)
from camstatus.models import Advertisement, CameraFamily, Device
from tests.mock_radio import EM5_ID, RICOH_ID, em5_advertisement, ricoh_advertisement


def test_em5_matches_name_fragments():
    identifier = EM5CameraIdentifier()

    assert identifier.matches("E-M5MKIII-P-BJ8A15412", EM5_ID)
    assert identifier.matches("BJ8A15412", EM5_ID)
    assert not identifier.matches("GR_5A9E88", EM5_ID)
    assert not identifier.matches(None, EM5_ID)


def test_ricoh_matches_known_id_without_name():
    identifier = RicohCameraIdentifier()

    assert identifier.matches(None, RICOH_ID)
    assert identifier.matches("anything", RICOH_ID)
    assert identifier.matches("GR_5A9E88", "AA:BB:CC:DD:EE:FF")
    assert not identifier.matches(None, "AA:BB:CC:DD:EE:FF")


def test_id_match_is_exact():
    identifier = RicohCameraIdentifier()
    assert not identifier.matches(None, RICOH_ID.lower())
    assert not identifier.matches(None, RICOH_ID[:-1])


def test_build_uses_advertised_name():
    device = EM5CameraIdentifier().build("E-M5MKIII-P-BJ8A15412", EM5_ID, -55)

    assert device.id == EM5_ID
    assert device.name == "E-M5MKIII-P-BJ8A15412"
    assert device.rssi == -55
    assert device.is_available
    assert device.family is CameraFamily.OLYMPUS_EM5


def test_build_synthesizes_name_from_id_suffix():
    assert RicohCameraIdentifier().build(None, RICOH_ID, -70).name == "Ricoh Camera (E3BE4F)"
    assert EM5CameraIdentifier().build(None, EM5_ID, -70).name == "EM5 Camera (:32:E8)"


def test_custom_known_values():
    identifier = EM5CameraIdentifier(known_names=["MYCAM"], known_ids=["ID-1"])
    assert identifier.matches("xxMYCAMxx", "other")
    assert identifier.matches(None, "ID-1")
    assert not identifier.matches("BJ8A15412", "other")


def test_registry_classifies_both_families():
    registry = default_registry()

    em5 = registry.identify(em5_advertisement())
    ricoh = registry.identify(ricoh_advertisement(name=None))

    assert em5.family is CameraFamily.OLYMPUS_EM5
    assert ricoh.family is CameraFamily.RICOH_GR
    assert ricoh.name == "Ricoh Camera (E3BE4F)"


def test_registry_ignores_unknown_devices():
    registry = default_registry()
    assert registry.identify(Advertisement("11:22:33:44:55:66", "Some Camera", -40)) is None
    assert registry.identify(Advertisement("11:22:33:44:55:66", None, -40)) is None


def test_registry_first_match_wins():
    class AlwaysMatches(CameraIdentifier):
        family = CameraFamily.RICOH_GR

        def matches(self, name, peripheral_id, advertisement_data=None):
            return True

    registry = IdentifierRegistry([EM5CameraIdentifier()])
    registry.register(AlwaysMatches())

    assert registry.identify(em5_advertisement()).family is CameraFamily.OLYMPUS_EM5
    assert registry.identify(Advertisement("x", "y", 0)).family is CameraFamily.RICOH_GR
    assert len(registry) == 2


def test_registry_skips_identifier_that_builds_nothing():
    class Broken(EM5CameraIdentifier):
        def build(self, name, peripheral_id, rssi):
            return None

    registry = IdentifierRegistry([Broken(), EM5CameraIdentifier(known_names=["BJ8A"])])
    device = registry.identify(em5_advertisement())
    assert device is not None and device.id == EM5_ID


def test_device_identity_is_id_only():
    a = Device(id="1", name="first", rssi=-10)
    b = Device(id="1", name="second", rssi=-90)
    c = Device(id="2", name="first", rssi=-10)

    assert a == b
    assert hash(a) == hash(b)
    assert a != c
    assert len({a, b, c}) == 2


def test_extract_wifi_identifier():
    assert extract_wifi_identifier("E-M5MKIII-P-BJ8A15412") == "BJ8A15412"
    assert extract_wifi_identifier("E-M5MKIII-Q") == "E-M5MKIII"
    assert extract_wifi_identifier("GR_5A9E88") == "GR_5A9E88"
    assert extract_wifi_identifier("Unknown Cam") == "Unknown Cam"


def test_is_network_associated():
    assert is_network_associated("E-M5MKIII-P-BJ8A15412", "E-M5MKIII-P-BJ8A15412")
    assert is_network_associated("BJ8A15412", "OLYMPUS-BJ8A15412")
    assert is_network_associated("GR_5A9E88", "GR_5A9E88_wifi")
    assert not is_network_associated("GR_5A9E88", "HomeNetwork")
    assert not is_network_associated("GR_5A9E88", None)
    assert not is_network_associated("GR_5A9E88", "")
