"""Tests for device profiles and status byte decoding."""

import logging

import pytest

from custom_components.usbmatrix.profiles import (
    DEFAULT_PROFILE,
    DEVICE_PROFILES,
    CommandType,
    DeviceProfile,
    Level,
    build_device_profile,
    format_port,
    parse_status_byte,
)


def test_known_device_types():
    """Every configurable device type maps to its own profile."""
    assert build_device_profile(1).name == "MU-88"
    assert build_device_profile(2).name == "MXU-88"
    assert build_device_profile(3).name == "DVR 16x16"
    assert build_device_profile(4).name == "MXCORE 32X32"


def test_mxcore_levels():
    profile = build_device_profile(4)
    assert profile.inputs == 32
    assert profile.outputs == 32
    assert [(level.id, level.position_in_query) for level in profile.levels] == [("U", 0), ("R", 32)]


def test_device_type_as_string():
    """Config entries may carry the device type as a string."""
    assert build_device_profile("2") is DEVICE_PROFILES[2]


def test_unknown_device_type_falls_back(caplog):
    """An unknown selector yields the 16x16 default and a warning."""
    with caplog.at_level(logging.WARNING):
        profile = build_device_profile(99)
    assert profile is DEFAULT_PROFILE
    assert profile.inputs == 16 and profile.outputs == 16
    assert profile.level_ids == ["V"]
    assert "not found" in caplog.text


def test_garbage_device_type_falls_back():
    assert build_device_profile(None) is DEFAULT_PROFILE
    assert build_device_profile("abc") is DEFAULT_PROFILE


def test_all_profiles_use_checksum():
    for profile in list(DEVICE_PROFILES.values()) + [DEFAULT_PROFILE]:
        assert profile.command_type is CommandType.CHECKSUM


def test_choices():
    profile = build_device_profile(1)
    assert profile.input_choices[0] == (1, "Input 1")
    assert profile.output_choices[-1] == (8, "Output 8")
    assert len(profile.input_choices) == 8


def test_get_level():
    profile = build_device_profile(2)
    assert profile.get_level("U").label == "USB"
    assert profile.get_level("X") is None


def test_format_port():
    assert format_port(3) == "03"
    assert format_port(12) == "12"


def test_profile_requires_levels():
    with pytest.raises(ValueError):
        DeviceProfile(name="broken", command_type=CommandType.PLAIN, inputs=4, outputs=4, levels=())


def test_profile_requires_ports():
    with pytest.raises(ValueError):
        DeviceProfile(name="broken", command_type=CommandType.PLAIN, inputs=0, outputs=4, levels=(Level("V", "HDMI"),))


@pytest.mark.parametrize(
    "raw, expected",
    [
        (0x80, 1),
        (0x87, 8),
        (0x8F, 16),
        (0xFF, 0),  # unassigned
        (0xA3, 0),  # bit 5 set, shown as disconnected
        (0xC3, 0),  # bit 6 set, shown as disconnected
        (0x05, None),  # bit 7 clear, not a valid value
    ],
)
def test_parse_status_byte(raw, expected):
    assert parse_status_byte(raw) == expected


def test_parse_status_byte_accepts_characters():
    assert parse_status_byte(chr(0x82)) == 3
    assert parse_status_byte(bytes([0x82])) == 3
    assert parse_status_byte(b"") is None
