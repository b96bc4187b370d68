"""Tests for command encoding and line framing."""

import logging

from custom_components.usbmatrix.profiles import CommandType, DeviceProfile, Level
from custom_components.usbmatrix.protocol import CommandEncoder, LineFramer, calculate_checksum


def test_query_command_with_checksum(usb_profile):
    """//F00Q xors to 0x17, bit six forced gives 'W'."""
    assert CommandEncoder(usb_profile, "00").encode_query() == b"//F00QW\r"


def test_switch_command_with_checksum(usb_profile):
    encoder = CommandEncoder(usb_profile, "00")
    assert encoder.encode_switch("U", 3, 5) == b"//F00U03I05\\\r"


def test_switch_command_uses_frame(usb_profile):
    command = CommandEncoder(usb_profile, "07").encode_switch("U", 12, 1)
    assert command.startswith(b"//F07U12I01")
    assert command.endswith(b"\r")
    assert len(command) == len(b"//F07U12I01") + 2


def test_plain_device_has_no_checksum():
    profile = DeviceProfile(
        name="plain",
        command_type=CommandType.PLAIN,
        inputs=4,
        outputs=4,
        levels=(Level("V", "HDMI", 0),),
    )
    encoder = CommandEncoder(profile, "00")
    assert encoder.encode_query() == b"\\F00Q\r"
    assert encoder.encode_switch("V", 1, 4) == b"\\F00V01I04\r"


def test_checksum_can_be_suppressed(usb_profile):
    assert CommandEncoder(usb_profile, "00").encode("F00Q", add_checksum=False) == b"//F00Q\r"


def test_checksum_is_pure_and_has_bit_six():
    for data in ("//F00Q", "//F00U03I05", "//F31R32I32", "\\F00Q", ""):
        first = calculate_checksum(data)
        assert first == calculate_checksum(data)
        assert first & 0b01000000


def test_framer_splits_lines():
    framer = LineFramer()
    assert framer.feed(b"$$F00U01I02\r$$F00U02I03\r") == [b"$$F00U01I02", b"$$F00U02I03"]
    assert len(framer) == 0


def test_framer_keeps_partial_line():
    framer = LineFramer()
    assert framer.feed(b"$$F00U0") == []
    assert framer.feed(b"1I02\r$$F0") == [b"$$F00U01I02"]
    assert len(framer) == len(b"$$F0")
    assert framer.feed(b"0U02I03\r") == [b"$$F00U02I03"]


def test_framer_discards_lines_without_header():
    framer = LineFramer()
    assert framer.feed(b"garbage\r$F00U01I02\r$$F00U01I02\r") == [b"$$F00U01I02"]


def test_framer_strips_line_feeds():
    framer = LineFramer()
    assert framer.feed(b"$$F00U01I02\n\r\n$$F00U02I03\r") == [b"$$F00U01I02", b"$$F00U02I03"]


def test_framer_overflow_flushes(caplog):
    """More than 2048 bytes without a delimiter are dropped and logged."""
    framer = LineFramer()
    with caplog.at_level(logging.ERROR):
        assert framer.feed(b"$$F00Q" + b"\x80" * 2000) == []
        assert framer.feed(b"\x80" * 100 + b"\r") == []
    assert framer.overflow_count == 1
    assert len(framer) == 0
    assert "overflow" in caplog.text
    # framing continues with the next complete line
    assert framer.feed(b"$$F00U01I02\r") == [b"$$F00U01I02"]


def test_framer_accepts_exactly_max_length():
    framer = LineFramer(max_length=16)
    assert framer.feed(b"$$" + b"x" * 14) == []
    assert framer.overflow_count == 0
    assert framer.feed(b"\r") == []
    assert framer.overflow_count == 1


def test_framer_reset():
    framer = LineFramer()
    framer.feed(b"$$F00")
    framer.reset()
    assert framer.feed(b"U01I02\r") == []
