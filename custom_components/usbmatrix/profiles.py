"""Static descriptions of the supported matrix variants.

A profile tells the rest of the integration how big the matrix is, which
levels (signal planes) it switches, where each level sits in a full status
response and how port numbers are written to / read from the wire.

Profiles are complete values in a closed table keyed by device type, there is
no shared default that gets patched per device.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

from .const import *

LOGGER = logging.getLogger(__name__)

RawStatus = Union[int, str, bytes]
Formatter = Callable[[int], str]
Parser = Callable[[RawStatus], Optional[int]]


class CommandType(enum.Enum):
    """Command framing variant understood by the device."""

    CHECKSUM = "checksum"
    PLAIN = "plain"


def format_port(num: int) -> str:
    """Format a port number as zero-padded two digit decimal."""
    return str(num).zfill(2)


def parse_status_byte(value: RawStatus) -> Optional[int]:
    """Decode one byte of a full status response into an input number.

    Returns ``None`` if the byte does not carry a valid value, ``0`` if the
    output is unassigned and the 1-based input number otherwise.
    """

    if isinstance(value, (bytes, bytearray, str)):
        if len(value) != 1:
            return None
        raw = ord(value)
    else:
        raw = value

    if not raw & STATUS_VALID_BIT:
        # value is not valid
        return None
    if raw == STATUS_UNASSIGNED:
        return UNASSIGNED
    if raw & STATUS_DISCONNECTED_BITS:
        # Undocumented state; the device web interface shows these as
        # disconnected. Observed behaviour only, not confirmed by the vendor.
        return UNASSIGNED
    return (raw & STATUS_INPUT_MASK) + 1


@dataclass(frozen=True)
class Level:
    """A switchable signal plane (video, USB, serial, ...)."""

    id: str
    label: str
    # Byte offset of this level's first output inside a ``Q`` response payload,
    # ``None`` if the level is not reported there.
    position_in_query: Optional[int] = None


@dataclass(frozen=True)
class DeviceProfile:
    """Everything the protocol layer needs to know about one matrix variant.

    Crosspoints are addressed 1-based everywhere in the integration; the
    formatters and parsers are only applied when talking to the device.
    """

    name: str
    command_type: CommandType
    inputs: int
    outputs: int
    levels: Tuple[Level, ...]
    input_formatter: Formatter = format_port
    output_formatter: Formatter = format_port
    input_parser: Parser = parse_status_byte
    output_parser: Parser = parse_status_byte

    def __post_init__(self) -> None:
        if self.inputs < 1 or self.outputs < 1:
            raise ValueError(f"Profile {self.name} needs at least one input and output")
        if not self.levels:
            raise ValueError(f"Profile {self.name} needs at least one level")

    @property
    def level_ids(self) -> List[str]:
        return [level.id for level in self.levels]

    @property
    def input_choices(self) -> List[Tuple[int, str]]:
        return [(num, f"Input {num}") for num in range(1, self.inputs + 1)]

    @property
    def output_choices(self) -> List[Tuple[int, str]]:
        return [(num, f"Output {num}") for num in range(1, self.outputs + 1)]

    def get_level(self, level_id: str) -> Optional[Level]:
        for level in self.levels:
            if level.id == level_id:
                return level
        return None

    def describe_levels(self) -> str:
        return ", ".join(f"{level.id} ({level.label})" for level in self.levels)


DEFAULT_PROFILE = DeviceProfile(
    name="16x16",
    command_type=CommandType.CHECKSUM,
    inputs=16,
    outputs=16,
    levels=(Level("V", "HDMI", 0),),
)

DEVICE_PROFILES: Dict[int, DeviceProfile] = {
    1: DeviceProfile(
        name="MU-88",
        command_type=CommandType.CHECKSUM,
        inputs=8,
        outputs=8,
        levels=(Level("U", "USB", 8),),
    ),
    2: DeviceProfile(
        name="MXU-88",
        command_type=CommandType.CHECKSUM,
        inputs=8,
        outputs=8,
        levels=(Level("V", "HDMI", 0), Level("U", "USB", 8)),
    ),
    3: DeviceProfile(
        name="DVR 16x16",
        command_type=CommandType.CHECKSUM,
        inputs=16,
        outputs=16,
        levels=(Level("U", "HDMI", 0),),
    ),
    4: DeviceProfile(
        name="MXCORE 32X32",
        command_type=CommandType.CHECKSUM,
        inputs=32,
        outputs=32,
        levels=(Level("U", "HDMI", 0), Level("R", "RS-232", 32)),
    ),
}


def build_device_profile(device_type) -> DeviceProfile:
    """Return the profile for ``device_type``, falling back to the default."""

    try:
        profile = DEVICE_PROFILES.get(int(device_type))
    except (TypeError, ValueError):
        profile = None

    if profile is None:
        LOGGER.warning(
            "Configured device type %r not found, using default values (%s)",
            device_type,
            DEFAULT_PROFILE.name,
        )
        return DEFAULT_PROFILE
    return profile
