"""Wire protocol of the matrix: command encoding, line framing and parsing.

Outbound commands::

    [// or \\] F <frame> <payload> [checksum] CR

Inbound lines::

    $$ F <frame> <level><output>I<input>      crosspoint changed
    $$ F <frame> Q <raw status bytes>         full status response

Nothing in here touches the network, the connection manager feeds bytes in
and writes the encoded commands out.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Pattern, Set, Tuple

from .const import *
from .profiles import CommandType, DeviceProfile
from .state import RoutingState

LOGGER = logging.getLogger(__name__)


def calculate_checksum(data: str) -> int:
    """XOR every character of ``data`` and force bit six high."""

    checksum = 0
    for char in data:
        checksum ^= ord(char)
    return checksum | CHECKSUM_FORCED_BITS


class CommandEncoder:
    """Builds the byte strings sent to the matrix."""

    def __init__(self, profile: DeviceProfile, frame: str) -> None:
        self.profile = profile
        self.frame = frame

    @property
    def prefix(self) -> str:
        if self.profile.command_type is CommandType.CHECKSUM:
            return CHECKSUM_PREFIX
        return PLAIN_PREFIX

    def encode(self, command: str, add_checksum: bool = True) -> bytes:
        """Frame a bare command (``F<frame>...``) for transmission."""

        commandstring = f"{self.prefix}{command}"
        checksum = ""
        if self.profile.command_type is CommandType.CHECKSUM and add_checksum:
            checksum = chr(calculate_checksum(commandstring))
        return f"{commandstring}{checksum}\r".encode("latin-1")

    def encode_switch(self, level_id: str, output: int, input_num: int) -> bytes:
        """Route ``input_num`` to ``output`` on one level."""

        return self.encode(
            f"F{self.frame}{level_id}"
            f"{self.profile.output_formatter(output)}I{self.profile.input_formatter(input_num)}"
        )

    def encode_query(self) -> bytes:
        """Ask the matrix for the state of all crosspoints."""
        return self.encode(f"F{self.frame}Q")


class LineFramer:
    """Reassembles CR terminated lines from the incoming byte stream.

    Data that never gets terminated is bounded by ``max_length``; once the
    accumulated bytes exceed it everything buffered is dropped. The partial
    line that follows such a flush may be corrupt, there is no resync beyond
    waiting for the next delimiter.
    """

    def __init__(self, max_length: int = MAX_BUFFER_LENGTH, name: str = "") -> None:
        self.max_length = max_length
        self._name = name
        self._buffer = bytearray()
        self.overflow_count = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def feed(self, chunk: bytes) -> List[bytes]:
        """Append ``chunk`` and return all complete, header-checked lines."""

        self._buffer.extend(chunk)
        if len(self._buffer) > self.max_length:
            self._buffer.clear()
            self.overflow_count += 1
            LOGGER.error("[%s] Receive buffer overflow, flushing.", self._name)
            return []

        lines: List[bytes] = []
        offset = 0
        while True:
            index = self._buffer.find(LINE_DELIMITER, offset)
            if index == -1:
                break
            line = self._clean_line(bytes(self._buffer[offset:index]))
            offset = index + 1
            if line is not None:
                lines.append(line)
        del self._buffer[:offset]
        return lines

    @staticmethod
    def _clean_line(line: bytes) -> Optional[bytes]:
        # LF left over from a CR/LF pair ends up at the start of the next line
        while line[:1] == b"\n":
            line = line[1:]
        if not line.startswith(RESPONSE_HEADER):
            # wrong header
            return None
        return line.rstrip(b"\r\n")


@dataclass
class ParseResult:
    """What a single response line changed."""

    matched: bool = False
    updates: Dict[Tuple[str, int], int] = field(default_factory=dict)
    feedbacks: Set[str] = field(default_factory=set)
    query_requested: bool = False


Handler = Callable[["ResponseParser", "re.Match[bytes]", bytes, ParseResult], bool]

CROSSPOINT_PATTERN: Pattern[bytes] = re.compile(rb"^\$\$F(\d\d)([A-Z])(\d\d)I(\d\d)")
QUERY_PATTERN: Pattern[bytes] = re.compile(rb"^\$\$F(\d\d)Q(.+)", re.DOTALL)
QUERY_PAYLOAD_OFFSET = 6  # len(b"$$F00Q")


class ResponseParser:
    """Classifies response lines and applies them to the routing state.

    Every matcher whose pattern fits a line gets to handle it; lines that
    match nothing are dropped without comment.
    """

    def __init__(self, profile: DeviceProfile, state: RoutingState, frame: str, name: str = "") -> None:
        self.profile = profile
        self.state = state
        self.frame = frame
        self._name = name

    def parse(self, line: bytes) -> ParseResult:
        result = ParseResult()
        for pattern, handler, feedback in RESPONSE_MATCHERS:
            match = pattern.match(line)
            if match is None:
                continue
            result.matched = True
            if handler(self, match, line, result):
                result.feedbacks.add(feedback)
        return result

    def handle_crosspoint(self, match, line: bytes, result: ParseResult) -> bool:
        """A single crosspoint has changed on the device."""

        frame, level, output_string, input_string = (group.decode("ascii") for group in match.groups())
        if frame != self.frame:
            LOGGER.debug("[%s] Ignoring crosspoint status for frame %s", self._name, frame)
            return False
        if self.profile.get_level(level) is None:
            LOGGER.warning(
                "[%s] Received crosspoint status for level %s, but this device only has the levels: %s",
                self._name,
                level,
                self.profile.describe_levels(),
            )
            return False
        output = int(output_string)
        if not 1 <= output <= self.profile.outputs:
            LOGGER.warning(
                "[%s] Received crosspoint status for invalid output number %s, valid outputs are 1-%s",
                self._name,
                output_string,
                self.profile.outputs,
            )
            return False
        input_num = int(input_string)
        if not 1 <= input_num <= self.profile.inputs:
            LOGGER.warning(
                "[%s] Received crosspoint status for invalid input number %s, valid inputs are 1-%s",
                self._name,
                input_string,
                self.profile.inputs,
            )
            return False

        self.state.set_crosspoint(level, output, input_num)
        result.updates[(level, output)] = input_num
        # Routing one crosspoint may change others as well, get a complete status
        result.query_requested = True
        LOGGER.debug("[%s] Level %s output %s now routed from input %s", self._name, level, output, input_num)
        return True

    def handle_query(self, match, line: bytes, result: ParseResult) -> bool:
        """Full status response; levels are identified by their payload offset."""

        frame = match.group(1).decode("ascii")
        if frame != self.frame:
            LOGGER.debug("[%s] Ignoring status response for frame %s", self._name, frame)
            return False
        values = line[QUERY_PAYLOAD_OFFSET:]
        if len(values) < self.profile.outputs:
            LOGGER.error(
                "[%s] Got status response but it contained too few crosspoints (%s < %s)",
                self._name,
                len(values),
                self.profile.outputs,
            )
            return False

        for level in self.profile.levels:
            if level.position_in_query is None:
                continue
            if level.position_in_query + self.profile.outputs > len(values):
                LOGGER.warning(
                    "[%s] Status response too short for level %s (%s), skipping it",
                    self._name,
                    level.id,
                    level.label,
                )
                continue
            for index in range(self.profile.outputs):
                input_num = self.profile.input_parser(values[level.position_in_query + index])
                if input_num is None or input_num > self.profile.inputs:
                    continue
                self.state.set_crosspoint(level.id, index + 1, input_num)
                result.updates[(level.id, index + 1)] = input_num
        return True


RESPONSE_MATCHERS: List[Tuple[Pattern[bytes], Handler, str]] = [
    (CROSSPOINT_PATTERN, ResponseParser.handle_crosspoint, FEEDBACK_ROUTE),
    (QUERY_PATTERN, ResponseParser.handle_query, FEEDBACK_ROUTE),
]
