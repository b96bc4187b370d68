"""Local mirror of the matrix crosspoints and of the staged take selections."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .const import *
from .profiles import DeviceProfile

LOGGER = logging.getLogger(__name__)


class RoutingState:
    """Authoritative in-memory routing state for one device.

    ``crosspoints[level][output]`` holds the input currently routed to
    ``output`` (index 0 is unused, ``0`` means unassigned).
    ``selected_source`` / ``selected_destination`` hold the ports staged for a
    manual take per level.
    """

    def __init__(self, profile: DeviceProfile) -> None:
        self.profile: DeviceProfile = profile
        self.crosspoints: Dict[str, List[int]] = {}
        self.selected_source: Dict[str, int] = {}
        self.selected_destination: Dict[str, int] = {}
        self.reset(profile)

    def reset(self, profile: Optional[DeviceProfile] = None) -> None:
        """Drop all known routes and selections, optionally for a new profile."""

        if profile is not None:
            self.profile = profile
        self.crosspoints = {}
        self.selected_source = {}
        self.selected_destination = {}
        for level in self.profile.levels:
            self.crosspoints[level.id] = [UNASSIGNED] * (self.profile.outputs + 1)
            self.selected_source[level.id] = NOTHING_SELECTED
            self.selected_destination[level.id] = NOTHING_SELECTED

    def validate_level(self, level_id: str) -> None:
        if level_id not in self.crosspoints:
            raise ValueError(
                f"Unknown level {level_id!r}, this device only has the levels: {self.profile.describe_levels()}"
            )

    def validate_output(self, output: int) -> None:
        if not 1 <= output <= self.profile.outputs:
            raise ValueError(f"Invalid output number {output}, valid outputs are 1-{self.profile.outputs}")

    def validate_input(self, input_num: int) -> None:
        if not 1 <= input_num <= self.profile.inputs:
            raise ValueError(f"Invalid input number {input_num}, valid inputs are 1-{self.profile.inputs}")

    # ------------------------------------------------------------------
    # Crosspoints
    # ------------------------------------------------------------------

    def get_input(self, level_id: str, output: int) -> int:
        self.validate_level(level_id)
        self.validate_output(output)
        return self.crosspoints[level_id][output]

    def set_crosspoint(self, level_id: str, output: int, input_num: int) -> bool:
        """Store a crosspoint; returns True if the value changed.

        ``input_num`` may be ``0`` to mark the output as unassigned.
        """

        self.validate_level(level_id)
        self.validate_output(output)
        if input_num != UNASSIGNED:
            self.validate_input(input_num)
        changed = self.crosspoints[level_id][output] != input_num
        self.crosspoints[level_id][output] = input_num
        return changed

    def routes(self, level_id: str) -> Dict[int, int]:
        """Return ``{output: input}`` for every output of a level."""
        self.validate_level(level_id)
        return {output: self.crosspoints[level_id][output] for output in range(1, self.profile.outputs + 1)}

    # ------------------------------------------------------------------
    # Take selections
    # ------------------------------------------------------------------

    def select_source(self, level_id: str, port: int) -> int:
        """Stage ``port`` as source; selecting the same port again deselects it."""

        self.validate_level(level_id)
        self.validate_input(port)
        if self.selected_source[level_id] == port:
            self.selected_source[level_id] = DESELECTED
        else:
            self.selected_source[level_id] = port
        return self.selected_source[level_id]

    def select_destination(self, level_id: str, port: int) -> int:
        """Stage ``port`` as destination; selecting the same port again deselects it."""

        self.validate_level(level_id)
        self.validate_output(port)
        if self.selected_destination[level_id] == port:
            self.selected_destination[level_id] = DESELECTED
        else:
            self.selected_destination[level_id] = port
        return self.selected_destination[level_id]

    def take_candidate(self, level_id: str) -> Optional[tuple]:
        """Return ``(input, output)`` staged for a take, or None if incomplete."""

        self.validate_level(level_id)
        source = self.selected_source[level_id]
        destination = self.selected_destination[level_id]
        if 1 <= source <= self.profile.inputs and 1 <= destination <= self.profile.outputs:
            return source, destination
        return None

    # ------------------------------------------------------------------
    # Indicators
    # ------------------------------------------------------------------

    def is_routed(self, level_id: str, input_num: int, output: int) -> bool:
        """Check whether ``input_num`` is routed to ``output``.

        A negative input or output stands for the currently selected port.
        Unknown levels and ports evaluate to False.
        """

        if level_id not in self.crosspoints:
            LOGGER.error("Trying to read route status for unknown level %s", level_id)
            return False
        if output < 0:
            output = self.selected_destination[level_id]
        if input_num < 0:
            input_num = self.selected_source[level_id]
        if not 0 <= output <= self.profile.outputs:
            return False
        return self.crosspoints[level_id][output] == input_num

    def is_source_selected(self, level_id: str, port: int) -> bool:
        return self.selected_source.get(level_id) == port

    def is_destination_selected(self, level_id: str, port: int) -> bool:
        return self.selected_destination.get(level_id) == port
