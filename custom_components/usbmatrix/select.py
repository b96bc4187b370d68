"""Select platform for the crosspoint matrix HomeAssistant integration.

Per output: choose the routed input. Per level: stage a source and a
destination for the "Take selected" button.
"""
from __future__ import annotations

import logging

from homeassistant.components.select import SelectEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN

LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Add route and selection entities for passed config_entry in HA."""
    matrix = hass.data[DOMAIN][config_entry.entry_id]

    entities: list[SelectEntity] = []
    for level in matrix.device.levels:
        for output in range(1, matrix.device.outputs + 1):
            entities.append(UsbMatrixRouteSelect(matrix, level, output))
        entities.append(UsbMatrixSourceSelect(matrix, level))
        entities.append(UsbMatrixDestinationSelect(matrix, level))
    async_add_entities(entities)


class UsbMatrixSelectBase(SelectEntity):
    """Shared plumbing for the matrix select entities."""

    should_poll = False
    _attr_has_entity_name = True

    def __init__(self, matrix, level) -> None:
        self._matrix = matrix
        self._level = level

    async def async_added_to_hass(self) -> None:
        self._matrix.register_callback(self.async_write_ha_state)

    async def async_will_remove_from_hass(self) -> None:
        self._matrix.remove_callback(self.async_write_ha_state)

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._matrix._id)},
            name=f"{self._matrix.device.name} {self._matrix.config.host}",
            model=self._matrix.device.name,
            configuration_url=f"http://{self._matrix.config.host}",
        )

    @staticmethod
    def _label_to_port(choices, option: str) -> int:
        for port, label in choices:
            if label == option:
                return port
        raise ValueError(f"Unknown option {option}")

    @staticmethod
    def _port_to_label(choices, port: int) -> str | None:
        for choice, label in choices:
            if choice == port:
                return label
        return None


class UsbMatrixRouteSelect(UsbMatrixSelectBase):
    """Input routed to one output; changing it sends a switch command."""

    def __init__(self, matrix, level, output: int) -> None:
        super().__init__(matrix, level)
        self._output = output
        self._attr_name = f"{level.label} output {output} route"
        self._attr_unique_id = f"{matrix._id}_route_{level.id}_{output}"
        self._attr_options = [label for _, label in matrix.device.input_choices]

    @property
    def available(self) -> bool:
        return self._matrix.online

    @property
    def current_option(self) -> str | None:
        input_num = self._matrix.state.get_input(self._level.id, self._output)
        return self._port_to_label(self._matrix.device.input_choices, input_num)

    @property
    def extra_state_attributes(self):
        # true when the staged source is what this output carries
        return {"selected_source_routed": self._matrix.state.is_routed(self._level.id, -1, self._output)}

    async def async_select_option(self, option: str) -> None:
        input_num = self._label_to_port(self._matrix.device.input_choices, option)
        await self._matrix.switch(input_num, self._output, [self._level.id])


class UsbMatrixSourceSelect(UsbMatrixSelectBase):
    """Source staged for the next take on one level."""

    def __init__(self, matrix, level) -> None:
        super().__init__(matrix, level)
        self._attr_name = f"{level.label} selected source"
        self._attr_unique_id = f"{matrix._id}_source_{level.id}"
        self._attr_options = [label for _, label in matrix.device.input_choices]

    @property
    def current_option(self) -> str | None:
        for port, label in self._matrix.device.input_choices:
            if self._matrix.state.is_source_selected(self._level.id, port):
                return label
        return None

    async def async_select_option(self, option: str) -> None:
        port = self._label_to_port(self._matrix.device.input_choices, option)
        self._matrix.select_source(port, [self._level.id])


class UsbMatrixDestinationSelect(UsbMatrixSelectBase):
    """Destination staged for the next take on one level."""

    def __init__(self, matrix, level) -> None:
        super().__init__(matrix, level)
        self._attr_name = f"{level.label} selected destination"
        self._attr_unique_id = f"{matrix._id}_destination_{level.id}"
        self._attr_options = [label for _, label in matrix.device.output_choices]

    @property
    def current_option(self) -> str | None:
        for port, label in self._matrix.device.output_choices:
            if self._matrix.state.is_destination_selected(self._level.id, port):
                return label
        return None

    async def async_select_option(self, option: str) -> None:
        port = self._label_to_port(self._matrix.device.output_choices, option)
        self._matrix.select_destination(port, [self._level.id])
