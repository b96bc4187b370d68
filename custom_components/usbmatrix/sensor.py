"""Sensor platform for the crosspoint matrix HomeAssistant integration.

Provides one sensor per level and output reporting which input is routed to
it (0 = disconnected), plus a diagnostic connection status sensor.
"""
from __future__ import annotations

import logging

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EntityCategory
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .usbmatrix import variable_id

LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up matrix sensors for a config entry."""
    matrix = hass.data[DOMAIN][config_entry.entry_id]

    entities: list[SensorEntity] = [UsbMatrixConnectionSensor(matrix)]
    for level in matrix.device.levels:
        for output in range(1, matrix.device.outputs + 1):
            entities.append(UsbMatrixOutputSensor(matrix, level, output))
    async_add_entities(entities)


class UsbMatrixOutputSensor(SensorEntity):
    """Number of the input assigned to one output of one level."""

    should_poll = False
    _attr_has_entity_name = True

    def __init__(self, matrix, level, output: int) -> None:
        self._matrix = matrix
        self._level = level
        self._output = output
        self._variable = variable_id(level.id, output)
        self._attr_name = f"{level.label} output {output}"
        self._attr_unique_id = f"{matrix._id}_{self._variable}"

    async def async_added_to_hass(self) -> None:
        self._matrix.register_callback(self.async_write_ha_state)

    async def async_will_remove_from_hass(self) -> None:
        self._matrix.remove_callback(self.async_write_ha_state)

    @property
    def native_value(self) -> int:
        return int(self._matrix.variables.get(self._variable, 0))

    @property
    def available(self) -> bool:
        return self._matrix.online

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._matrix._id)},
            name=f"{self._matrix.device.name} {self._matrix.config.host}",
            model=self._matrix.device.name,
            configuration_url=f"http://{self._matrix.config.host}",
        )


class UsbMatrixConnectionSensor(SensorEntity):
    """Diagnostic sensor exposing the connection status."""

    should_poll = False
    _attr_has_entity_name = True

    def __init__(self, matrix) -> None:
        self._matrix = matrix
        self._attr_name = "Connection"
        self._attr_unique_id = f"{matrix._id}_connection"
        LOGGER.debug("[%s] Initialising connection status sensor", matrix.config.host)

    async def async_added_to_hass(self) -> None:
        self._matrix.register_callback(self.async_write_ha_state)

    async def async_will_remove_from_hass(self) -> None:
        self._matrix.remove_callback(self.async_write_ha_state)

    @property
    def entity_category(self):
        return EntityCategory.DIAGNOSTIC

    @property
    def native_value(self) -> str:
        return self._matrix.status.value

    @property
    def extra_state_attributes(self):
        return {
            "message": self._matrix.status_message,
            "reconnect_attempts": self._matrix.reconnect_attempts,
            "last_message_received": self._matrix.last_message_received,
        }

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._matrix._id)},
            name=f"{self._matrix.device.name} {self._matrix.config.host}",
            model=self._matrix.device.name,
            configuration_url=f"http://{self._matrix.config.host}",
        )
