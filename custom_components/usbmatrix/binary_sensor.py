"""Binary sensor platform for the crosspoint matrix HomeAssistant integration."""
from __future__ import annotations

import logging

from homeassistant.components.binary_sensor import BinarySensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN

LOGGER = logging.getLogger(__name__)


# This function is called as part of the __init__.async_setup_entry (via the
# hass.config_entries.async_forward_entry_setups call)
async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Add one selection indicator per level for passed config_entry in HA."""
    matrix = hass.data[DOMAIN][config_entry.entry_id]

    async_add_entities(UsbMatrixSelectionRoutedBinarySensor(matrix, level) for level in matrix.device.levels)


class UsbMatrixSelectionRoutedBinarySensor(BinarySensorEntity):
    """On when the staged source is already routed to the staged destination."""

    should_poll = False
    _attr_has_entity_name = True

    def __init__(self, matrix, level) -> None:
        LOGGER.debug("[%s] Initialising selection indicator for level %s", matrix.config.host, level.id)
        self._matrix = matrix
        self._level = level
        self._attr_name = f"{level.label} selection routed"
        self._attr_unique_id = f"{matrix._id}_selection_routed_{level.id}"

    async def async_added_to_hass(self) -> None:
        """Run when this Entity has been added to HA."""
        self._matrix.register_callback(self.async_write_ha_state)

    async def async_will_remove_from_hass(self) -> None:
        """Entity being removed from hass."""
        self._matrix.remove_callback(self.async_write_ha_state)

    @property
    def available(self) -> bool:
        return self._matrix.online

    @property
    def is_on(self) -> bool:
        return self._matrix.state.is_routed(self._level.id, -1, -1)

    @property
    def extra_state_attributes(self):
        return {"routes": self._matrix.state.routes(self._level.id)}

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, self._matrix._id)},
            name=f"{self._matrix.device.name} {self._matrix.config.host}",
            model=self._matrix.device.name,
            configuration_url=f"http://{self._matrix.config.host}",
        )
