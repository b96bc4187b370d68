"""Button platform for the crosspoint matrix HomeAssistant integration."""
from __future__ import annotations

import logging

from homeassistant.components.button import ButtonEntity
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
    """Add buttons for passed config_entry in HA."""
    matrix = hass.data[DOMAIN][config_entry.entry_id]
    async_add_entities([UsbMatrixTakeButton(matrix), UsbMatrixRefreshButton(matrix)])


class UsbMatrixButtonBase(ButtonEntity):

    _attr_has_entity_name = True

    def __init__(self, matrix) -> None:
        self._matrix = matrix

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


class UsbMatrixTakeButton(UsbMatrixButtonBase):
    """Route the staged sources to the staged destinations on all levels."""

    def __init__(self, matrix) -> None:
        super().__init__(matrix)
        self._attr_name = "Take selected"
        self._attr_unique_id = f"{matrix._id}_take"

    async def async_press(self) -> None:
        LOGGER.debug("[%s] Take selected pressed", self._matrix.config.host)
        await self._matrix.take_salvo()


class UsbMatrixRefreshButton(UsbMatrixButtonBase):
    """Ask the matrix for the state of all crosspoints right away."""

    def __init__(self, matrix) -> None:
        super().__init__(matrix)
        self._attr_name = "Refresh routes"
        self._attr_unique_id = f"{matrix._id}_refresh"

    async def async_press(self) -> None:
        await self._matrix.query_routes()
