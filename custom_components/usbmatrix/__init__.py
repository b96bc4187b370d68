"""The USB / video crosspoint matrix HomeAssistant integration"""
from __future__ import annotations

import logging

# Import constants
from .const import *

LOGGER = logging.getLogger(__name__)

from .usbmatrix import UsbMatrixConfig, usbmatrix_device_instance

# List of platforms to support. There should be a matching .py file for each,
# eg <sensor.py> and <binary_sensor.py>
PLATFORMS: list[str] = ["sensor", "select", "button", "binary_sensor"]


async def async_setup_entry(hass, entry) -> bool:
    """Set up a matrix from a config entry."""
    # Build a config and device instance that is HA-agnostic.
    config = UsbMatrixConfig.from_dict(entry.data)
    matrix = usbmatrix_device_instance(config)
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = matrix

    LOGGER.info(f"[{config.host}] Setting up {matrix.device.name} matrix")

    # Connection is established in the background; entities show the mirror
    # (all outputs unassigned) until the first status response arrives.
    await matrix.start()

    def _log_status(payload: dict) -> None:
        if payload.get("type") == "status":
            LOGGER.info(f"[{config.host}] Matrix is {payload['status'].value}")

    matrix.register_event_callback(_log_status)

    # This creates each HA object for each platform your device requires.
    # It's done by calling the `async_setup_entry` function in each platform module.
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))
    LOGGER.info(f"[{config.host}] Matrix integration setup completed successfully")
    return True


async def _async_update_listener(hass, entry) -> None:
    """Apply a changed config entry to the running matrix instance."""
    matrix = hass.data[DOMAIN].get(entry.entry_id)
    config = UsbMatrixConfig.from_dict(entry.data)
    if matrix is None or config.device_type != matrix.config.device_type:
        # Entities depend on the matrix size, rebuild everything
        await hass.config_entries.async_reload(entry.entry_id)
        return
    await matrix.async_update_config(config)


async def async_unload_entry(hass, entry) -> bool:
    """Unload a config entry."""
    # Stop polling and close the connection for this matrix.
    matrix = hass.data[DOMAIN].get(entry.entry_id)
    if matrix is not None:
        await matrix.stop()

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id, None)
        LOGGER.info(f"[{entry.data['host']}] Matrix unloaded successfully")

    return unload_ok
