"""Config flow for the USB / video crosspoint matrix HomeAssistant integration."""
from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries, exceptions
from homeassistant.core import HomeAssistant

from .usbmatrix import usbmatrix_device_instance, UsbMatrixConfig

# Import constants
from .const import *

_LOGGER = logging.getLogger(__name__)

# This is the schema that used to display the UI to the user.
# The device type decides the matrix size and levels, see profiles.py
DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): str,
        vol.Required(CONF_DEVICE_TYPE, default=DEFAULT_DEVICE_TYPE): vol.In(DEVICE_TYPE_NAMES),
        vol.Required(CONF_FRAME, default=DEFAULT_FRAME): str,
        vol.Optional(CONF_TCP_PORT, default=DEFAULT_TCP_PORT): int,
        vol.Optional(CONF_POLL_INTERVAL, default=DEFAULT_POLL_INTERVAL): int,
    }
)


def build_config(data: dict) -> UsbMatrixConfig:
    """Turn form data into a matrix config, mapping schema errors to form errors."""
    try:
        return UsbMatrixConfig.from_dict(data)
    except vol.Invalid as exc:
        key = exc.path[0] if exc.path else None
        if key == CONF_HOST:
            raise InvalidHost from exc
        if key == CONF_FRAME:
            raise InvalidFrame from exc
        raise InvalidSetting from exc


async def validate_input(hass: HomeAssistant, data: dict) -> dict[str, Any]:
    """Validate the user input allows us to connect.

    Data has the keys from DATA_SCHEMA with values provided by the user.
    """
    config = build_config(data)

    # Test connection to ensure the control port is accessible
    matrix = usbmatrix_device_instance(config)
    _LOGGER.debug("Testing connection to matrix at %s", config.host)
    if not await matrix.async_test_connection():
        _LOGGER.error("Cannot connect to matrix at %s", config.host)
        raise CannotConnect

    # "Title" is what is displayed to the user for this device
    return {"title": f"{matrix.device.name} ({config.host})"}


class ConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for a crosspoint matrix."""

    VERSION = 1
    # Status changes are pushed by the matrix but the full status is also polled
    CONNECTION_CLASS = config_entries.CONN_CLASS_LOCAL_POLL

    async def async_step_user(self, user_input=None):
        """Handle the initial step."""
        errors = {}
        if user_input is not None:
            try:
                info = await validate_input(self.hass, user_input)

                return self.async_create_entry(title=info["title"], data=user_input)
            except CannotConnect:
                errors["base"] = "cannot_connect"
            except InvalidHost:
                errors[CONF_HOST] = "invalid_host"
            except InvalidFrame:
                errors[CONF_FRAME] = "invalid_frame"
            except InvalidSetting:
                errors["base"] = "invalid_setting"
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Unexpected exception")
                errors["base"] = "unknown"

        # If there is no user input or there were errors, show the form again, including any errors that were found with the input.
        return self.async_show_form(
            step_id="user", data_schema=DATA_SCHEMA, errors=errors
        )

    async def async_step_reconfigure(self, user_input=None):
        """Handle reconfigure step to change host, device type or frame.

        The update listener in ``__init__`` applies the change: host and frame
        in place, a new device type by reloading the entry.
        """

        entry = None
        entry_id = self.context.get("entry_id")
        if entry_id is not None:
            entry = self.hass.config_entries.async_get_entry(entry_id)
        if entry is None:
            return self.async_abort(reason="no_entry")

        schema = vol.Schema(
            {
                vol.Required(CONF_HOST, default=entry.data.get(CONF_HOST)): str,
                vol.Required(CONF_DEVICE_TYPE, default=entry.data.get(CONF_DEVICE_TYPE, DEFAULT_DEVICE_TYPE)): vol.In(DEVICE_TYPE_NAMES),
                vol.Required(CONF_FRAME, default=entry.data.get(CONF_FRAME, DEFAULT_FRAME)): str,
                vol.Optional(CONF_POLL_INTERVAL, default=entry.data.get(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)): int,
            }
        )

        errors: dict[str, str] = {}

        if user_input is not None:
            new_data = dict(entry.data)
            new_data.update(user_input)
            try:
                build_config(new_data)
            except InvalidHost:
                errors[CONF_HOST] = "invalid_host"
            except InvalidFrame:
                errors[CONF_FRAME] = "invalid_frame"
            except InvalidSetting:
                errors["base"] = "invalid_setting"
            else:
                # Persist changes; the update listener takes it from here
                self.hass.config_entries.async_update_entry(entry, data=new_data)
                return self.async_abort(reason="reconfigure_successful")

        return self.async_show_form(step_id="reconfigure", data_schema=schema, errors=errors)


class CannotConnect(exceptions.HomeAssistantError):
    """Error to indicate we cannot connect."""


class InvalidHost(exceptions.HomeAssistantError):
    """Error to indicate the host is not a valid IPv4 address."""


class InvalidFrame(exceptions.HomeAssistantError):
    """Error to indicate the frame number is not two digits."""


class InvalidSetting(exceptions.HomeAssistantError):
    """Error to indicate any other configuration value is out of range."""
