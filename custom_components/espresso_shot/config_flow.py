"""Config flow for Espresso Shot integration."""
from __future__ import annotations

import logging
import re
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.components.bluetooth import (
    BluetoothServiceInfoBleak,
    async_discovered_service_info,
)
from homeassistant.config_entries import ConfigFlowResult
from homeassistant.const import CONF_ADDRESS, CONF_NAME
from homeassistant.core import callback
from homeassistant.helpers.selector import (
    BooleanSelector,
    NumberSelector,
    NumberSelectorConfig,
    NumberSelectorMode,
    SelectSelector,
    SelectSelectorConfig,
)

from .const import (
    CONF_DISPLAY_INTERVAL,
    CONF_RETARE_ON_START,
    CONF_SCALE_TYPE,
    CONF_TARE_TIMEOUT,
    CONF_TARGET_WEIGHT,
    DEFAULT_DISPLAY_INTERVAL,
    DEFAULT_RETARE_ON_START,
    DEFAULT_TARE_TIMEOUT,
    DEFAULT_TARGET_WEIGHT,
    DEVICE_NAME_PREFIX,
    DOMAIN,
    SCALE_TYPE_BOOKOO,
    SCALE_TYPE_FLOW,
    SERVICE_UUID,
)

_LOGGER = logging.getLogger(__name__)

MAC_ADDRESS_PATTERN = re.compile(r"^([0-9A-F]{2}:){5}[0-9A-F]{2}$")

CHOICE_MANUAL = "manual"
FLOW_SCALE_TITLE = "Flow Scale"
DEFAULT_SCALE_NAME = "Bookoo Scale"


def _is_bookoo(discovery_info: BluetoothServiceInfoBleak) -> bool:
    """Return True if an advertisement looks like a Bookoo scale."""
    if discovery_info.name and discovery_info.name.startswith(DEVICE_NAME_PREFIX):
        return True
    return SERVICE_UUID in [uuid.lower() for uuid in discovery_info.service_uuids]


def _scale_entry_data(address: str, name: str) -> dict[str, Any]:
    return {
        CONF_SCALE_TYPE: SCALE_TYPE_BOOKOO,
        CONF_ADDRESS: address,
        CONF_NAME: name,
    }


class EspressoShotConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Espresso Shot."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._discovery_info: BluetoothServiceInfoBleak | None = None
        self._discovered_devices: dict[str, BluetoothServiceInfoBleak] = {}

    async def async_step_bluetooth(
        self, discovery_info: BluetoothServiceInfoBleak
    ) -> ConfigFlowResult:
        """Handle the bluetooth discovery step."""
        await self.async_set_unique_id(discovery_info.address)
        self._abort_if_unique_id_configured()

        if not _is_bookoo(discovery_info):
            return self.async_abort(reason="not_supported")

        self._discovery_info = discovery_info
        name = discovery_info.name or DEFAULT_SCALE_NAME
        self.context["title_placeholders"] = {"name": name}
        return await self.async_step_bluetooth_confirm()

    async def async_step_bluetooth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Confirm a discovered scale."""
        if self._discovery_info is None:
            return self.async_abort(reason="discovery_info_missing")

        discovery_info = self._discovery_info
        name = discovery_info.name or DEFAULT_SCALE_NAME

        if user_input is not None:
            _LOGGER.debug(
                "User confirmed Bluetooth device: %s (%s)", name, discovery_info.address
            )
            return self.async_create_entry(
                title=name, data=_scale_entry_data(discovery_info.address, name)
            )

        self._set_confirm_only()
        return self.async_show_form(
            step_id="bluetooth_confirm",
            description_placeholders={"name": name, "address": discovery_info.address},
        )

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Pick a discovered scale, the virtual flow scale, or manual entry."""
        if user_input is not None:
            choice = user_input[CONF_ADDRESS]
            if choice == SCALE_TYPE_FLOW:
                return await self.async_step_flow_scale()
            if choice == CHOICE_MANUAL:
                return await self.async_step_manual()

            discovery_info = self._discovered_devices[choice]
            await self.async_set_unique_id(discovery_info.address, raise_on_progress=False)
            self._abort_if_unique_id_configured()

            name = discovery_info.name or DEFAULT_SCALE_NAME
            return self.async_create_entry(
                title=name, data=_scale_entry_data(discovery_info.address, name)
            )

        current_addresses = self._async_current_ids()
        for discovery_info in async_discovered_service_info(self.hass):
            if discovery_info.address in current_addresses or not _is_bookoo(
                discovery_info
            ):
                continue
            self._discovered_devices[discovery_info.address] = discovery_info

        options = [
            {
                "value": address,
                "label": f"{discovery_info.name or 'Unknown'} ({address})",
            }
            for address, discovery_info in self._discovered_devices.items()
        ]
        options.append({"value": SCALE_TYPE_FLOW, "label": "Flow Scale (no scale)"})
        options.append({"value": CHOICE_MANUAL, "label": "Enter address manually"})

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_ADDRESS): SelectSelector(
                        SelectSelectorConfig(options=options, multiple=False)
                    ),
                }
            ),
        )

    async def async_step_manual(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the manual entry step for MAC address."""
        errors: dict[str, str] = {}

        if user_input is not None:
            address = user_input[CONF_ADDRESS].strip().upper()
            name = user_input.get(CONF_NAME) or DEFAULT_SCALE_NAME

            if not MAC_ADDRESS_PATTERN.match(address):
                errors["base"] = "invalid_mac_address"
            else:
                await self.async_set_unique_id(address, raise_on_progress=False)
                self._abort_if_unique_id_configured()

                _LOGGER.info("Creating entry for manually configured scale: %s (%s)", name, address)
                return self.async_create_entry(
                    title=name, data=_scale_entry_data(address, name)
                )

        return self.async_show_form(
            step_id="manual",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_ADDRESS): str,
                    vol.Optional(CONF_NAME, default=DEFAULT_SCALE_NAME): str,
                }
            ),
            errors=errors,
        )

    async def async_step_flow_scale(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Create an entry that estimates weight from machine flow."""
        await self.async_set_unique_id(SCALE_TYPE_FLOW, raise_on_progress=False)
        self._abort_if_unique_id_configured()
        return self.async_create_entry(
            title=FLOW_SCALE_TITLE,
            data={CONF_SCALE_TYPE: SCALE_TYPE_FLOW, CONF_NAME: FLOW_SCALE_TITLE},
        )

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> config_entries.OptionsFlow:
        """Create the options flow."""
        return EspressoShotOptionsFlowHandler()


class EspressoShotOptionsFlowHandler(config_entries.OptionsFlow):
    """Handle Espresso Shot options."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Manage the options."""
        if user_input is not None:
            return self.async_create_entry(title="", data=user_input)

        current = {**self.config_entry.data, **self.config_entry.options}

        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(
                {
                    vol.Optional(
                        CONF_TARGET_WEIGHT,
                        default=current.get(CONF_TARGET_WEIGHT, DEFAULT_TARGET_WEIGHT),
                    ): NumberSelector(
                        NumberSelectorConfig(
                            min=0, max=200, step=0.1, mode=NumberSelectorMode.BOX
                        )
                    ),
                    vol.Optional(
                        CONF_RETARE_ON_START,
                        default=current.get(CONF_RETARE_ON_START, DEFAULT_RETARE_ON_START),
                    ): BooleanSelector(),
                    vol.Optional(
                        CONF_TARE_TIMEOUT,
                        default=current.get(CONF_TARE_TIMEOUT, DEFAULT_TARE_TIMEOUT),
                    ): NumberSelector(
                        NumberSelectorConfig(
                            min=0.5, max=30, step=0.5, mode=NumberSelectorMode.SLIDER
                        )
                    ),
                    vol.Optional(
                        CONF_DISPLAY_INTERVAL,
                        default=current.get(CONF_DISPLAY_INTERVAL, DEFAULT_DISPLAY_INTERVAL),
                    ): NumberSelector(
                        NumberSelectorConfig(
                            min=0.05, max=1.0, step=0.05, mode=NumberSelectorMode.BOX
                        )
                    ),
                }
            ),
        )
