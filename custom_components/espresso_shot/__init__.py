"""The Espresso Shot integration."""
from __future__ import annotations

import logging
from typing import Final

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_NAME, Platform
from homeassistant.core import HomeAssistant
from homeassistant.helpers import device_registry as dr

from .bookoo_scale import BookooScale
from .const import DOMAIN, MANUFACTURER, SCALE_TYPE_BOOKOO, ShotConfig
from .controller import ShotTimingController
from .coordinator import EspressoShotCoordinator
from .debug_logger import ShotDebugLogger
from .flow_scale import FlowScale
from .scale_device import WeightDevice
from .services import async_setup_services, async_unload_services
from .transport import BleakScaleTransport

# List of platforms to set up
PLATFORMS: Final[list[Platform]] = [Platform.SENSOR]

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Espresso Shot from a config entry."""
    hass.data.setdefault(DOMAIN, {})
    config = ShotConfig.from_config_entry(entry)
    name = entry.data.get(CONF_NAME, entry.title)

    scale: WeightDevice
    if config.scale_type == SCALE_TYPE_BOOKOO and config.address:
        scale = BookooScale(BleakScaleTransport(), name=name)
    else:
        scale = FlowScale()

    controller = ShotTimingController(
        scale,
        tare_timeout=config.tare_timeout,
        display_interval=config.display_interval,
        retare_on_start=config.retare_on_start,
        debug_logger=ShotDebugLogger(),
    )
    controller.set_target_weight(config.target_weight)

    coordinator = EspressoShotCoordinator(hass, entry, scale, controller)
    hass.data[DOMAIN][entry.entry_id] = coordinator

    # Register the device in the device registry
    device_registry = dr.async_get(hass)
    device_registry.async_get_or_create(
        config_entry_id=entry.entry_id,
        identifiers={(DOMAIN, config.address or entry.entry_id)},
        manufacturer=MANUFACTURER if config.address else None,
        name=name,
        model=scale.name,
    )

    # A missing scale is not fatal: shots still run on machine data alone
    await coordinator.async_config_entry_first_refresh()

    await async_setup_services(hass)
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    # Register update listener
    entry.async_on_unload(entry.add_update_listener(async_reload_entry))

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)

    if unload_ok and entry.entry_id in hass.data.get(DOMAIN, {}):
        coordinator: EspressoShotCoordinator = hass.data[DOMAIN].pop(entry.entry_id)
        await coordinator.async_shutdown()

        # Unload services if this was the last entry
        if not hass.data[DOMAIN]:
            await async_unload_services(hass)

    return unload_ok


async def async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload config entry."""
    await hass.config_entries.async_reload(entry.entry_id)
