"""Base class for Espresso Shot entities."""
from __future__ import annotations

from homeassistant.helpers.device_registry import (
    CONNECTION_BLUETOOTH,
    DeviceInfo,
    format_mac,
)
from homeassistant.helpers.entity import EntityDescription
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN, MANUFACTURER
from .coordinator import EspressoShotCoordinator


class EspressoShotEntity(CoordinatorEntity[EspressoShotCoordinator]):
    """Common base class for Espresso Shot entities."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: EspressoShotCoordinator,
        entity_description: EntityDescription,
    ) -> None:
        """Initialize the entity."""
        super().__init__(coordinator)
        self.entity_description = entity_description

        entry = coordinator.config_entry
        address = coordinator.shot_config.address
        self._attr_unique_id = f"{entry.entry_id}_{entity_description.key}"
        if address:
            self._attr_device_info = DeviceInfo(
                identifiers={(DOMAIN, address)},
                name=entry.title,
                manufacturer=MANUFACTURER,
                model=coordinator.scale.name,
                connections={(CONNECTION_BLUETOOTH, format_mac(address))},
            )
        else:
            self._attr_device_info = DeviceInfo(
                identifiers={(DOMAIN, entry.entry_id)},
                name=entry.title,
                model=coordinator.scale.name,
            )
