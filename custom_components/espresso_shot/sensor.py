"""Sensor platform for Espresso Shot."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EntityCategory, UnitOfMass, UnitOfTime, UnitOfVolumeFlowRate
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import EspressoShotCoordinator
from .entity import EspressoShotEntity
from .models import DeviceConnectionState, ShotPhase, TareState

# Coordinator is used to centralize the data updates
PARALLEL_UPDATES = 0


@dataclass(kw_only=True, frozen=True)
class EspressoShotSensorEntityDescription(SensorEntityDescription):
    """Description for Espresso Shot sensor entities."""

    value_fn: Callable[[EspressoShotCoordinator], float | str | None]
    requires_scale: bool = False


SENSORS: tuple[EspressoShotSensorEntityDescription, ...] = (
    EspressoShotSensorEntityDescription(
        key="shot_time",
        translation_key="shot_time",
        device_class=SensorDeviceClass.DURATION,
        native_unit_of_measurement=UnitOfTime.SECONDS,
        suggested_display_precision=1,
        icon="mdi:timer-outline",
        value_fn=lambda coordinator: round(coordinator.controller.display_time, 2),
    ),
    EspressoShotSensorEntityDescription(
        key="shot_phase",
        translation_key="shot_phase",
        device_class=SensorDeviceClass.ENUM,
        options=[phase.value for phase in ShotPhase],
        icon="mdi:coffee",
        value_fn=lambda coordinator: coordinator.controller.phase.value,
    ),
    EspressoShotSensorEntityDescription(
        key="weight",
        translation_key="weight",
        device_class=SensorDeviceClass.WEIGHT,
        native_unit_of_measurement=UnitOfMass.GRAMS,
        suggested_display_precision=1,
        state_class=SensorStateClass.MEASUREMENT,
        requires_scale=True,
        value_fn=lambda coordinator: coordinator.controller.current_weight,
    ),
    EspressoShotSensorEntityDescription(
        key="flow_rate",
        translation_key="flow_rate",
        device_class=SensorDeviceClass.VOLUME_FLOW_RATE,
        native_unit_of_measurement=UnitOfVolumeFlowRate.MILLILITERS_PER_SECOND,
        suggested_display_precision=1,
        state_class=SensorStateClass.MEASUREMENT,
        requires_scale=True,
        value_fn=lambda coordinator: coordinator.controller.current_flow_rate,
    ),
    EspressoShotSensorEntityDescription(
        key="tare_state",
        translation_key="tare_state",
        device_class=SensorDeviceClass.ENUM,
        options=[state.value for state in TareState],
        icon="mdi:scale-balance",
        value_fn=lambda coordinator: coordinator.controller.tare_state.value,
    ),
    EspressoShotSensorEntityDescription(
        key="scale_connection",
        translation_key="scale_connection",
        device_class=SensorDeviceClass.ENUM,
        options=[state.value for state in DeviceConnectionState],
        entity_category=EntityCategory.DIAGNOSTIC,
        icon="mdi:bluetooth-connect",
        value_fn=lambda coordinator: coordinator.scale_state.value,
    ),
)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up Espresso Shot sensors based on a config entry."""
    coordinator: EspressoShotCoordinator = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        EspressoShotSensor(coordinator, description) for description in SENSORS
    )


class EspressoShotSensor(EspressoShotEntity, SensorEntity):
    """Representation of an Espresso Shot sensor."""

    entity_description: EspressoShotSensorEntityDescription

    @property
    def available(self) -> bool:
        """Return True if entity is available."""
        if self.entity_description.requires_scale:
            return super().available and self.coordinator.scale.is_connected
        return super().available

    @property
    def native_value(self) -> float | str | None:
        """Return the state of the entity."""
        return self.entity_description.value_fn(self.coordinator)
