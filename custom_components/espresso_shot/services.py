"""Services for the Espresso Shot integration."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import voluptuous as vol

from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers import config_validation as cv

from .const import (
    ATTR_CONFIG_ENTRY_ID,
    ATTR_ELAPSED,
    ATTR_EXIT_WEIGHT,
    ATTR_FLOW,
    ATTR_FLOW_GOAL,
    ATTR_FLOW_MODE,
    ATTR_FRAME,
    ATTR_FRAMES,
    ATTR_PRESSURE,
    ATTR_PRESSURE_GOAL,
    ATTR_TEMPERATURE,
    ATTR_TEMPERATURE_GOAL,
    ATTR_WEIGHT,
    DOMAIN,
    SERVICE_END_SHOT,
    SERVICE_RESET,
    SERVICE_SET_PROFILE,
    SERVICE_SET_TARGET_WEIGHT,
    SERVICE_SHOT_SAMPLE,
    SERVICE_START_SHOT,
    SERVICE_TARE,
)
from .coordinator import EspressoShotCoordinator
from .models import Profile, ProfileFrame, ShotSample

_LOGGER = logging.getLogger(__name__)

# Service schemas
SERVICE_SCHEMA_BASE = vol.Schema(
    {
        vol.Optional(ATTR_CONFIG_ENTRY_ID): cv.string,
    }
)

SERVICE_SCHEMA_SET_TARGET_WEIGHT = SERVICE_SCHEMA_BASE.extend(
    {
        vol.Required(ATTR_WEIGHT): vol.All(vol.Coerce(float), vol.Range(min=0)),
    }
)

PROFILE_FRAME_SCHEMA = vol.Schema(
    {
        vol.Optional("name", default=""): cv.string,
        vol.Optional(ATTR_EXIT_WEIGHT, default=0.0): vol.All(
            vol.Coerce(float), vol.Range(min=0)
        ),
    }
)

SERVICE_SCHEMA_SET_PROFILE = SERVICE_SCHEMA_BASE.extend(
    {
        vol.Optional("title", default=""): cv.string,
        vol.Required(ATTR_FRAMES): vol.All(cv.ensure_list, [PROFILE_FRAME_SCHEMA]),
    }
)

SERVICE_SCHEMA_SHOT_SAMPLE = SERVICE_SCHEMA_BASE.extend(
    {
        vol.Required(ATTR_ELAPSED): vol.Coerce(float),
        vol.Optional(ATTR_PRESSURE, default=0.0): vol.Coerce(float),
        vol.Optional(ATTR_FLOW, default=0.0): vol.Coerce(float),
        vol.Optional(ATTR_TEMPERATURE, default=0.0): vol.Coerce(float),
        vol.Optional(ATTR_PRESSURE_GOAL, default=0.0): vol.Coerce(float),
        vol.Optional(ATTR_FLOW_GOAL, default=0.0): vol.Coerce(float),
        vol.Optional(ATTR_TEMPERATURE_GOAL, default=0.0): vol.Coerce(float),
        vol.Optional(ATTR_FRAME, default=-1): vol.Coerce(int),
        vol.Optional(ATTR_FLOW_MODE, default=False): cv.boolean,
    }
)

ServiceHandler = Callable[[EspressoShotCoordinator, ServiceCall], Awaitable[None]]


def get_coordinator(hass: HomeAssistant, call: ServiceCall) -> EspressoShotCoordinator:
    """Return the coordinator a service call targets."""
    coordinators: dict[str, EspressoShotCoordinator] = hass.data.get(DOMAIN, {})
    entry_id = call.data.get(ATTR_CONFIG_ENTRY_ID)

    if entry_id:
        coordinator = coordinators.get(entry_id)
        if coordinator is None:
            raise ServiceValidationError(
                f"Config entry {entry_id} is not a loaded {DOMAIN} entry"
            )
        return coordinator

    if not coordinators:
        raise ServiceValidationError(f"No {DOMAIN} entries are loaded")

    # Without an explicit entry, use the first loaded one
    return next(iter(coordinators.values()))


async def _async_start_shot(coordinator: EspressoShotCoordinator, call: ServiceCall) -> None:
    coordinator.controller.start_shot()


async def _async_end_shot(coordinator: EspressoShotCoordinator, call: ServiceCall) -> None:
    coordinator.controller.end_shot()


async def _async_tare(coordinator: EspressoShotCoordinator, call: ServiceCall) -> None:
    coordinator.controller.tare()


async def _async_reset(coordinator: EspressoShotCoordinator, call: ServiceCall) -> None:
    coordinator.controller.reset()


async def _async_set_target_weight(
    coordinator: EspressoShotCoordinator, call: ServiceCall
) -> None:
    coordinator.controller.set_target_weight(call.data[ATTR_WEIGHT])


async def _async_set_profile(
    coordinator: EspressoShotCoordinator, call: ServiceCall
) -> None:
    frames = tuple(
        ProfileFrame(exit_weight=frame[ATTR_EXIT_WEIGHT], name=frame["name"])
        for frame in call.data[ATTR_FRAMES]
    )
    coordinator.controller.set_profile(Profile(title=call.data["title"], frames=frames))
    _LOGGER.debug("Profile %r loaded with %d frames", call.data["title"], len(frames))


async def _async_shot_sample(
    coordinator: EspressoShotCoordinator, call: ServiceCall
) -> None:
    coordinator.controller.on_shot_sample(
        ShotSample(
            elapsed=call.data[ATTR_ELAPSED],
            pressure=call.data[ATTR_PRESSURE],
            flow=call.data[ATTR_FLOW],
            temperature=call.data[ATTR_TEMPERATURE],
            pressure_goal=call.data[ATTR_PRESSURE_GOAL],
            flow_goal=call.data[ATTR_FLOW_GOAL],
            temperature_goal=call.data[ATTR_TEMPERATURE_GOAL],
            frame=call.data[ATTR_FRAME],
            flow_mode=call.data[ATTR_FLOW_MODE],
        )
    )


SERVICES: dict[str, tuple[ServiceHandler, vol.Schema]] = {
    SERVICE_START_SHOT: (_async_start_shot, SERVICE_SCHEMA_BASE),
    SERVICE_END_SHOT: (_async_end_shot, SERVICE_SCHEMA_BASE),
    SERVICE_TARE: (_async_tare, SERVICE_SCHEMA_BASE),
    SERVICE_RESET: (_async_reset, SERVICE_SCHEMA_BASE),
    SERVICE_SET_TARGET_WEIGHT: (_async_set_target_weight, SERVICE_SCHEMA_SET_TARGET_WEIGHT),
    SERVICE_SET_PROFILE: (_async_set_profile, SERVICE_SCHEMA_SET_PROFILE),
    SERVICE_SHOT_SAMPLE: (_async_shot_sample, SERVICE_SCHEMA_SHOT_SAMPLE),
}


async def async_setup_services(hass: HomeAssistant) -> None:
    """Set up Espresso Shot services."""

    def _make_handler(
        action: ServiceHandler, update_entities: bool
    ) -> Callable[[ServiceCall], Awaitable[None]]:
        async def _handle(call: ServiceCall) -> None:
            coordinator = get_coordinator(hass, call)
            await action(coordinator, call)
            if update_entities:
                coordinator.async_update_entities()

        return _handle

    for service, (action, schema) in SERVICES.items():
        if hass.services.has_service(DOMAIN, service):
            continue
        # Telemetry refreshes entities through the coordinator's throttle
        handler = _make_handler(action, update_entities=service != SERVICE_SHOT_SAMPLE)
        hass.services.async_register(DOMAIN, service, handler, schema=schema)


async def async_unload_services(hass: HomeAssistant) -> None:
    """Unload Espresso Shot services."""
    for service in SERVICES:
        if hass.services.has_service(DOMAIN, service):
            hass.services.async_remove(DOMAIN, service)
