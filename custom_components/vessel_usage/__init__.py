"""Vessel Usage Integration."""

import logging

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import Platform
from homeassistant.core import (
    HomeAssistant,
    ServiceCall,
    ServiceResponse,
    SupportsResponse,
)
from homeassistant.exceptions import ServiceValidationError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.typing import ConfigType
from homeassistant.util import dt as dt_util

from .const import (
    ATTR_AGGREGATION,
    ATTR_END,
    ATTR_PATH,
    ATTR_START,
    CONF_MAX_CONCURRENCY,
    CONF_QUERY_TIMEOUT,
    CONF_UPDATE_INTERVAL,
    DOMAIN,
    SERVICE_QUERY_RANGE,
)
from .coordinator import VesselUsageCoordinator
from .models import UsageConfig
from .query import RecorderQueryPort
from .schema import USAGE_SCHEMA, descriptor
from .usage import UsageCoordinator

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.SENSOR]

CONFIG_SCHEMA = vol.Schema({DOMAIN: USAGE_SCHEMA}, extra=vol.ALLOW_EXTRA)

QUERY_RANGE_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_PATH): cv.entity_id,
        vol.Required(ATTR_START): cv.datetime,
        vol.Required(ATTR_END): cv.datetime,
        vol.Optional(ATTR_AGGREGATION): descriptor,
    }
)


def _loaded_coordinators(hass: HomeAssistant) -> list[VesselUsageCoordinator]:
    return [
        c
        for c in hass.data.get(DOMAIN, {}).values()
        if isinstance(c, VesselUsageCoordinator)
    ]


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Set up the Vessel Usage component from YAML."""
    hass.data.setdefault(DOMAIN, {})

    async def handle_query_range(call: ServiceCall) -> ServiceResponse:
        """Compute usage for one path over an explicit time range."""
        coordinators = _loaded_coordinators(hass)
        if not coordinators:
            raise ServiceValidationError("Vessel Usage is not loaded")

        start = dt_util.as_utc(call.data[ATTR_START])
        end = dt_util.as_utc(call.data[ATTR_END])
        try:
            result = await coordinators[0].usage.async_query_custom_range(
                call.data[ATTR_PATH], start, end, call.data.get(ATTR_AGGREGATION)
            )
        except ValueError as err:
            raise ServiceValidationError(str(err)) from err

        _LOGGER.info(
            "Range query for %s returned %s points", result.path, len(result.data)
        )
        return result.as_dict()

    hass.services.async_register(
        DOMAIN,
        SERVICE_QUERY_RANGE,
        handle_query_range,
        schema=QUERY_RANGE_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )

    if DOMAIN in config:
        hass.async_create_task(
            hass.config_entries.flow.async_init(
                DOMAIN,
                context={"source": "import"},
                data=config[DOMAIN],
            )
        )

    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Vessel Usage from a config entry."""
    hass.data.setdefault(DOMAIN, {})

    # Options take precedence over entry data
    try:
        config = USAGE_SCHEMA({**entry.data, **entry.options})
    except vol.Invalid as err:
        _LOGGER.error("Invalid configuration for entry %s: %s", entry.entry_id, err)
        return False

    usage = UsageCoordinator(
        RecorderQueryPort(hass),
        UsageConfig.from_dict(config),
        max_concurrency=config[CONF_MAX_CONCURRENCY],
        query_timeout=config[CONF_QUERY_TIMEOUT],
    )
    coordinator = VesselUsageCoordinator(
        hass,
        usage,
        config_entry=entry,
        update_interval=config[CONF_UPDATE_INTERVAL],
    )
    await coordinator.async_config_entry_first_refresh()

    hass.data[DOMAIN][entry.entry_id] = coordinator

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    entry.async_on_unload(entry.add_update_listener(async_reload_entry))

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)

    if unload_ok:
        coordinator: VesselUsageCoordinator = hass.data[DOMAIN].pop(entry.entry_id)
        coordinator.shutdown()

    return unload_ok


async def async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload config entry when options change."""
    await hass.config_entries.async_reload(entry.entry_id)
