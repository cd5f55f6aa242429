"""Config flow for Vessel Usage integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers import selector

from .const import (
    CONF_MAX_CONCURRENCY,
    CONF_PATH,
    CONF_POWER,
    CONF_POWER_ENTITIES,
    CONF_QUERY_TIMEOUT,
    CONF_TANK_ENTITIES,
    CONF_TANKAGE,
    CONF_UPDATE_INTERVAL,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_QUERY_TIMEOUT,
    DEFAULT_UPDATE_INTERVAL,
    DOMAIN,
)
from .schema import USAGE_SCHEMA

_LOGGER = logging.getLogger(__name__)

TITLE = "Vessel Usage"


def _build_schema(defaults: dict[str, Any]) -> vol.Schema:
    """Build the schema for picking power and tank entities."""
    return vol.Schema(
        {
            vol.Optional(
                CONF_POWER_ENTITIES,
                default=defaults.get(CONF_POWER_ENTITIES, []),
            ): selector.EntitySelector(
                selector.EntitySelectorConfig(domain="sensor", multiple=True)
            ),
            vol.Optional(
                CONF_TANK_ENTITIES,
                default=defaults.get(CONF_TANK_ENTITIES, []),
            ): selector.EntitySelector(
                selector.EntitySelectorConfig(domain="sensor", multiple=True)
            ),
            vol.Optional(
                CONF_UPDATE_INTERVAL,
                default=defaults.get(CONF_UPDATE_INTERVAL, DEFAULT_UPDATE_INTERVAL),
            ): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    min=10,
                    max=3600,
                    mode=selector.NumberSelectorMode.BOX,
                    unit_of_measurement="sec",
                )
            ),
        }
    )


def _build_options_schema(defaults: dict[str, Any]) -> vol.Schema:
    """Build the schema for tuning how passes run."""
    return vol.Schema(
        {
            vol.Optional(
                CONF_UPDATE_INTERVAL,
                default=defaults.get(CONF_UPDATE_INTERVAL, DEFAULT_UPDATE_INTERVAL),
            ): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    min=10,
                    max=3600,
                    mode=selector.NumberSelectorMode.BOX,
                    unit_of_measurement="sec",
                )
            ),
            vol.Optional(
                CONF_MAX_CONCURRENCY,
                default=defaults.get(CONF_MAX_CONCURRENCY, DEFAULT_MAX_CONCURRENCY),
            ): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    min=1,
                    max=32,
                    mode=selector.NumberSelectorMode.BOX,
                )
            ),
            vol.Optional(
                CONF_QUERY_TIMEOUT,
                default=defaults.get(CONF_QUERY_TIMEOUT, DEFAULT_QUERY_TIMEOUT),
            ): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    min=0,
                    max=600,
                    mode=selector.NumberSelectorMode.BOX,
                    unit_of_measurement="sec",
                )
            ),
        }
    )


def entities_to_config(user_input: dict[str, Any]) -> dict[str, Any]:
    """Turn the entity pickers into validated integration config.

    Raises vol.Invalid when neither a power nor a tank entity was picked.
    """
    return USAGE_SCHEMA(
        {
            CONF_POWER: [
                {CONF_PATH: entity_id}
                for entity_id in user_input.get(CONF_POWER_ENTITIES) or []
            ],
            CONF_TANKAGE: [
                {CONF_PATH: entity_id}
                for entity_id in user_input.get(CONF_TANK_ENTITIES) or []
            ],
            CONF_UPDATE_INTERVAL: int(
                user_input.get(CONF_UPDATE_INTERVAL, DEFAULT_UPDATE_INTERVAL)
            ),
        }
    )


class VesselUsageConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Vessel Usage."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Handle the initial step."""
        errors = {}

        if user_input is not None:
            try:
                data = entities_to_config(user_input)
            except vol.Invalid as err:
                _LOGGER.debug("Rejected user config: %s", err)
                errors["base"] = "no_items"
            else:
                await self.async_set_unique_id(DOMAIN)
                self._abort_if_unique_id_configured()
                return self.async_create_entry(title=TITLE, data=data)

        return self.async_show_form(
            step_id="user",
            data_schema=_build_schema(user_input or {}),
            errors=errors,
        )

    async def async_step_import(self, import_config: dict[str, Any]) -> FlowResult:
        """Handle import from configuration.yaml."""
        await self.async_set_unique_id(DOMAIN)
        self._abort_if_unique_id_configured(updates=import_config)
        return self.async_create_entry(title=TITLE, data=import_config)

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> config_entries.OptionsFlow:
        """Get the options flow for this handler."""
        return VesselUsageOptionsFlow()


class VesselUsageOptionsFlow(config_entries.OptionsFlow):
    """Handle options flow for Vessel Usage."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Manage the options."""
        if user_input is not None:
            options = {key: int(value) for key, value in user_input.items()}
            self.hass.config_entries.async_update_entry(
                self.config_entry,
                data={**self.config_entry.data, **options},
            )
            return self.async_create_entry(title="", data={})

        return self.async_show_form(
            step_id="init",
            data_schema=_build_options_schema(dict(self.config_entry.data)),
        )
