"""Validation schemas for YAML and config entry data."""

from __future__ import annotations

from typing import Any

import voluptuous as vol

import homeassistant.helpers.config_validation as cv

from .const import (
    CONF_AGGREGATION,
    CONF_CACHE_RESULTS,
    CONF_CAPACITY,
    CONF_DIRECTIONALITY,
    CONF_ENABLED,
    CONF_GROUP_ID,
    CONF_GROUP_TYPE,
    CONF_GROUPS,
    CONF_LARGE,
    CONF_MAX_CONCURRENCY,
    CONF_PATH,
    CONF_PATHS,
    CONF_PERIODS,
    CONF_POWER,
    CONF_QUERY_TIMEOUT,
    CONF_RANGE,
    CONF_TANKAGE,
    CONF_UNIT,
    CONF_UPDATE_INTERVAL,
    DEFAULT_CACHE_RESULTS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_POWER_PERIODS,
    DEFAULT_QUERY_TIMEOUT,
    DEFAULT_TANKAGE_PERIODS,
    DEFAULT_UPDATE_INTERVAL,
    DIRECTIONALITIES,
    DOMAIN_POWER,
    DOMAIN_TANKAGE,
)
from .periods import is_valid_descriptor


def descriptor(value: Any) -> str:
    """Validate a duration descriptor such as ``15m`` or ``7d``."""
    value = cv.string(value).strip()
    if not is_valid_descriptor(value):
        raise vol.Invalid(f"Invalid duration '{value}', expected e.g. 30s, 15m, 24h, 7d")
    return value


def _unique_by(key: str, what: str):
    def validator(values: list[dict[str, Any]]) -> list[dict[str, Any]]:
        seen: set[str] = set()
        for value in values:
            if value[key] in seen:
                raise vol.Invalid(f"Duplicate {what} '{value[key]}'")
            seen.add(value[key])
        return values

    return validator


PERIOD_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_RANGE): descriptor,
        vol.Required(CONF_AGGREGATION): descriptor,
    }
)

PERIODS_SCHEMA = vol.All(
    cv.ensure_list, [PERIOD_SCHEMA], vol.Length(min=1), _unique_by(CONF_RANGE, "period range")
)

POWER_ITEM_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_PATH): cv.entity_id,
        vol.Optional("name"): cv.string,
        vol.Optional(CONF_DIRECTIONALITY): vol.In(DIRECTIONALITIES),
        vol.Optional(CONF_CAPACITY): vol.Coerce(float),
        vol.Optional(
            CONF_PERIODS, default=lambda: [dict(p) for p in DEFAULT_POWER_PERIODS]
        ): PERIODS_SCHEMA,
        vol.Optional(CONF_ENABLED, default=True): cv.boolean,
    }
)

TANKAGE_ITEM_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_PATH): cv.entity_id,
        vol.Optional("name"): cv.string,
        vol.Optional(CONF_LARGE, default=False): cv.boolean,
        vol.Optional(CONF_UNIT): cv.string,
        vol.Optional(CONF_CAPACITY): vol.Coerce(float),
        vol.Optional(
            CONF_PERIODS, default=lambda: [dict(p) for p in DEFAULT_TANKAGE_PERIODS]
        ): PERIODS_SCHEMA,
        vol.Optional(CONF_ENABLED, default=True): cv.boolean,
    }
)

GROUP_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_GROUP_ID): cv.slug,
        vol.Optional("name"): cv.string,
        vol.Required(CONF_GROUP_TYPE): vol.In([DOMAIN_POWER, DOMAIN_TANKAGE]),
        vol.Required(CONF_PATHS): vol.All(cv.ensure_list, [cv.entity_id]),
    }
)


def _require_items(config: dict[str, Any]) -> dict[str, Any]:
    if not config.get(CONF_POWER) and not config.get(CONF_TANKAGE):
        raise vol.Invalid("At least one tankage or power item must be configured")
    return config


USAGE_SCHEMA = vol.All(
    vol.Schema(
        {
            vol.Optional(CONF_POWER, default=list): vol.All(
                cv.ensure_list, [POWER_ITEM_SCHEMA], _unique_by(CONF_PATH, "power path")
            ),
            vol.Optional(CONF_TANKAGE, default=list): vol.All(
                cv.ensure_list,
                [TANKAGE_ITEM_SCHEMA],
                _unique_by(CONF_PATH, "tankage path"),
            ),
            vol.Optional(CONF_GROUPS, default=list): vol.All(
                cv.ensure_list, [GROUP_SCHEMA], _unique_by(CONF_GROUP_ID, "group id")
            ),
            vol.Optional(
                CONF_UPDATE_INTERVAL, default=DEFAULT_UPDATE_INTERVAL
            ): cv.positive_int,
            vol.Optional(CONF_CACHE_RESULTS, default=DEFAULT_CACHE_RESULTS): cv.boolean,
            vol.Optional(
                CONF_MAX_CONCURRENCY, default=DEFAULT_MAX_CONCURRENCY
            ): cv.positive_int,
            vol.Optional(
                CONF_QUERY_TIMEOUT, default=DEFAULT_QUERY_TIMEOUT
            ): cv.positive_int,
        }
    ),
    _require_items,
)
