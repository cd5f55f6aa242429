"""Sensor platform for Vessel Usage."""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import UnitOfEnergy, UnitOfVolume, UnitOfVolumeFlowRate
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity
from homeassistant.util import slugify

from .const import (
    DIRECTIONALITY_CONSUMER,
    DIRECTIONALITY_PRODUCER,
    DOMAIN,
    DOMAIN_POWER,
    UNIT_CUBIC_METERS,
)
from .coordinator import VesselUsageCoordinator
from .directionality import resolve_directionality
from .models import (
    GroupConfig,
    GroupPeriodUsage,
    PeriodResult,
    PowerItemConfig,
    TankageItemConfig,
)
from .tankage import get_unit

_LOGGER = logging.getLogger(__name__)

CONSUMED_WH = "consumed_wh"
GENERATED_WH = "generated_wh"


def is_battery(path: str) -> bool:
    return "batt" in path.lower()


def power_metrics(path: str, directionality: str) -> list[tuple[str, str]]:
    """Return the (energy field, label) pairs exposed for a power item.

    Producers only generate and consumers only consume; everything else gets
    both. Batteries are labelled discharged/charged.
    """
    battery = is_battery(path)
    consumed = (CONSUMED_WH, "discharged" if battery else "consumed")
    generated = (GENERATED_WH, "charged" if battery else "generated")

    if directionality == DIRECTIONALITY_PRODUCER:
        return [generated]
    if directionality == DIRECTIONALITY_CONSUMER:
        return [consumed]
    return [consumed, generated]


def _round(value: float | None) -> float | None:
    return round(value, 1) if value is not None else None


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the sensor platform from a config entry."""
    coordinator: VesselUsageCoordinator = hass.data[DOMAIN][entry.entry_id]
    sensors = _build_sensors(coordinator)
    _LOGGER.debug("Adding %s usage sensors", len(sensors))
    async_add_entities(sensors)


def _build_sensors(coordinator: VesselUsageCoordinator) -> list[SensorEntity]:
    """Create one sensor per exposed metric, item and period."""
    usage = coordinator.usage
    sensors: list[SensorEntity] = []

    for item in usage.power_engine.enabled_items:
        directionality = resolve_directionality(item.path, item.directionality)
        for period in item.periods:
            for field_name, label in power_metrics(item.path, directionality):
                sensors.append(
                    PowerEnergySensor(
                        coordinator, item, period.range, field_name, label
                    )
                )

    for item in usage.tankage_engine.enabled_items:
        for period in item.periods:
            sensors.append(TankVolumeSensor(coordinator, item, period.range, "consumed"))
            sensors.append(TankVolumeSensor(coordinator, item, period.range, "added"))
            sensors.append(TankConsumptionRateSensor(coordinator, item, period.range))

    for group in usage.config.groups:
        for period in _group_periods(coordinator, group):
            if group.type == DOMAIN_POWER:
                metrics = [(CONSUMED_WH, "consumed"), (GENERATED_WH, "generated")]
            else:
                metrics = [("consumed", "consumed"), ("added", "added")]
            for field_name, label in metrics:
                sensors.append(
                    GroupUsageSensor(coordinator, group, period, field_name, label)
                )

    return sensors


def _group_periods(coordinator: VesselUsageCoordinator, group: GroupConfig) -> list[str]:
    periods: list[str] = []
    for path in group.paths:
        item = coordinator.usage.find_item_config(path)
        if item is None or item.domain != group.type:
            continue
        for period in item.periods:
            if period.range not in periods:
                periods.append(period.range)
    return periods


class VesselUsageSensor(CoordinatorEntity[VesselUsageCoordinator], SensorEntity):
    """Base for sensors reading one period of one item from the snapshot."""

    def __init__(
        self,
        coordinator: VesselUsageCoordinator,
        path: str,
        display_name: str,
        period: str,
        label: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._path = path
        self._period = period
        self._attr_name = f"{display_name} {label} {period}"
        self._attr_unique_id = f"{DOMAIN}_{slugify(path)}_{label}_{period}"

    def _period_result(self) -> PeriodResult | None:
        snapshot = self.coordinator.data
        if snapshot is None:
            return None
        item = snapshot.items.get(self._path)
        if item is None:
            return None
        return item.periods.get(self._period)

    def _value(self, result: PeriodResult) -> float | None:
        raise NotImplementedError

    @property
    def native_value(self) -> float | None:
        """Return the state of the sensor."""
        result = self._period_result()
        if result is None or result.insufficient_data:
            return None
        return _round(self._value(result))

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return additional attributes."""
        attrs: dict[str, Any] = {"path": self._path, "period": self._period}
        result = self._period_result()
        if result is None:
            attrs["reason"] = "Not calculated yet"
        elif result.insufficient_data:
            attrs["insufficient_data"] = True
            attrs["reason"] = result.reason
        else:
            attrs["start_time"] = result.start_time.isoformat()
            attrs["end_time"] = result.end_time.isoformat()
        return attrs


class PowerEnergySensor(VesselUsageSensor):
    """Energy consumed or generated by a power item over a period."""

    _attr_device_class = SensorDeviceClass.ENERGY
    _attr_state_class = SensorStateClass.TOTAL
    _attr_native_unit_of_measurement = UnitOfEnergy.WATT_HOUR

    def __init__(
        self,
        coordinator: VesselUsageCoordinator,
        item: PowerItemConfig,
        period: str,
        field_name: str,
        label: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator, item.path, item.display_name, period, label)
        self._field = field_name
        self._attr_icon = (
            "mdi:battery-charging" if is_battery(item.path) else "mdi:lightning-bolt"
        )

    def _value(self, result: PeriodResult) -> float | None:
        return getattr(result.energy, self._field)


class TankVolumeSensor(VesselUsageSensor):
    """Volume consumed from or added to a tank over a period."""

    _attr_state_class = SensorStateClass.TOTAL

    def __init__(
        self,
        coordinator: VesselUsageCoordinator,
        item: TankageItemConfig,
        period: str,
        metric: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator, item.path, item.display_name, period, metric)
        self._metric = metric
        if get_unit(item) == UNIT_CUBIC_METERS:
            self._attr_device_class = SensorDeviceClass.VOLUME
            self._attr_native_unit_of_measurement = UnitOfVolume.CUBIC_METERS
        self._attr_icon = "mdi:gauge-low" if metric == "consumed" else "mdi:gauge-full"

    def _value(self, result: PeriodResult) -> float | None:
        return getattr(result, self._metric)


class TankConsumptionRateSensor(VesselUsageSensor):
    """Average hourly consumption of a tank over a period."""

    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_icon = "mdi:chart-line"

    def __init__(
        self,
        coordinator: VesselUsageCoordinator,
        item: TankageItemConfig,
        period: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(
            coordinator, item.path, item.display_name, period, "consumption_rate"
        )
        if get_unit(item) == UNIT_CUBIC_METERS:
            self._attr_device_class = SensorDeviceClass.VOLUME_FLOW_RATE
            self._attr_native_unit_of_measurement = (
                UnitOfVolumeFlowRate.CUBIC_METERS_PER_HOUR
            )

    def _value(self, result: PeriodResult) -> float | None:
        return result.consumption_rate


class GroupUsageSensor(CoordinatorEntity[VesselUsageCoordinator], SensorEntity):
    """Summed usage of a group over a period."""

    _attr_state_class = SensorStateClass.TOTAL

    def __init__(
        self,
        coordinator: VesselUsageCoordinator,
        group: GroupConfig,
        period: str,
        field_name: str,
        label: str,
    ) -> None:
        """Initialize the sensor."""
        super().__init__(coordinator)
        self._group = group
        self._period = period
        self._field = field_name
        self._attr_name = f"{group.name} {label} {period}"
        self._attr_unique_id = f"{DOMAIN}_group_{group.id}_{label}_{period}"
        self._attr_icon = "mdi:sigma"
        if group.type == DOMAIN_POWER:
            self._attr_device_class = SensorDeviceClass.ENERGY
            self._attr_native_unit_of_measurement = UnitOfEnergy.WATT_HOUR

    def _group_period(self) -> GroupPeriodUsage | None:
        snapshot = self.coordinator.data
        if snapshot is None:
            return None
        group = snapshot.groups.get(self._group.id)
        if group is None:
            return None
        return group.periods.get(self._period)

    @property
    def native_value(self) -> float | None:
        """Return the state of the sensor."""
        period = self._group_period()
        if period is None:
            return None
        if period.energy is not None:
            return _round(getattr(period.energy, self._field))
        return _round(getattr(period, self._field))

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return additional attributes."""
        attrs: dict[str, Any] = {
            "group": self._group.id,
            "period": self._period,
            "paths": list(self._group.paths),
        }
        period = self._group_period()
        if period is not None and period.missing_paths:
            attrs["missing_paths"] = list(period.missing_paths)
        return attrs
