"""Data model for configured items, period results and cached usage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

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
    CONF_PATH,
    CONF_PATHS,
    CONF_PERIODS,
    CONF_POWER,
    CONF_RANGE,
    CONF_TANKAGE,
    CONF_UNIT,
    DEFAULT_CACHE_RESULTS,
    DEFAULT_POWER_PERIODS,
    DEFAULT_TANKAGE_PERIODS,
    DOMAIN_POWER,
    DOMAIN_TANKAGE,
)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Sample:
    """A single timestamped reading."""

    timestamp: datetime
    value: float

    def as_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "value": self.value}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PeriodConfig:
    """A look-back range paired with the aggregation window to query it at."""

    range: str
    aggregation: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PeriodConfig:
        return cls(range=data[CONF_RANGE], aggregation=data[CONF_AGGREGATION])


def _periods_from(
    raw: list[dict[str, Any]] | None, defaults: tuple[dict[str, str], ...]
) -> tuple[PeriodConfig, ...]:
    return tuple(PeriodConfig.from_dict(p) for p in (raw or defaults))


@dataclass(frozen=True)
class PowerItemConfig:
    """A configured power measurement point."""

    domain: ClassVar[str] = DOMAIN_POWER

    path: str
    name: str | None = None
    directionality: str | None = None
    periods: tuple[PeriodConfig, ...] = field(
        default_factory=lambda: _periods_from(None, DEFAULT_POWER_PERIODS)
    )
    enabled: bool = True
    capacity: float | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.path

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PowerItemConfig:
        return cls(
            path=data[CONF_PATH],
            name=data.get("name"),
            directionality=data.get(CONF_DIRECTIONALITY),
            periods=_periods_from(data.get(CONF_PERIODS), DEFAULT_POWER_PERIODS),
            enabled=data.get(CONF_ENABLED, True),
            capacity=data.get(CONF_CAPACITY),
        )


@dataclass(frozen=True)
class TankageItemConfig:
    """A configured tank measurement point."""

    domain: ClassVar[str] = DOMAIN_TANKAGE

    path: str
    name: str | None = None
    large: bool = False
    unit: str | None = None
    periods: tuple[PeriodConfig, ...] = field(
        default_factory=lambda: _periods_from(None, DEFAULT_TANKAGE_PERIODS)
    )
    enabled: bool = True
    capacity: float | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.path

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TankageItemConfig:
        return cls(
            path=data[CONF_PATH],
            name=data.get("name"),
            large=data.get(CONF_LARGE, False),
            unit=data.get(CONF_UNIT),
            periods=_periods_from(data.get(CONF_PERIODS), DEFAULT_TANKAGE_PERIODS),
            enabled=data.get(CONF_ENABLED, True),
            capacity=data.get(CONF_CAPACITY),
        )


ItemConfig = PowerItemConfig | TankageItemConfig


@dataclass(frozen=True)
class GroupConfig:
    """A named set of same-domain items whose usage is summed."""

    id: str
    name: str
    type: str
    paths: tuple[str, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupConfig:
        return cls(
            id=data[CONF_GROUP_ID],
            name=data.get("name") or data[CONF_GROUP_ID],
            type=data[CONF_GROUP_TYPE],
            paths=tuple(data.get(CONF_PATHS, ())),
        )


@dataclass(frozen=True)
class UsageConfig:
    """Everything the usage engines need from configuration."""

    power: tuple[PowerItemConfig, ...] = ()
    tankage: tuple[TankageItemConfig, ...] = ()
    groups: tuple[GroupConfig, ...] = ()
    cache_results: bool = DEFAULT_CACHE_RESULTS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UsageConfig:
        return cls(
            power=tuple(PowerItemConfig.from_dict(i) for i in data.get(CONF_POWER, [])),
            tankage=tuple(
                TankageItemConfig.from_dict(i) for i in data.get(CONF_TANKAGE, [])
            ),
            groups=tuple(GroupConfig.from_dict(g) for g in data.get(CONF_GROUPS, [])),
            cache_results=data.get(CONF_CACHE_RESULTS, DEFAULT_CACHE_RESULTS),
        )


# ---------------------------------------------------------------------------
# Period results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InsufficientData:
    """A period that could not be computed; expected, never raised."""

    reason: str
    insufficient_data: bool = field(default=True, init=False)

    def as_dict(self) -> dict[str, Any]:
        return {"insufficient_data": True, "reason": self.reason}


@dataclass(frozen=True)
class EnergyTotals:
    consumed_wh: float = 0.0
    generated_wh: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {"consumed_wh": self.consumed_wh, "generated_wh": self.generated_wh}


@dataclass(frozen=True)
class TankageTotals:
    consumed: float = 0.0
    added: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {"consumed": self.consumed, "added": self.added}


@dataclass(frozen=True)
class PowerPeriodUsage:
    """Energy consumed and generated by a power item over one period."""

    period: str
    start_time: datetime
    end_time: datetime
    start_value: float
    end_value: float
    delta: float
    energy: EnergyTotals
    insufficient_data: bool = field(default=False, init=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "insufficient_data": False,
            "period": self.period,
            "start_time": _isoformat(self.start_time),
            "end_time": _isoformat(self.end_time),
            "start_value": self.start_value,
            "end_value": self.end_value,
            "delta": self.delta,
            "energy": self.energy.as_dict(),
        }


@dataclass(frozen=True)
class TankagePeriodUsage:
    """Volume consumed and added for a tank over one period."""

    period: str
    start_time: datetime
    end_time: datetime
    start_value: float
    end_value: float
    delta: float
    consumed: float
    added: float
    consumption_rate: float | None
    addition_rate: float | None
    insufficient_data: bool = field(default=False, init=False)

    def as_dict(self) -> dict[str, Any]:
        return {
            "insufficient_data": False,
            "period": self.period,
            "start_time": _isoformat(self.start_time),
            "end_time": _isoformat(self.end_time),
            "start_value": self.start_value,
            "end_value": self.end_value,
            "delta": self.delta,
            "consumed": self.consumed,
            "added": self.added,
            "consumption_rate": self.consumption_rate,
            "addition_rate": self.addition_rate,
        }


PeriodResult = InsufficientData | PowerPeriodUsage | TankagePeriodUsage


@dataclass
class ItemUsage:
    """Per-period usage of one configured item, rebuilt every pass."""

    path: str
    name: str
    unit: str
    domain: str
    capacity: float | None = None
    directionality: str | None = None
    periods: dict[str, PeriodResult] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "unit": self.unit,
            "domain": self.domain,
            "capacity": self.capacity,
            "directionality": self.directionality,
            "periods": {key: result.as_dict() for key, result in self.periods.items()},
        }


@dataclass(frozen=True)
class GroupPeriodUsage:
    """Summed usage of a group's members for one period."""

    period: str
    consumed: float | None = None
    added: float | None = None
    energy: EnergyTotals | None = None
    missing_paths: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "period": self.period,
            "missing_paths": list(self.missing_paths),
        }
        if self.energy is not None:
            data["energy"] = self.energy.as_dict()
        else:
            data["consumed"] = self.consumed
            data["added"] = self.added
        return data


@dataclass
class GroupUsage:
    id: str
    name: str
    type: str
    paths: tuple[str, ...]
    periods: dict[str, GroupPeriodUsage] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "paths": list(self.paths),
            "periods": {key: p.as_dict() for key, p in self.periods.items()},
        }


@dataclass(frozen=True)
class CachedUsage:
    """A cache slot: computed usage and when it was stored."""

    data: ItemUsage | GroupUsage
    timestamp: datetime


@dataclass(frozen=True)
class UsageSnapshot:
    """Merged, queryable view over both engines' caches."""

    timestamp: datetime
    ready: bool
    items: dict[str, ItemUsage] = field(default_factory=dict)
    groups: dict[str, GroupUsage] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "ready": self.ready,
            "items": {path: item.as_dict() for path, item in self.items.items()},
            "groups": {gid: group.as_dict() for gid, group in self.groups.items()},
        }


@dataclass(frozen=True)
class CustomRangeResult:
    """Result of an ad-hoc query over an explicit start/end range."""

    path: str
    start: datetime
    end: datetime
    aggregation: str
    type: str
    data: tuple[Sample, ...] = ()
    energy: EnergyTotals | None = None
    tankage: TankageTotals | None = None
    message: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "aggregation": self.aggregation,
            "type": self.type,
            "data": [sample.as_dict() for sample in self.data],
        }
        if self.energy is not None:
            data["energy"] = self.energy.as_dict()
        if self.tankage is not None:
            data["tankage"] = self.tankage.as_dict()
        if self.message:
            data["message"] = self.message
        return data
