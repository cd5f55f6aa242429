"""Coordinates the power and tankage engines into one queryable snapshot."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timedelta
import logging

from homeassistant.util import dt as dt_util

from .const import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_QUERY_TIMEOUT,
    DOMAIN_POWER,
    DOMAIN_TANKAGE,
)
from .directionality import DirectionalityResult
from .models import (
    CachedUsage,
    CustomRangeResult,
    EnergyTotals,
    GroupConfig,
    GroupPeriodUsage,
    GroupUsage,
    ItemConfig,
    ItemUsage,
    PowerItemConfig,
    Sample,
    TankageItemConfig,
    TankageTotals,
    UsageConfig,
    UsageSnapshot,
)
from .periods import calculate_aggregation
from .power import PowerUsageEngine
from .query import QueryPort
from .tankage import TankageFilter, TankageUsageEngine, DEFAULT_FILTER

_LOGGER = logging.getLogger(__name__)


class UsageCoordinator:
    """Run both engines as a single-flight pass and serve merged results."""

    def __init__(
        self,
        query: QueryPort,
        config: UsageConfig,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        query_timeout: float | None = DEFAULT_QUERY_TIMEOUT,
        tankage_filter: TankageFilter = DEFAULT_FILTER,
    ) -> None:
        self.query = query
        self.config = config
        self.power_engine = PowerUsageEngine(
            query,
            config.power,
            max_concurrency=max_concurrency,
            query_timeout=query_timeout,
            cache_enabled=config.cache_results,
        )
        self.tankage_engine = TankageUsageEngine(
            query,
            config.tankage,
            max_concurrency=max_concurrency,
            query_timeout=query_timeout,
            cache_enabled=config.cache_results,
            filters=tankage_filter,
        )

        self._group_cache: dict[str, CachedUsage] = {}
        self.is_ready = False
        self.is_calculating = False
        self.last_calculated: datetime | None = None

    async def async_calculate_all(self) -> bool:
        """Run one pass over every item.

        Returns False without doing anything if a pass is already running.
        """
        if self.is_calculating:
            _LOGGER.warning("Calculation already in progress, skipping")
            return False

        self.is_calculating = True
        _LOGGER.debug("Starting calculation for all items")
        try:
            await asyncio.gather(
                self.power_engine.async_calculate_all(),
                self.tankage_engine.async_calculate_all(),
            )
            self.calculate_groups()
            self.is_ready = True
            self.last_calculated = dt_util.utcnow()
            _LOGGER.info(
                "Calculation complete: %s power items, %s tankage items, %s groups",
                len(self.power_engine.enabled_items),
                len(self.tankage_engine.enabled_items),
                len(self.config.groups),
            )
        finally:
            self.is_calculating = False
        return True

    def _member_usage(self, group: GroupConfig, path: str) -> ItemUsage | None:
        if group.type == DOMAIN_TANKAGE:
            return self.tankage_engine.get_usage_for_path(path)
        if group.type == DOMAIN_POWER:
            return self.power_engine.get_usage_for_path(path)
        return None

    def calculate_group(self, group: GroupConfig) -> GroupUsage:
        """Sum each period shared by the group's members."""
        members = {path: self._member_usage(group, path) for path in group.paths}

        period_keys: list[str] = []
        for usage in members.values():
            if usage is None:
                continue
            for key in usage.periods:
                if key not in period_keys:
                    period_keys.append(key)

        result = GroupUsage(
            id=group.id, name=group.name, type=group.type, paths=group.paths
        )
        for key in period_keys:
            consumed = 0.0
            added = 0.0
            missing: list[str] = []
            for path, usage in members.items():
                period = usage.periods.get(key) if usage else None
                if period is None or period.insufficient_data:
                    missing.append(path)
                    continue
                if group.type == DOMAIN_POWER:
                    consumed += period.energy.consumed_wh
                    added += period.energy.generated_wh
                else:
                    consumed += period.consumed
                    added += period.added

            if group.type == DOMAIN_POWER:
                result.periods[key] = GroupPeriodUsage(
                    period=key,
                    energy=EnergyTotals(consumed_wh=consumed, generated_wh=added),
                    missing_paths=tuple(missing),
                )
            else:
                result.periods[key] = GroupPeriodUsage(
                    period=key,
                    consumed=consumed,
                    added=added,
                    missing_paths=tuple(missing),
                )

        _LOGGER.debug("Group %s has periods: %s", group.id, ", ".join(period_keys))
        return result

    def calculate_groups(self) -> None:
        for group in self.config.groups:
            usage = self.calculate_group(group)
            if self.config.cache_results:
                self._group_cache[group.id] = CachedUsage(usage, dt_util.utcnow())

    def get_usage_data(self) -> UsageSnapshot:
        """Return the merged snapshot, empty until the first pass completes."""
        if not self.is_ready:
            return UsageSnapshot(timestamp=dt_util.utcnow(), ready=False)

        items = {
            **self.power_engine.get_usage_data(),
            **self.tankage_engine.get_usage_data(),
        }
        groups = {gid: cached.data for gid, cached in self._group_cache.items()}
        return UsageSnapshot(
            timestamp=self.last_calculated or dt_util.utcnow(),
            ready=True,
            items=items,
            groups=groups,
        )

    def get_usage_for_path(self, path: str) -> ItemUsage | None:
        usage = self.power_engine.get_usage_for_path(path)
        if usage is None:
            usage = self.tankage_engine.get_usage_for_path(path)
        return usage

    def get_group_usage(self, group_id: str) -> GroupUsage | None:
        cached = self._group_cache.get(group_id)
        return cached.data if cached else None

    def find_item_config(self, path: str) -> ItemConfig | None:
        """Return the configured item for ``path``; its ``domain`` tells which kind."""
        for item in self.config.power:
            if item.path == path:
                return item
        for item in self.config.tankage:
            if item.path == path:
                return item
        return None

    @staticmethod
    def calculate_aggregation(elapsed: timedelta) -> str:
        return calculate_aggregation(elapsed)

    def calculate_energy_from_data(
        self, samples: Sequence[Sample], item: PowerItemConfig
    ) -> DirectionalityResult:
        return self.power_engine.calculate_energy_from_data(samples, item)

    def calculate_tankage_from_data(
        self, samples: Sequence[Sample], large: bool = False
    ) -> TankageTotals:
        return self.tankage_engine.calculate_tankage_from_data(samples, large)

    async def async_query_custom_range(
        self,
        path: str,
        start: datetime,
        end: datetime,
        aggregation: str | None = None,
    ) -> CustomRangeResult:
        """Compute usage for ``path`` over an explicit range, bypassing the cache."""
        if end <= start:
            raise ValueError("start must be before end")

        window = aggregation or self.calculate_aggregation(end - start)
        _LOGGER.debug(
            "Custom query: %s from %s to %s, aggregation: %s", path, start, end, window
        )
        samples = await self.query.async_query_custom_range(path, start, end, window)

        item = self.find_item_config(path)
        kind = DOMAIN_POWER if isinstance(item, PowerItemConfig) else DOMAIN_TANKAGE

        if not samples:
            return CustomRangeResult(
                path=path,
                start=start,
                end=end,
                aggregation=window,
                type=kind,
                message="No data found for the specified range",
            )

        if isinstance(item, PowerItemConfig):
            energy = self.calculate_energy_from_data(samples, item).as_energy()
            return CustomRangeResult(
                path=path,
                start=start,
                end=end,
                aggregation=window,
                type=kind,
                data=tuple(samples),
                energy=energy,
            )

        large = item.large if isinstance(item, TankageItemConfig) else False
        return CustomRangeResult(
            path=path,
            start=start,
            end=end,
            aggregation=window,
            type=kind,
            data=tuple(samples),
            tankage=self.calculate_tankage_from_data(samples, large),
        )

    def stop(self) -> None:
        self.power_engine.stop()
        self.tankage_engine.stop()
        self._group_cache.clear()
