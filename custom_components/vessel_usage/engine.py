"""Shared machinery for the per-domain usage engines."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging

from homeassistant.util import dt as dt_util

from .const import DEFAULT_MAX_CONCURRENCY, DEFAULT_QUERY_TIMEOUT
from .models import (
    CachedUsage,
    InsufficientData,
    ItemConfig,
    ItemUsage,
    PeriodConfig,
    PeriodResult,
)
from .query import QueryError, QueryPort

_LOGGER = logging.getLogger(__name__)


class UsageEngine:
    """Compute and cache per-period usage for a list of configured items.

    Items are computed concurrently, at most ``max_concurrency`` at a time.
    Each item owns exactly one cache slot, replaced only once all of its
    periods are computed. Readers may see a mix of old and new slots while a
    pass is running.
    """

    name = "UsageEngine"

    def __init__(
        self,
        query: QueryPort,
        items: Sequence[ItemConfig],
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        query_timeout: float | None = DEFAULT_QUERY_TIMEOUT,
        cache_enabled: bool = True,
    ) -> None:
        self.query = query
        self.items = tuple(items)
        self.max_concurrency = max(1, int(max_concurrency))
        # 0 or None disables the per-period timeout
        self.query_timeout = query_timeout or None
        self.cache_enabled = cache_enabled
        self._cache: dict[str, CachedUsage] = {}

    @property
    def enabled_items(self) -> list[ItemConfig]:
        return [item for item in self.items if item.enabled]

    async def async_calculate_all(self) -> None:
        """Compute every enabled item; one item's failure never stops the rest."""
        items = self.enabled_items
        _LOGGER.debug("%s: calculating usage for %s items", self.name, len(items))

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _run(item: ItemConfig) -> None:
            async with semaphore:
                await self._async_calculate_isolated(item)

        await asyncio.gather(*(_run(item) for item in items))

    async def _async_calculate_isolated(self, item: ItemConfig) -> None:
        try:
            await self.async_calculate_for_item(item)
        except Exception as exc:  # noqa: BLE001 - isolate one item from its siblings
            _LOGGER.exception(
                "%s: unexpected error calculating usage for %s", self.name, item.path
            )
            usage = self._new_item_usage(item)
            for period in item.periods:
                usage.periods[period.range] = InsufficientData(f"Error: {exc}")
            self._store(usage)

    async def async_calculate_for_item(self, item: ItemConfig) -> ItemUsage:
        """Compute every configured period of one item and cache the result."""
        _LOGGER.debug("%s: calculating usage for %s", self.name, item.path)
        usage = self._new_item_usage(item)

        for period in item.periods:
            try:
                async with asyncio.timeout(self.query_timeout):
                    result = await self.async_calculate_usage_for_period(item, period)
            except TimeoutError:
                _LOGGER.warning(
                    "%s: %s usage for %s timed out after %ss",
                    self.name,
                    period.range,
                    item.path,
                    self.query_timeout,
                )
                result = InsufficientData(
                    f"Error: query timed out after {self.query_timeout}s"
                )
            except QueryError as exc:
                _LOGGER.debug(
                    "%s: error calculating %s usage for %s: %s",
                    self.name,
                    period.range,
                    item.path,
                    exc,
                )
                result = InsufficientData(f"Error: {exc}")
            except Exception as exc:  # noqa: BLE001 - isolate one period from its siblings
                _LOGGER.exception(
                    "%s: unexpected error calculating %s usage for %s",
                    self.name,
                    period.range,
                    item.path,
                )
                result = InsufficientData(f"Error: {exc}")
            usage.periods[period.range] = result

        self._store(usage)
        return usage

    def _store(self, usage: ItemUsage) -> None:
        if self.cache_enabled:
            self._cache[usage.path] = CachedUsage(usage, dt_util.utcnow())

    def _new_item_usage(self, item: ItemConfig) -> ItemUsage:
        raise NotImplementedError

    async def async_calculate_usage_for_period(
        self, item: ItemConfig, period: PeriodConfig
    ) -> PeriodResult:
        raise NotImplementedError

    def get_usage_data(self) -> dict[str, ItemUsage]:
        """Return every cached item keyed by path."""
        return {path: cached.data for path, cached in self._cache.items()}

    def get_usage_for_path(self, path: str) -> ItemUsage | None:
        cached = self._cache.get(path)
        return cached.data if cached else None

    def get_cached(self, path: str) -> CachedUsage | None:
        return self._cache.get(path)

    def stop(self) -> None:
        self._cache.clear()
