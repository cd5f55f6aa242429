"""Shared fixtures for vessel usage tests."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

# Ensure custom_components is importable
project_root = Path(__file__).resolve().parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

pytest.importorskip("homeassistant")

from homeassistant.util import dt as dt_util

from custom_components.vessel_usage.models import (
    PeriodConfig,
    PowerItemConfig,
    Sample,
    TankageItemConfig,
    UsageConfig,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=dt_util.UTC)


@pytest.fixture
def mock_hass():
    """Create a mocked HomeAssistant instance."""
    hass = MagicMock()
    hass.states.get.return_value = None
    hass.async_create_task.return_value = None
    hass.data = {}
    return hass


def make_series(
    values: list[float],
    step: timedelta = timedelta(minutes=1),
    start: datetime = BASE_TIME,
) -> list[Sample]:
    """Build evenly spaced samples starting at ``start``."""
    return [Sample(start + step * index, value) for index, value in enumerate(values)]


class FakeQueryPort:
    """In-memory query port.

    Every query returns the whole stored series for a path; range and
    aggregation are only recorded. ``delay`` makes each query sleep, and
    ``errors`` makes queries for a path raise.
    """

    def __init__(self, series: dict[str, list[Sample]] | None = None) -> None:
        self.series: dict[str, list[Sample]] = dict(series or {})
        self.errors: dict[str, Exception] = {}
        self.delay = 0.0
        self.calls: list[tuple] = []
        self.active = 0
        self.max_active = 0

    async def _run(self, path: str) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if path in self.errors:
                raise self.errors[path]
        finally:
            self.active -= 1

    async def async_query_aggregated(self, path, range_text, aggregation):
        self.calls.append(("aggregated", path, range_text, aggregation))
        await self._run(path)
        return list(self.series.get(path, []))

    async def async_query_first_last(self, path, range_text):
        self.calls.append(("first_last", path, range_text))
        await self._run(path)
        samples = self.series.get(path, [])
        if not samples:
            return None, None
        return samples[0], samples[-1]

    async def async_query_custom_range(self, path, start, end, aggregation):
        self.calls.append(("custom", path, start, end, aggregation))
        await self._run(path)
        return [s for s in self.series.get(path, []) if start <= s.timestamp <= end]


@pytest.fixture
def query_port():
    return FakeQueryPort()


def power_item(path: str, range_text: str = "1h", aggregation: str = "1m", **kwargs):
    return PowerItemConfig(
        path=path, periods=(PeriodConfig(range_text, aggregation),), **kwargs
    )


def tank_item(path: str, range_text: str = "24h", aggregation: str = "1h", **kwargs):
    return TankageItemConfig(
        path=path, periods=(PeriodConfig(range_text, aggregation),), **kwargs
    )


def make_usage_config(power=(), tankage=(), groups=(), **kwargs) -> UsageConfig:
    return UsageConfig(
        power=tuple(power), tankage=tuple(tankage), groups=tuple(groups), **kwargs
    )


def make_vessel_coordinator(mock_hass, usage):
    """Create a VesselUsageCoordinator without a running Home Assistant."""
    from custom_components.vessel_usage.coordinator import VesselUsageCoordinator

    with patch("homeassistant.helpers.frame.report_usage"):
        return VesselUsageCoordinator(mock_hass, usage)
