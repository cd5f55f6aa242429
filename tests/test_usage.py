"""Tests for the UsageCoordinator in usage.py."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

pytest.importorskip("homeassistant")

from custom_components.vessel_usage.const import GAL_TO_M3
from custom_components.vessel_usage.models import GroupConfig, UsageSnapshot
from custom_components.vessel_usage.usage import UsageCoordinator
from conftest import (
    BASE_TIME,
    FakeQueryPort,
    make_series,
    make_usage_config,
    power_item,
    tank_item,
)

SHORE = "sensor.shore_power"
CHARGER = "sensor.charger_acin_power"
SOLAR = "sensor.solar_power"
FUEL = "sensor.fuel_tank_remaining"
WATER = "sensor.water_tank_remaining"


def _coordinator(port, **config):
    return UsageCoordinator(port, make_usage_config(**config), query_timeout=None)


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

class TestCalculateAll:
    """Tests for running a pass over both engines."""

    @pytest.mark.asyncio
    async def test_not_ready_before_first_pass(self):
        usage = _coordinator(FakeQueryPort(), power=[power_item(SHORE)])
        snapshot = usage.get_usage_data()
        assert isinstance(snapshot, UsageSnapshot)
        assert snapshot.ready is False
        assert snapshot.items == {}
        assert snapshot.groups == {}

    @pytest.mark.asyncio
    async def test_pass_merges_both_engines(self):
        port = FakeQueryPort(
            {
                SHORE: make_series([100.0] * 61),
                FUEL: make_series([0.5] * 25, timedelta(hours=1)),
            }
        )
        usage = _coordinator(port, power=[power_item(SHORE)], tankage=[tank_item(FUEL)])

        assert await usage.async_calculate_all() is True

        snapshot = usage.get_usage_data()
        assert snapshot.ready is True
        assert set(snapshot.items) == {SHORE, FUEL}
        assert snapshot.timestamp == usage.last_calculated
        assert usage.is_calculating is False

    @pytest.mark.asyncio
    async def test_disabled_items_are_not_in_snapshot(self):
        port = FakeQueryPort(
            {SHORE: make_series([100.0] * 61), SOLAR: make_series([10.0] * 61)}
        )
        usage = _coordinator(
            port, power=[power_item(SHORE), power_item(SOLAR, enabled=False)]
        )
        await usage.async_calculate_all()
        assert set(usage.get_usage_data().items) == {SHORE}

    @pytest.mark.asyncio
    async def test_single_flight(self):
        port = FakeQueryPort({SHORE: make_series([100.0] * 61)})
        port.delay = 0.02
        usage = _coordinator(port, power=[power_item(SHORE)])

        first, second = await asyncio.gather(
            usage.async_calculate_all(), usage.async_calculate_all()
        )

        assert sorted([first, second]) == [False, True]
        first_last_calls = [call for call in port.calls if call[0] == "first_last"]
        assert len(first_last_calls) == 1
        assert usage.is_calculating is False

    @pytest.mark.asyncio
    async def test_flag_cleared_after_failure(self):
        usage = _coordinator(FakeQueryPort(), power=[power_item(SHORE)])

        async def fail():
            raise RuntimeError("engine crashed")

        usage.power_engine.async_calculate_all = fail
        with pytest.raises(RuntimeError):
            await usage.async_calculate_all()

        assert usage.is_calculating is False
        assert usage.is_ready is False

    @pytest.mark.asyncio
    async def test_stop_clears_everything(self):
        port = FakeQueryPort({SHORE: make_series([100.0] * 61)})
        usage = _coordinator(
            port,
            power=[power_item(SHORE)],
            groups=[GroupConfig("house", "House", "power", (SHORE,))],
        )
        await usage.async_calculate_all()
        usage.stop()

        assert usage.get_usage_for_path(SHORE) is None
        assert usage.get_group_usage("house") is None


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

class TestGroups:
    """Tests for summing group members."""

    @pytest.mark.asyncio
    async def test_power_group_sums_members(self):
        port = FakeQueryPort(
            {SHORE: make_series([100.0] * 61), CHARGER: make_series([50.0] * 61)}
        )
        group = GroupConfig("ac", "AC input", "power", (SHORE, CHARGER))
        usage = _coordinator(
            port, power=[power_item(SHORE), power_item(CHARGER)], groups=[group]
        )
        await usage.async_calculate_all()

        period = usage.get_group_usage("ac").periods["1h"]
        assert period.energy.consumed_wh == pytest.approx(150.0)
        assert period.energy.generated_wh == 0.0
        assert period.missing_paths == ()

    @pytest.mark.asyncio
    async def test_missing_and_insufficient_members_are_listed(self):
        port = FakeQueryPort({SHORE: make_series([100.0] * 61)})
        group = GroupConfig(
            "ac", "AC input", "power", (SHORE, CHARGER, "sensor.unknown_power")
        )
        usage = _coordinator(
            port, power=[power_item(SHORE), power_item(CHARGER)], groups=[group]
        )
        await usage.async_calculate_all()

        period = usage.get_group_usage("ac").periods["1h"]
        assert period.energy.consumed_wh == pytest.approx(100.0)
        assert period.missing_paths == (CHARGER, "sensor.unknown_power")

    @pytest.mark.asyncio
    async def test_tank_group_sums_volumes(self):
        fuel = make_series([0.5 - 0.001 * i for i in range(25)], timedelta(hours=1))
        water = make_series([0.3] * 25, timedelta(hours=1))
        port = FakeQueryPort({FUEL: fuel, WATER: water})
        group = GroupConfig("tanks", "Tanks", "tankage", (FUEL, WATER))
        usage = _coordinator(
            port, tankage=[tank_item(FUEL), tank_item(WATER)], groups=[group]
        )
        await usage.async_calculate_all()

        fuel_consumed = usage.get_usage_for_path(FUEL).periods["24h"].consumed
        period = usage.get_group_usage("tanks").periods["24h"]
        assert period.consumed == pytest.approx(fuel_consumed, abs=1e-9)
        assert period.energy is None
        assert usage.get_usage_data().groups["tanks"].as_dict()["type"] == "tankage"

    @pytest.mark.asyncio
    async def test_group_periods_are_union_of_members(self):
        port = FakeQueryPort(
            {SHORE: make_series([100.0] * 61), CHARGER: make_series([50.0] * 61)}
        )
        group = GroupConfig("ac", "AC input", "power", (SHORE, CHARGER))
        usage = _coordinator(
            port,
            power=[power_item(SHORE), power_item(CHARGER, "2h", "1m")],
            groups=[group],
        )
        await usage.async_calculate_all()

        periods = usage.get_group_usage("ac").periods
        assert set(periods) == {"1h", "2h"}
        assert periods["2h"].missing_paths == (SHORE,)


# ---------------------------------------------------------------------------
# Lookups and ad-hoc queries
# ---------------------------------------------------------------------------

class TestLookupsAndCustomRange:
    """Tests for item lookups and explicit-range queries."""

    def test_find_item_config(self):
        usage = _coordinator(
            FakeQueryPort(), power=[power_item(SHORE)], tankage=[tank_item(FUEL)]
        )
        assert usage.find_item_config(SHORE).domain == "power"
        assert usage.find_item_config(FUEL).domain == "tankage"
        assert usage.find_item_config("sensor.nothing") is None

    @pytest.mark.asyncio
    async def test_power_range(self):
        port = FakeQueryPort({SOLAR: make_series([60.0] * 61)})
        usage = _coordinator(port, power=[power_item(SOLAR)])

        result = await usage.async_query_custom_range(
            SOLAR, BASE_TIME, BASE_TIME + timedelta(hours=1)
        )

        assert result.type == "power"
        assert result.aggregation == "1m"
        assert result.energy.generated_wh == pytest.approx(60.0)
        assert len(result.data) == 61
        assert port.calls[-1][4] == "1m"

    @pytest.mark.asyncio
    async def test_unknown_path_is_treated_as_tankage(self):
        refill = 12 * GAL_TO_M3
        samples = make_series([0.2, 0.2 + refill], timedelta(hours=1))
        port = FakeQueryPort({"sensor.day_tank_remaining": samples})
        usage = _coordinator(port, tankage=[tank_item(FUEL)])

        result = await usage.async_query_custom_range(
            "sensor.day_tank_remaining",
            BASE_TIME,
            BASE_TIME + timedelta(hours=2),
            "1h",
        )

        assert result.type == "tankage"
        assert result.tankage.added == pytest.approx(refill)
        assert result.as_dict()["tankage"]["added"] == pytest.approx(refill)

    @pytest.mark.asyncio
    async def test_empty_range_has_message(self):
        usage = _coordinator(FakeQueryPort(), power=[power_item(SHORE)])
        result = await usage.async_query_custom_range(
            SHORE, BASE_TIME, BASE_TIME + timedelta(days=3)
        )
        assert result.message == "No data found for the specified range"
        assert result.aggregation == "1h"
        assert result.energy is None
        assert result.as_dict()["data"] == []

    @pytest.mark.asyncio
    async def test_inverted_range_is_rejected(self):
        usage = _coordinator(FakeQueryPort(), power=[power_item(SHORE)])
        with pytest.raises(ValueError):
            await usage.async_query_custom_range(SHORE, BASE_TIME, BASE_TIME)

    def test_calculate_aggregation(self):
        assert UsageCoordinator.calculate_aggregation(timedelta(hours=5)) == "5m"
