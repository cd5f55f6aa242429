"""Tests for the recorder-backed query port in query.py."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

pytest.importorskip("homeassistant")
pytest.importorskip("homeassistant.components.recorder.history")

from sqlalchemy.exc import OperationalError

from custom_components.vessel_usage.models import Sample
from custom_components.vessel_usage.power import PowerUsageEngine
from custom_components.vessel_usage.query import QueryError, RecorderQueryPort
from custom_components.vessel_usage.tankage import TankageUsageEngine
from conftest import BASE_TIME, power_item, tank_item

PATH = "sensor.shore_power"
TANK = "sensor.fuel_tank_remaining"
END = BASE_TIME + timedelta(hours=24)


def _state(value, minutes):
    state = MagicMock()
    state.state = value
    state.last_updated = BASE_TIME + timedelta(minutes=minutes)
    return state


def _recorder(states=None, error=None, path=PATH):
    instance = MagicMock()
    if error is not None:
        instance.async_add_executor_job = AsyncMock(side_effect=error)
    else:
        instance.async_add_executor_job = AsyncMock(side_effect=lambda job: job())
    history = MagicMock(return_value={path: states or []})
    return instance, history


@contextmanager
def _patched(instance, history, now=END):
    with (
        patch(
            "homeassistant.components.recorder.get_instance",
            return_value=instance,
        ),
        patch(
            "homeassistant.components.recorder.history.state_changes_during_period",
            history,
        ),
        patch("homeassistant.util.dt.utcnow", return_value=now),
    ):
        yield


# ---------------------------------------------------------------------------
# RecorderQueryPort
# ---------------------------------------------------------------------------

class TestRecorderQueryPort:
    """Tests for the recorder-backed query port."""

    @pytest.mark.asyncio
    async def test_first_last(self, mock_hass):
        instance, history = _recorder(
            [_state("5", 10), _state("unavailable", 20), _state("7", 30)]
        )
        with _patched(instance, history, now=BASE_TIME + timedelta(hours=1)):
            first, last = await RecorderQueryPort(mock_hass).async_query_first_last(
                PATH, "1h"
            )

        assert first == Sample(BASE_TIME + timedelta(minutes=10), 5.0)
        assert last == Sample(BASE_TIME + timedelta(hours=1), 7.0)
        assert history.call_args.kwargs["no_attributes"] is True
        assert history.call_args.kwargs["include_start_time_state"] is True

    @pytest.mark.asyncio
    async def test_last_known_state_before_unavailable(self, mock_hass):
        instance, history = _recorder([_state("5", 10), _state("unavailable", 20)])
        with _patched(instance, history, now=BASE_TIME + timedelta(hours=1)):
            _, last = await RecorderQueryPort(mock_hass).async_query_first_last(
                PATH, "1h"
            )

        assert last == Sample(BASE_TIME + timedelta(minutes=10), 5.0)

    @pytest.mark.asyncio
    async def test_start_state_is_clamped_to_range_start(self, mock_hass):
        instance, history = _recorder([_state("3", -300)])
        with _patched(instance, history, now=BASE_TIME + timedelta(hours=1)):
            first, last = await RecorderQueryPort(mock_hass).async_query_first_last(
                PATH, "1h"
            )

        assert first == Sample(BASE_TIME, 3.0)
        assert last == Sample(BASE_TIME + timedelta(hours=1), 3.0)

    @pytest.mark.asyncio
    async def test_custom_range_is_time_weighted(self, mock_hass):
        instance, history = _recorder([_state("10", 1), _state("20", 5)])
        end = BASE_TIME + timedelta(hours=1)
        with _patched(instance, history):
            samples = await RecorderQueryPort(mock_hass).async_query_custom_range(
                PATH, BASE_TIME, end, "15m"
            )

        assert samples == [
            Sample(BASE_TIME + timedelta(minutes=15), pytest.approx(240 / 14)),
            Sample(BASE_TIME + timedelta(minutes=30), 20.0),
            Sample(BASE_TIME + timedelta(minutes=45), 20.0),
            Sample(end, 20.0),
        ]
        assert history.call_args.args[1:4] == (BASE_TIME, end, PATH)

    @pytest.mark.asyncio
    async def test_empty_history(self, mock_hass):
        instance, history = _recorder([])
        with _patched(instance, history):
            first, last = await RecorderQueryPort(mock_hass).async_query_first_last(
                PATH, "24h"
            )

        assert (first, last) == (None, None)

    @pytest.mark.asyncio
    async def test_database_errors_become_query_errors(self, mock_hass):
        instance, history = _recorder(
            error=OperationalError("SELECT", {}, Exception("locked"))
        )
        with _patched(instance, history), pytest.raises(QueryError):
            await RecorderQueryPort(mock_hass).async_query_aggregated(PATH, "1h", "1m")


# ---------------------------------------------------------------------------
# Sensors that rarely change
# ---------------------------------------------------------------------------

class TestSparseStateChanges:
    """A state that holds still counts for the whole time it holds."""

    @pytest.mark.asyncio
    async def test_steady_load_is_fully_covered(self, mock_hass):
        instance, history = _recorder([_state("500", -90), _state("300", 12 * 60)])
        engine = PowerUsageEngine(
            RecorderQueryPort(mock_hass), [power_item(PATH, "24h", "1m")]
        )
        with _patched(instance, history):
            usage = await engine.async_calculate_for_item(engine.items[0])

        result = usage.periods["24h"]
        assert result.insufficient_data is False
        assert result.energy.consumed_wh == pytest.approx(9600.0, rel=0.01)
        assert result.end_time == END

    @pytest.mark.asyncio
    async def test_unchanged_idle_sensor_reports_zero(self, mock_hass):
        instance, history = _recorder([_state("0", -600)])
        engine = PowerUsageEngine(
            RecorderQueryPort(mock_hass), [power_item(PATH, "24h", "15m")]
        )
        with _patched(instance, history):
            usage = await engine.async_calculate_for_item(engine.items[0])

        result = usage.periods["24h"]
        assert result.insufficient_data is False
        assert result.energy.consumed_wh == 0.0

    @pytest.mark.asyncio
    async def test_tank_level_holding_steady_is_covered(self, mock_hass):
        instance, history = _recorder(
            [_state("0.5", -120), _state("0.45", 16 * 60)], path=TANK
        )
        engine = TankageUsageEngine(
            RecorderQueryPort(mock_hass), [tank_item(TANK, "24h", "1h")]
        )
        with _patched(instance, history):
            usage = await engine.async_calculate_for_item(engine.items[0])

        result = usage.periods["24h"]
        assert result.insufficient_data is False
        assert result.consumed == pytest.approx(0.05)
        assert result.added == 0.0
