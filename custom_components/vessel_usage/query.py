"""Query port for stored samples and its Home Assistant recorder backend."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.util import dt as dt_util

from .models import Sample
from .periods import aggregation_to_timedelta, range_to_timedelta

_LOGGER = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class QueryError(HomeAssistantError):
    """Raised when the sample store cannot answer a query."""


class QueryPort(Protocol):
    """Read-only access to stored samples."""

    async def async_query_aggregated(
        self, path: str, range_text: str, aggregation: str
    ) -> list[Sample]:
        """Return mean-aggregated samples for the trailing range, oldest first."""

    async def async_query_first_last(
        self, path: str, range_text: str
    ) -> tuple[Sample | None, Sample | None]:
        """Return the first and last known sample in the trailing range."""

    async def async_query_custom_range(
        self, path: str, start: datetime, end: datetime, aggregation: str
    ) -> list[Sample]:
        """Return mean-aggregated samples between start and end, oldest first."""


@dataclass(frozen=True)
class StateStep:
    """A recorded state, held from ``start`` until the next step.

    ``value`` is None while the entity is unknown or unavailable.
    """

    start: datetime
    value: float | None


def aggregate_steps(
    steps: Sequence[StateStep],
    window: timedelta,
    end: datetime,
) -> list[Sample]:
    """Time-weighted mean of a step series in windows aligned to the Unix epoch.

    Each state holds until the next one, or until ``end``. Time before the
    first state and unavailable stretches carry no weight, and windows with no
    known value are dropped. Each output sample is stamped with its window's
    stop time, clipped to ``end``.
    """
    if window <= timedelta(0):
        return [Sample(s.start, s.value) for s in steps if s.value is not None]

    # window index -> [value * seconds, seconds]
    weights: dict[int, list[float]] = {}
    for step, following in zip(steps, [*steps[1:], None]):
        if step.value is None:
            continue
        stop = min(following.start if following else end, end)
        current = step.start
        while current < stop:
            index = (current - _EPOCH) // window
            segment_end = min(stop, _EPOCH + window * (index + 1))
            seconds = (segment_end - current).total_seconds()
            bucket = weights.setdefault(index, [0.0, 0.0])
            bucket[0] += step.value * seconds
            bucket[1] += seconds
            current = segment_end

    aggregated: list[Sample] = []
    for index in sorted(weights):
        total, seconds = weights[index]
        if seconds <= 0:
            continue
        stamp = min(_EPOCH + window * (index + 1), end)
        aggregated.append(Sample(stamp, total / seconds))
    return aggregated


def _state_value(state) -> float | None:
    if state.state in ("unknown", "unavailable"):
        return None
    try:
        return float(state.state)
    except (ValueError, TypeError):
        return None


class RecorderQueryPort:
    """Query port reading entity state history from the recorder database.

    The recorder stores state changes only, so history is read as a step
    function starting from the state already in effect at the range start.
    """

    def __init__(self, hass: HomeAssistant) -> None:
        self.hass = hass

    async def _async_fetch(
        self, path: str, start: datetime, end: datetime
    ) -> list[StateStep]:
        from homeassistant.components.recorder import get_instance
        from homeassistant.components.recorder.history import (
            state_changes_during_period,
        )

        try:
            states = await get_instance(self.hass).async_add_executor_job(
                partial(
                    state_changes_during_period,
                    self.hass,
                    start,
                    end,
                    path,
                    no_attributes=True,
                    include_start_time_state=True,
                )
            )
        except SQLAlchemyError as exc:
            raise QueryError(f"Recorder query failed for {path}: {exc}") from exc

        # The state in effect at the range start may predate it
        steps = sorted(
            (
                StateStep(
                    max(dt_util.as_utc(state.last_updated), start), _state_value(state)
                )
                for state in states.get(path, [])
            ),
            key=lambda s: s.start,
        )
        _LOGGER.debug(
            "Fetched %s states for %s between %s and %s",
            len(steps),
            path,
            start,
            end,
        )
        return steps

    async def async_query_aggregated(
        self, path: str, range_text: str, aggregation: str
    ) -> list[Sample]:
        end = dt_util.utcnow()
        start = end - range_to_timedelta(range_text)
        return await self.async_query_custom_range(path, start, end, aggregation)

    async def async_query_first_last(
        self, path: str, range_text: str
    ) -> tuple[Sample | None, Sample | None]:
        end = dt_util.utcnow()
        start = end - range_to_timedelta(range_text)
        steps = await self._async_fetch(path, start, end)
        known = [step for step in steps if step.value is not None]
        if not known:
            return None, None

        first, last = known[0], known[-1]
        # A final known state still holds at the end of the range
        last_stamp = end if last is steps[-1] else last.start
        return Sample(first.start, first.value), Sample(last_stamp, last.value)

    async def async_query_custom_range(
        self, path: str, start: datetime, end: datetime, aggregation: str
    ) -> list[Sample]:
        steps = await self._async_fetch(path, start, end)
        aggregated = aggregate_steps(steps, aggregation_to_timedelta(aggregation), end)
        _LOGGER.debug(
            "Query complete for %s: %s points (window: %s)",
            path,
            len(aggregated),
            aggregation,
        )
        return aggregated
