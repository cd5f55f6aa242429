"""Volume usage for tank measurement points."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
import logging

from .const import (
    ADDITION_MIN_DURATION,
    DOMAIN_TANKAGE,
    GAL_TO_M3,
    LARGE_REFILL_THRESHOLD_GAL,
    LARGE_TANK_ADDITION_GAL,
    M3_TO_GAL,
    MIN_TIME_BETWEEN_POINTS,
    SMALL_TANK_ADDITION_GAL,
    SMOOTHING_WINDOW,
    TANKAGE_MIN_COVERAGE_PERCENT,
    UNIT_CUBIC_METERS,
    UNIT_RATIO,
    UNIT_UNKNOWN,
)
from .engine import UsageEngine
from .models import (
    InsufficientData,
    ItemUsage,
    PeriodConfig,
    PeriodResult,
    Sample,
    TankageItemConfig,
    TankagePeriodUsage,
    TankageTotals,
)
from .periods import parse_range_hours

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TankageFilter:
    """Noise filtering thresholds for tank change detection.

    Volumes are in gallons and converted to cubic metres where applied.
    """

    min_time_between_points: timedelta = MIN_TIME_BETWEEN_POINTS
    addition_min_duration: timedelta = ADDITION_MIN_DURATION
    small_tank_addition_gal: float = SMALL_TANK_ADDITION_GAL
    large_tank_addition_gal: float = LARGE_TANK_ADDITION_GAL
    smoothing_window: timedelta = SMOOTHING_WINDOW
    large_refill_threshold_gal: float = LARGE_REFILL_THRESHOLD_GAL
    min_coverage_percent: float = TANKAGE_MIN_COVERAGE_PERCENT

    def addition_threshold_m3(self, large: bool) -> float:
        gallons = self.large_tank_addition_gal if large else self.small_tank_addition_gal
        return gallons * GAL_TO_M3

    @property
    def large_refill_threshold_m3(self) -> float:
        return self.large_refill_threshold_gal * GAL_TO_M3


DEFAULT_FILTER = TankageFilter()


def find_refill_anchors(
    samples: Sequence[Sample], threshold: float
) -> set[int]:
    """Return indices whose single-step raw increase is at least ``threshold``."""
    return {
        index
        for index in range(1, len(samples))
        if samples[index].value - samples[index - 1].value >= threshold
    }


def smooth_samples(
    samples: Sequence[Sample],
    window: timedelta = SMOOTHING_WINDOW,
    refill_threshold: float = LARGE_REFILL_THRESHOLD_GAL * GAL_TO_M3,
) -> list[Sample]:
    """Replace each value with its trailing ``window`` mean.

    Large refills are kept raw and restart the window, so a refill is never
    averaged away and later samples smooth only against the new level.
    """
    anchors = find_refill_anchors(samples, refill_threshold)
    smoothed: list[Sample] = []
    baseline = 0

    for index, sample in enumerate(samples):
        if index in anchors:
            baseline = index
            smoothed.append(sample)
            continue

        window_start = sample.timestamp - window
        values = [
            s.value
            for s in samples[baseline : index + 1]
            if s.timestamp >= window_start
        ]
        smoothed.append(Sample(sample.timestamp, sum(values) / len(values)))

    return smoothed


def detect_changes(
    samples: Sequence[Sample],
    addition_threshold: float,
    min_spacing: timedelta = MIN_TIME_BETWEEN_POINTS,
    addition_min_duration: timedelta = ADDITION_MIN_DURATION,
) -> TankageTotals:
    """Walk the series and total decreases (consumed) and real increases (added).

    Samples closer than ``min_spacing`` to the last tracked point are skipped.
    Increases below ``addition_threshold`` or over less than
    ``addition_min_duration`` are treated as noise.
    """
    if len(samples) < 2:
        return TankageTotals()

    consumed = 0.0
    added = 0.0
    tracked = samples[0]

    for current in samples[1:]:
        elapsed = current.timestamp - tracked.timestamp
        if elapsed < min_spacing:
            continue

        change = current.value - tracked.value
        if change < 0:
            consumed += abs(change)
        elif change > 0:
            if change >= addition_threshold and elapsed >= addition_min_duration:
                added += change

        tracked = current

    return TankageTotals(consumed=consumed, added=added)


def coverage_percent(samples: Sequence[Sample], range_hours: float) -> float:
    """Return how much of the range the series spans, as a percentage."""
    if len(samples) < 2 or range_hours <= 0:
        return 0.0
    covered = samples[-1].timestamp - samples[0].timestamp
    return covered.total_seconds() / 3600 / range_hours * 100


def get_unit(item: TankageItemConfig) -> str:
    """Return the item's unit, inferring it from the path when not configured."""
    if item.unit:
        return item.unit

    path = item.path.lower()
    if "currentlevel" in path or "current_level" in path:
        return UNIT_RATIO
    if "tank" in path and any(
        token in path for token in ("remaining", "currentvolume", "current_volume")
    ):
        return UNIT_CUBIC_METERS
    return UNIT_UNKNOWN


class TankageUsageEngine(UsageEngine):
    """Volume consumed and added per tank item and period."""

    name = "TankageUsageEngine"

    def __init__(self, *args, filters: TankageFilter = DEFAULT_FILTER, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.filters = filters

    def _new_item_usage(self, item: TankageItemConfig) -> ItemUsage:
        return ItemUsage(
            path=item.path,
            name=item.display_name,
            unit=get_unit(item),
            domain=DOMAIN_TANKAGE,
            capacity=item.capacity,
        )

    def process_samples(self, samples: Sequence[Sample], large: bool) -> TankageTotals:
        """Smooth the series, then total its consumption and additions."""
        smoothed = smooth_samples(
            samples,
            self.filters.smoothing_window,
            self.filters.large_refill_threshold_m3,
        )
        return detect_changes(
            smoothed,
            self.filters.addition_threshold_m3(large),
            self.filters.min_time_between_points,
            self.filters.addition_min_duration,
        )

    async def async_calculate_usage_for_period(
        self, item: TankageItemConfig, period: PeriodConfig
    ) -> PeriodResult:
        path = item.path
        _LOGGER.debug(
            "Calculating %s for %s (aggregation: %s, tank type: %s)",
            period.range,
            path,
            period.aggregation,
            "large" if item.large else "small",
        )

        first, last = await self.query.async_query_first_last(path, period.range)
        if first is None or last is None:
            return InsufficientData("No data available for this period")

        samples = await self.query.async_query_aggregated(
            path, period.range, period.aggregation
        )
        if len(samples) < 2:
            _LOGGER.debug(
                "Insufficient data points for %s: %s", path, len(samples)
            )
            return InsufficientData("Insufficient data points")

        coverage = coverage_percent(samples, parse_range_hours(period.range))
        if coverage < self.filters.min_coverage_percent:
            _LOGGER.debug(
                "Insufficient coverage for %s (%s): %.0f%%",
                path,
                period.range,
                coverage,
            )
            return InsufficientData(
                f"Only {coverage:.0f}% coverage "
                f"(need {self.filters.min_coverage_percent:.0f}%)"
            )

        anchors = find_refill_anchors(samples, self.filters.large_refill_threshold_m3)
        for index in sorted(anchors):
            _LOGGER.debug(
                "Large refill detected for %s: %.2f gal at %s, preserving from smoothing",
                path,
                (samples[index].value - samples[index - 1].value) * M3_TO_GAL,
                samples[index].timestamp,
            )

        totals = self.process_samples(samples, item.large)
        _LOGGER.debug(
            "%s (%s): consumed %.2f gal, added %.2f gal from %s points",
            path,
            period.range,
            totals.consumed * M3_TO_GAL,
            totals.added * M3_TO_GAL,
            len(samples),
        )

        elapsed_hours = (last.timestamp - first.timestamp).total_seconds() / 3600
        consumption_rate = None
        addition_rate = None
        if elapsed_hours > 0:
            consumption_rate = totals.consumed / elapsed_hours
            addition_rate = totals.added / elapsed_hours

        return TankagePeriodUsage(
            period=period.range,
            start_time=first.timestamp,
            end_time=last.timestamp,
            start_value=first.value,
            end_value=last.value,
            delta=last.value - first.value,
            consumed=totals.consumed,
            added=totals.added,
            consumption_rate=consumption_rate,
            addition_rate=addition_rate,
        )

    def calculate_tankage_from_data(
        self, samples: Sequence[Sample], large: bool = False
    ) -> TankageTotals:
        """Total an externally supplied series, independent of the cache."""
        if len(samples) < 2:
            return TankageTotals()
        return self.process_samples(samples, large)
