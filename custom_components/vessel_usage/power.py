"""Energy usage for power measurement points."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import timedelta
import logging
import math

from homeassistant.util import dt as dt_util

from .const import (
    DIRECTIONALITY_CONSUMER,
    DIRECTIONALITY_PRODUCER,
    DOMAIN_POWER,
    GAP_WINDOW_MULTIPLIER,
    UNIT_WATTS,
)
from .directionality import (
    DirectionalityResult,
    apply_directionality,
    resolve_directionality,
)
from .engine import UsageEngine
from .models import (
    InsufficientData,
    ItemUsage,
    PeriodConfig,
    PeriodResult,
    PowerItemConfig,
    PowerPeriodUsage,
    Sample,
)
from .periods import parse_aggregation_minutes, parse_range_hours

_LOGGER = logging.getLogger(__name__)

_SECONDS_PER_HOUR = 3600.0


@dataclass(frozen=True)
class IntegrationResult:
    """Positive and negative energy buckets from one integration pass."""

    positive_wh: float = 0.0
    negative_wh: float = 0.0
    gaps_detected: int = 0
    gap_hours: float = 0.0
    skipped_noise: int = 0


@dataclass(frozen=True)
class CoverageResult:
    covered: int
    expected: int
    unit: str

    @property
    def sufficient(self) -> bool:
        return self.covered >= self.expected

    @property
    def reason(self) -> str:
        return f"Insufficient coverage ({self.covered}/{self.expected} {self.unit})"


def check_bucket_coverage(samples: Sequence[Sample], range_hours: float) -> CoverageResult:
    """Count the distinct UTC hours (or days, beyond 24h) the samples touch."""
    stamps = [dt_util.as_utc(s.timestamp) for s in samples]
    if range_hours <= 24:
        hours = {(t.year, t.month, t.day, t.hour) for t in stamps}
        return CoverageResult(len(hours), math.ceil(range_hours), "hours")

    days = {t.date() for t in stamps}
    return CoverageResult(len(days), math.ceil(range_hours / 24), "days")


def integrate_energy(
    samples: Sequence[Sample],
    gap_threshold: timedelta | None = None,
    discard_negative: bool = False,
) -> IntegrationResult:
    """Integrate a power series (W) into Wh with the trapezoidal rule.

    Pairs further apart than ``gap_threshold`` hold the earlier value across
    the gap. With ``discard_negative``, pairs whose average is below zero are
    dropped as noise; zero averages still count.
    """
    positive_wh = 0.0
    negative_wh = 0.0
    gaps_detected = 0
    gap_hours = 0.0
    skipped_noise = 0

    for previous, current in zip(samples, samples[1:]):
        elapsed = current.timestamp - previous.timestamp
        hours = elapsed.total_seconds() / _SECONDS_PER_HOUR
        average = (previous.value + current.value) / 2

        if discard_negative and average < 0:
            skipped_noise += 1
            continue

        if gap_threshold is not None and elapsed > gap_threshold:
            gaps_detected += 1
            gap_hours += hours
            energy = previous.value * hours
        else:
            energy = average * hours

        if energy > 0:
            positive_wh += energy
        else:
            negative_wh += abs(energy)

    return IntegrationResult(
        positive_wh=positive_wh,
        negative_wh=negative_wh,
        gaps_detected=gaps_detected,
        gap_hours=gap_hours,
        skipped_noise=skipped_noise,
    )


class PowerUsageEngine(UsageEngine):
    """Energy consumed and generated per power item and period."""

    name = "PowerUsageEngine"

    def _new_item_usage(self, item: PowerItemConfig) -> ItemUsage:
        return ItemUsage(
            path=item.path,
            name=item.display_name,
            unit=UNIT_WATTS,
            domain=DOMAIN_POWER,
            capacity=item.capacity,
            directionality=resolve_directionality(item.path, item.directionality),
        )

    async def async_calculate_usage_for_period(
        self, item: PowerItemConfig, period: PeriodConfig
    ) -> PeriodResult:
        path = item.path
        directionality = resolve_directionality(path, item.directionality)
        _LOGGER.debug(
            "Calculating %s for %s (aggregation: %s, directionality: %s)",
            period.range,
            path,
            period.aggregation,
            directionality,
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

        coverage = check_bucket_coverage(samples, parse_range_hours(period.range))
        _LOGGER.debug(
            "Coverage for %s (%s): %s/%s %s",
            path,
            period.range,
            coverage.covered,
            coverage.expected,
            coverage.unit,
        )
        if not coverage.sufficient:
            return InsufficientData(coverage.reason)

        gap_threshold = timedelta(
            minutes=parse_aggregation_minutes(period.aggregation)
            * GAP_WINDOW_MULTIPLIER
        )
        integration = integrate_energy(
            samples,
            gap_threshold=gap_threshold,
            discard_negative=directionality
            in (DIRECTIONALITY_PRODUCER, DIRECTIONALITY_CONSUMER),
        )
        if integration.skipped_noise:
            _LOGGER.debug(
                "Skipped %s noise windows (negative values) for %s",
                integration.skipped_noise,
                path,
            )
        if integration.gaps_detected:
            _LOGGER.debug(
                "Detected %s data gaps totaling %.1f hours for %s, "
                "filled with last known values",
                integration.gaps_detected,
                integration.gap_hours,
                path,
            )

        result = apply_directionality(
            directionality, integration.positive_wh, integration.negative_wh, path
        )
        _LOGGER.debug(
            "Energy for %s (%s): consumed %.2f Wh, generated %.2f Wh (%s)",
            path,
            period.range,
            result.consumed_wh,
            result.generated_wh,
            result.applied_directionality,
        )

        return PowerPeriodUsage(
            period=period.range,
            start_time=first.timestamp,
            end_time=last.timestamp,
            start_value=first.value,
            end_value=last.value,
            delta=last.value - first.value,
            energy=result.as_energy(),
        )

    def calculate_energy_from_data(
        self, samples: Sequence[Sample], item: PowerItemConfig
    ) -> DirectionalityResult:
        """Integrate an externally supplied series without gap or noise handling."""
        directionality = resolve_directionality(item.path, item.directionality)
        if len(samples) < 2:
            return DirectionalityResult(0.0, 0.0, directionality)

        integration = integrate_energy(samples)
        return apply_directionality(
            directionality, integration.positive_wh, integration.negative_wh, item.path
        )
