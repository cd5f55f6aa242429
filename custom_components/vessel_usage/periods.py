"""Parsing helpers for range and aggregation descriptors."""

from __future__ import annotations

from datetime import timedelta
import re

from .const import DEFAULT_AGGREGATION_MINUTES, DEFAULT_RANGE_HOURS

_DESCRIPTOR_RE = re.compile(r"^(\d+)([smhd])$")

_MINUTES_PER_UNIT = {"s": 1 / 60, "m": 1.0, "h": 60.0, "d": 24 * 60.0}

# (upper bound, aggregation) pairs, evaluated in order
_AGGREGATION_TIERS = (
    (timedelta(hours=1), "1m"),
    (timedelta(hours=6), "5m"),
    (timedelta(hours=24), "15m"),
    (timedelta(days=7), "1h"),
    (timedelta(days=30), "4h"),
)
_LONGEST_AGGREGATION = "12h"


def _descriptor_minutes(descriptor: str | None) -> float | None:
    if not descriptor:
        return None
    match = _DESCRIPTOR_RE.match(descriptor.strip())
    if match is None:
        return None
    return int(match.group(1)) * _MINUTES_PER_UNIT[match.group(2)]


def is_valid_descriptor(descriptor: str) -> bool:
    """Return True if the descriptor looks like ``30s``, ``15m``, ``24h`` or ``7d``."""
    return _descriptor_minutes(descriptor) is not None


def parse_aggregation_minutes(aggregation: str | None) -> float:
    """Return the aggregation window in minutes, 60 if it cannot be parsed."""
    minutes = _descriptor_minutes(aggregation)
    if minutes is None:
        return DEFAULT_AGGREGATION_MINUTES
    return minutes


def parse_range_hours(range_text: str | None) -> float:
    """Return the range length in hours, 1 if it cannot be parsed."""
    minutes = _descriptor_minutes(range_text)
    if minutes is None:
        return DEFAULT_RANGE_HOURS
    return minutes / 60


def aggregation_to_timedelta(aggregation: str | None) -> timedelta:
    return timedelta(minutes=parse_aggregation_minutes(aggregation))


def range_to_timedelta(range_text: str | None) -> timedelta:
    return timedelta(hours=parse_range_hours(range_text))


def calculate_aggregation(elapsed: timedelta) -> str:
    """Pick a default aggregation window for an ad-hoc range of this length."""
    for upper_bound, aggregation in _AGGREGATION_TIERS:
        if elapsed <= upper_bound:
            return aggregation
    return _LONGEST_AGGREGATION
