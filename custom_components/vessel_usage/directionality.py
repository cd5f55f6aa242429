"""Directionality rules for splitting signed power into consumed and generated."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from .const import (
    DIRECTIONALITIES,
    DIRECTIONALITY_BIDIRECTIONAL_NORMAL,
    DIRECTIONALITY_BIDIRECTIONAL_REVERSED,
    DIRECTIONALITY_CONSUMER,
    DIRECTIONALITY_PRODUCER,
    NOISE_LOG_THRESHOLD_WH,
)
from .models import EnergyTotals

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectionalityRule:
    """Match a path containing any of ``includes`` and none of ``excludes``."""

    directionality: str
    includes: tuple[str, ...]
    excludes: tuple[str, ...] = ()

    def matches(self, path: str) -> bool:
        path_lower = path.lower()
        if any(token in path_lower for token in self.excludes):
            return False
        return any(token in path_lower for token in self.includes)


# Evaluated top to bottom, first match wins.
DIRECTIONALITY_RULES: tuple[DirectionalityRule, ...] = (
    DirectionalityRule(DIRECTIONALITY_PRODUCER, ("solar", "panel", "alternator")),
    DirectionalityRule(DIRECTIONALITY_CONSUMER, ("acin", "shore")),
    DirectionalityRule(
        DIRECTIONALITY_BIDIRECTIONAL_REVERSED, ("battery",), excludes=("acout",)
    ),
)
FALLBACK_DIRECTIONALITY = DIRECTIONALITY_BIDIRECTIONAL_NORMAL


def auto_detect_directionality(
    path: str,
    rules: tuple[DirectionalityRule, ...] = DIRECTIONALITY_RULES,
) -> str:
    """Infer the directionality of a power path from its name."""
    for rule in rules:
        if rule.matches(path):
            return rule.directionality
    return FALLBACK_DIRECTIONALITY


def resolve_directionality(path: str, directionality: str | None) -> str:
    """Return the explicit directionality if recognized, otherwise auto-detect it."""
    if directionality in DIRECTIONALITIES:
        return directionality
    if directionality:
        _LOGGER.warning(
            "Unknown directionality %r for %s, using auto-detection",
            directionality,
            path,
        )
    return auto_detect_directionality(path)


@dataclass(frozen=True)
class DirectionalityResult:
    consumed_wh: float
    generated_wh: float
    applied_directionality: str

    def as_energy(self) -> EnergyTotals:
        return EnergyTotals(
            consumed_wh=self.consumed_wh, generated_wh=self.generated_wh
        )


def apply_directionality(
    directionality: str | None,
    positive_wh: float,
    negative_wh: float,
    path: str = "",
) -> DirectionalityResult:
    """Map the positive and negative energy buckets onto consumed/generated.

    An unrecognized directionality falls back to auto-detection on ``path``.
    """
    if directionality == DIRECTIONALITY_PRODUCER:
        if negative_wh > NOISE_LOG_THRESHOLD_WH:
            _LOGGER.debug(
                "Filtered out %.2f Wh negative energy (noise) for %s",
                negative_wh,
                path,
            )
        return DirectionalityResult(0.0, positive_wh, directionality)

    if directionality == DIRECTIONALITY_CONSUMER:
        if negative_wh > NOISE_LOG_THRESHOLD_WH:
            _LOGGER.debug(
                "Filtered out %.2f Wh negative energy (noise) for %s",
                negative_wh,
                path,
            )
        return DirectionalityResult(positive_wh, 0.0, directionality)

    if directionality == DIRECTIONALITY_BIDIRECTIONAL_NORMAL:
        return DirectionalityResult(negative_wh, positive_wh, directionality)

    if directionality == DIRECTIONALITY_BIDIRECTIONAL_REVERSED:
        return DirectionalityResult(positive_wh, negative_wh, directionality)

    detected = auto_detect_directionality(path)
    _LOGGER.warning(
        "Unknown directionality %r for %s, using auto-detected %s",
        directionality,
        path,
        detected,
    )
    return apply_directionality(detected, positive_wh, negative_wh, path)
