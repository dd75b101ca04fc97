"""Confidence-weighted fusion of analyzer scores and three-way triage."""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .config import (
    DEFAULT_HIGH_THRESHOLD,
    DEFAULT_LOW_THRESHOLD,
    DEFAULT_WEIGHTS,
    ConfigError,
)
from .types import DetectionMethod, DetectionScore

LOGGER = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5
UNKNOWN_METHOD_WEIGHT = 0.25


@dataclass(frozen=True)
class MethodWeights:
    """Immutable per-method weight table; updates return a new table."""

    values: Mapping[DetectionMethod, float] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_WEIGHTS))
    )

    def __post_init__(self) -> None:
        checked = {}
        for method, weight in self.values.items():
            checked[DetectionMethod(method)] = _validate_weight(method, weight)
        object.__setattr__(self, "values", MappingProxyType(checked))

    def get(self, method: DetectionMethod) -> float:
        return self.values.get(method, UNKNOWN_METHOD_WEIGHT)

    def with_weight(self, method: DetectionMethod, weight: float) -> MethodWeights:
        """Return a copy with ``method`` set, rescaled when the total exceeds 1."""

        weight = _validate_weight(method, weight)
        updated = dict(self.values)
        updated[method] = weight
        total = sum(updated.values())
        if total > 1.0:
            updated = {name: value / total for name, value in updated.items()}
        return MethodWeights(updated)

    def as_dict(self) -> dict[DetectionMethod, float]:
        return dict(self.values)


@dataclass(frozen=True)
class VerificationThresholds:
    """Bounds of the ambiguous band that needs a human decision."""

    low: float = DEFAULT_LOW_THRESHOLD
    high: float = DEFAULT_HIGH_THRESHOLD

    def __post_init__(self) -> None:
        for name, value in (("low", self.low), ("high", self.high)):
            if not _is_number(value) or not 0.0 <= value <= 1.0:
                raise ConfigError(f"Threshold '{name}' must be within [0, 1], got {value!r}.")
        if self.low >= self.high:
            raise ConfigError(
                f"Low threshold ({self.low}) must be lower than high threshold ({self.high})."
            )

    def contains(self, combined: float) -> bool:
        return self.low < combined < self.high


class ConfidenceCalculator:
    """Fuses detection scores with weights modulated by each score's confidence.

    The weight table and thresholds are immutable values swapped atomically,
    so readers never observe a partially applied update.
    """

    def __init__(
        self,
        weights: MethodWeights | Mapping[DetectionMethod, float] | None = None,
        thresholds: VerificationThresholds | None = None,
    ) -> None:
        if weights is None:
            weights = MethodWeights()
        elif not isinstance(weights, MethodWeights):
            weights = MethodWeights(weights)
        self._weights = weights
        self._thresholds = thresholds or VerificationThresholds()
        self._lock = threading.Lock()

    @property
    def weights(self) -> MethodWeights:
        return self._weights

    @property
    def thresholds(self) -> VerificationThresholds:
        return self._thresholds

    def calculate_confidence(self, scores: Iterable[DetectionScore]) -> float:
        weights = self._weights
        weighted_sum = 0.0
        total_weight = 0.0
        for score in scores:
            effective = weights.get(score.method) * score.confidence
            weighted_sum += score.score * effective
            total_weight += effective
        if total_weight <= 0.0:
            return NEUTRAL_SCORE
        return weighted_sum / total_weight

    def needs_verification(self, combined: float) -> bool:
        return self._thresholds.contains(combined)

    def get_method_weight(self, method: DetectionMethod) -> float:
        return self._weights.get(method)

    def set_method_weight(self, method: DetectionMethod, weight: float) -> None:
        with self._lock:
            self._weights = self._weights.with_weight(method, weight)
        LOGGER.info("Weight for %s set to %.3f", method.value, self._weights.get(method))

    def set_verification_thresholds(self, low: float, high: float) -> None:
        thresholds = VerificationThresholds(low=low, high=high)
        with self._lock:
            self._thresholds = thresholds
        LOGGER.info("Verification thresholds set to (%.2f, %.2f)", low, high)


def _validate_weight(method: object, weight: object) -> float:
    if not _is_number(weight) or not 0.0 <= float(weight) <= 1.0:
        label = getattr(method, "value", method)
        raise ConfigError(f"Weight for '{label}' must be within [0, 1], got {weight!r}.")
    return float(weight)


def _is_number(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


__all__ = [
    "ConfidenceCalculator",
    "MethodWeights",
    "NEUTRAL_SCORE",
    "UNKNOWN_METHOD_WEIGHT",
    "VerificationThresholds",
]
