"""Analyzer protocol and the uniform error-isolation wrapper."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from ..message import Email
from ..types import DetectionMethod, DetectionScore

LOGGER = logging.getLogger(__name__)

ERROR_CONFIDENCE = 0.1


@runtime_checkable
class Analyzer(Protocol):
    """Common interface shared by all evidence analyzers."""

    method: DetectionMethod
    fallback_score: float

    def analyze(self, email: Email) -> DetectionScore:
        """Score a single email; must not depend on other analyzers."""

    def get_weight(self) -> float:
        """Return the analyzer's default fusion weight."""


def run_analyzer(
    method: DetectionMethod,
    analyze: Callable[[Email], DetectionScore],
    email: Email,
    *,
    fallback_score: float = 0.0,
) -> DetectionScore:
    """Invoke an analyzer, converting any failure into a low-confidence score."""

    try:
        result = analyze(email)
    except Exception as exc:
        LOGGER.exception("%s analysis failed for email %s", method.value, email.id)
        return error_score(method, exc, fallback_score=fallback_score)
    if not isinstance(result, DetectionScore) or result.method is not method:
        LOGGER.error("%s analyzer returned an unexpected result: %r", method.value, result)
        return error_score(
            method, TypeError("unexpected analyzer result"), fallback_score=fallback_score
        )
    return result


def error_score(
    method: DetectionMethod, exc: BaseException, *, fallback_score: float = 0.0
) -> DetectionScore:
    label = method.value.replace("_", " ")
    return DetectionScore(
        method=method,
        score=fallback_score,
        confidence=ERROR_CONFIDENCE,
        reason=f"Error during {label} analysis: {exc}",
        metadata={"error": type(exc).__name__},
    )


def clamp_unit(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


__all__ = ["Analyzer", "ERROR_CONFIDENCE", "clamp_unit", "error_score", "run_analyzer"]
