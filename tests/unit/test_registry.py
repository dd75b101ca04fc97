from __future__ import annotations

import threading
import time

import pytest

from quince.analyzers.registry import AnalyzerRegistry
from quince.types import DetectionMethod, DetectionScore


class StubAnalyzer:
    def __init__(self, method, score=0.5, confidence=0.5, delay=0.0, error=None, weight=0.2):
        self.method = method
        self.fallback_score = 0.0
        self._score = score
        self._confidence = confidence
        self._delay = delay
        self._error = error
        self._weight = weight
        self.threads: list[str] = []

    def analyze(self, email):
        self.threads.append(threading.current_thread().name)
        if self._delay:
            time.sleep(self._delay)
        if self._error:
            raise self._error
        return DetectionScore(self.method, self._score, self._confidence, "stub")

    def get_weight(self):
        return self._weight


def test_register_rejects_duplicates():
    registry = AnalyzerRegistry([StubAnalyzer(DetectionMethod.HEADER)])

    with pytest.raises(ValueError):
        registry.register(StubAnalyzer(DetectionMethod.HEADER))


def test_get_unknown_method_raises():
    with pytest.raises(KeyError):
        AnalyzerRegistry().get(DetectionMethod.HEADER)


def test_score_all_preserves_registration_order(make_email):
    slow = StubAnalyzer(DetectionMethod.HEADER, score=0.9, delay=0.05)
    fast = StubAnalyzer(DetectionMethod.CONTENT_STRUCTURE, score=0.1)
    registry = AnalyzerRegistry([slow, fast])

    scores = registry.score_all(make_email(), max_workers=4)

    assert [score.method for score in scores] == [
        DetectionMethod.HEADER,
        DetectionMethod.CONTENT_STRUCTURE,
    ]
    assert slow.threads[0].startswith("quince-analyzer")


def test_failing_analyzer_is_isolated(make_email):
    registry = AnalyzerRegistry(
        [
            StubAnalyzer(DetectionMethod.HEADER, error=RuntimeError("boom")),
            StubAnalyzer(DetectionMethod.SENDER_REPUTATION, score=0.7, confidence=0.8),
        ]
    )

    header, reputation = registry.score_all(make_email())

    assert (header.score, header.confidence) == (0.0, 0.1)
    assert "boom" in header.reason
    assert (reputation.score, reputation.confidence) == (0.7, 0.8)


def test_wrong_result_type_is_rejected(make_email):
    class Confused(StubAnalyzer):
        def analyze(self, email):
            return DetectionScore(DetectionMethod.CONTENT_STRUCTURE, 1.0, 1.0, "wrong method")

    (score,) = AnalyzerRegistry([Confused(DetectionMethod.HEADER)]).score_all(make_email())

    assert score.method is DetectionMethod.HEADER
    assert score.confidence == 0.1


def test_overrides_replace_scoring_callable(make_email):
    registry = AnalyzerRegistry([StubAnalyzer(DetectionMethod.USER_FEEDBACK, score=0.5)])

    (score,) = registry.score_all(
        make_email(),
        overrides={
            DetectionMethod.USER_FEEDBACK: lambda email: DetectionScore(
                DetectionMethod.USER_FEEDBACK, 1.0, 1.0, "override"
            )
        },
    )

    assert score.reason == "override"


def test_method_subset_and_weights(make_email):
    registry = AnalyzerRegistry(
        [
            StubAnalyzer(DetectionMethod.HEADER, weight=0.4),
            StubAnalyzer(DetectionMethod.CONTENT_STRUCTURE, weight=0.3),
        ]
    )

    scores = registry.score_all(
        make_email(), methods=[DetectionMethod.CONTENT_STRUCTURE, DetectionMethod.USER_FEEDBACK]
    )

    assert [score.method for score in scores] == [DetectionMethod.CONTENT_STRUCTURE]
    assert registry.weights() == {
        DetectionMethod.HEADER: 0.4,
        DetectionMethod.CONTENT_STRUCTURE: 0.3,
    }
    assert registry.methods() == [DetectionMethod.HEADER, DetectionMethod.CONTENT_STRUCTURE]
    assert len(registry) == 2
    assert DetectionMethod.USER_FEEDBACK not in registry
    assert registry.score_all(make_email(), methods=[]) == ()
