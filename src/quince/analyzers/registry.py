"""Analyzer registry and concurrent fan-out."""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor

from ..message import Email
from ..types import DetectionMethod, DetectionScore
from .base import Analyzer, run_analyzer

LOGGER = logging.getLogger(__name__)

ScoreFn = Callable[[Email], DetectionScore]


class AnalyzerRegistry:
    """Registered analyzers, one per detection method, in registration order."""

    def __init__(self, analyzers: Iterable[Analyzer] = ()) -> None:
        self._entries: OrderedDict[DetectionMethod, Analyzer] = OrderedDict()
        for analyzer in analyzers:
            self.register(analyzer)

    def register(self, analyzer: Analyzer) -> None:
        if analyzer.method in self._entries:
            raise ValueError(f"Analyzer '{analyzer.method.value}' is already registered.")
        self._entries[analyzer.method] = analyzer

    def get(self, method: DetectionMethod) -> Analyzer:
        try:
            return self._entries[method]
        except KeyError as exc:
            raise KeyError(f"Analyzer '{method.value}' is not registered.") from exc

    def entries(self) -> list[tuple[DetectionMethod, Analyzer]]:
        return list(self._entries.items())

    def methods(self) -> list[DetectionMethod]:
        return list(self._entries)

    def weights(self) -> dict[DetectionMethod, float]:
        return {method: analyzer.get_weight() for method, analyzer in self._entries.items()}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, method: object) -> bool:
        return method in self._entries

    def score_all(
        self,
        email: Email,
        *,
        methods: Iterable[DetectionMethod] | None = None,
        overrides: Mapping[DetectionMethod, ScoreFn] | None = None,
        max_workers: int = 4,
    ) -> tuple[DetectionScore, ...]:
        """Run the selected analyzers concurrently and join them in registration order.

        ``overrides`` replaces the scoring callable for individual methods while
        keeping the same error isolation.
        """

        selected = self._select(methods)
        if not selected:
            return ()
        overrides = overrides or {}
        jobs = [
            (method, overrides.get(method, analyzer.analyze), analyzer.fallback_score)
            for method, analyzer in selected
        ]
        if len(jobs) == 1 or max_workers <= 1:
            return tuple(
                run_analyzer(method, fn, email, fallback_score=fallback)
                for method, fn, fallback in jobs
            )
        with ThreadPoolExecutor(
            max_workers=min(max_workers, len(jobs)), thread_name_prefix="quince-analyzer"
        ) as pool:
            futures = [
                pool.submit(run_analyzer, method, fn, email, fallback_score=fallback)
                for method, fn, fallback in jobs
            ]
            return tuple(future.result() for future in futures)

    def _select(
        self, methods: Iterable[DetectionMethod] | None
    ) -> list[tuple[DetectionMethod, Analyzer]]:
        if methods is None:
            return self.entries()
        wanted = set(methods)
        unknown = wanted - set(self._entries)
        if unknown:
            LOGGER.warning(
                "Ignoring unregistered analyzer(s): %s",
                ", ".join(sorted(method.value for method in unknown)),
            )
        return [(method, analyzer) for method, analyzer in self._entries.items() if method in wanted]


__all__ = ["AnalyzerRegistry", "ScoreFn"]
