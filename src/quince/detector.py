"""Detection ensemble tying analyzers, fusion, and the feedback loop together."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from .analyzers import (
    AnalyzerRegistry,
    ContentStructureAnalyzer,
    HeaderAnalyzer,
    SenderReputationAnalyzer,
    UserFeedbackAnalyzer,
)
from .config import Config
from .confidence import ConfidenceCalculator, MethodWeights, VerificationThresholds
from .logging import detections_log_path
from .message import Email
from .senders import FeedbackStore
from .store import (
    DetectionLogger,
    InMemoryReputationStore,
    PendingVerification,
    PendingVerifications,
    RecentEmails,
    ReputationStore,
    seed_default_reputation,
)
from .trainer import FeedbackLoop, FeedbackResult
from .types import (
    DetectionMethod,
    DetectionResult,
    DetectionScore,
    FeedbackInput,
    FeedbackSource,
    Triage,
    UserFeedback,
)

LOGGER = logging.getLogger(__name__)

NEWSLETTER_THRESHOLD = 0.5
STRONG_FEEDBACK_CONFIDENCE = 0.9


@dataclass
class DetectionMetrics:
    """Lightweight counters for triage outcomes, safe to update from many threads."""

    processed: int = 0
    overrides: int = 0
    triage: dict[str, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, triage: Triage, *, overridden: bool = False) -> None:
        with self._lock:
            self.processed += 1
            if overridden:
                self.overrides += 1
            self.triage[triage.value] = self.triage.get(triage.value, 0) + 1


class NewsletterDetector:
    """Runs every registered analyzer on an email and fuses the results."""

    def __init__(
        self,
        *,
        registry: AnalyzerRegistry,
        calculator: ConfidenceCalculator | None = None,
        feedback_loop: FeedbackLoop | None = None,
        recent_emails: RecentEmails | None = None,
        pending_verifications: PendingVerifications | None = None,
        detection_logger: DetectionLogger | None = None,
        default_user: str | None = None,
        max_workers: int = 4,
    ) -> None:
        self._registry = registry
        self._calculator = calculator or ConfidenceCalculator()
        self._recent = recent_emails if recent_emails is not None else RecentEmails()
        self._pending = (
            pending_verifications if pending_verifications is not None else PendingVerifications()
        )
        self._detection_logger = detection_logger
        self._max_workers = max_workers
        feedback_analyzer = self._feedback_analyzer()
        self._default_user = default_user or (
            feedback_analyzer.default_user if feedback_analyzer else "default_user"
        )
        self._feedback_loop = feedback_loop or self._build_feedback_loop()
        self.metrics = DetectionMetrics()

    @property
    def registry(self) -> AnalyzerRegistry:
        return self._registry

    @property
    def calculator(self) -> ConfidenceCalculator:
        return self._calculator

    @property
    def recent_emails(self) -> RecentEmails:
        return self._recent

    @property
    def pending(self) -> PendingVerifications:
        return self._pending

    @property
    def feedback_loop(self) -> FeedbackLoop | None:
        return self._feedback_loop

    def detect(self, email: Email, user_feedback: UserFeedback | None = None) -> DetectionResult:
        """Score an email with every analyzer and triage the fused result.

        When ``user_feedback`` is given it replaces the stored decisions of the
        default user for this call.
        """

        self._recent.add(email)
        overrides = {}
        feedback_analyzer = self._feedback_analyzer()
        if user_feedback is not None and feedback_analyzer is not None:
            overrides[DetectionMethod.USER_FEEDBACK] = (
                lambda message: feedback_analyzer.apply_feedback(user_feedback, message)
            )

        scores = self._registry.score_all(
            email, overrides=overrides, max_workers=self._max_workers
        )
        result, overridden = self._fuse(email.id, scores)
        self._recent.record_result(result)
        if result.needs_verification:
            self._pending.request(email, result, self._default_user)
        else:
            self._pending.resolve(email.id)

        self.metrics.record(result.triage, overridden=overridden)
        LOGGER.info(
            "Email %s scored %.3f (%s)", email.id, result.combined_score, result.triage.value
        )
        if self._detection_logger is not None:
            try:
                self._detection_logger.log(result)
            except OSError:
                LOGGER.exception("Failed to write detection log for %s", email.id)
        return result

    def get_confidence_score(
        self, email: Email, methods: Iterable[DetectionMethod] | None = None
    ) -> float:
        """Fused score over a subset of methods, without triage or overrides."""

        scores = self._registry.score_all(email, methods=methods, max_workers=self._max_workers)
        return self._calculator.calculate_confidence(scores)

    def needs_verification(self, result: DetectionResult) -> bool:
        return result.needs_verification

    def pending_verifications(self, user_id: str | None = None) -> list[PendingVerification]:
        """Ambiguous detections still awaiting a decision from ``user_id``."""

        return self._pending.for_user(user_id or self._default_user)

    def record_feedback(
        self,
        email_id: str,
        is_newsletter: bool,
        user_id: str | None = None,
        *,
        source: FeedbackSource = FeedbackSource.USER,
        timestamp: datetime | None = None,
    ) -> FeedbackResult:
        if self._feedback_loop is None:
            raise RuntimeError(
                "Feedback requires registered sender reputation and user feedback analyzers."
            )
        return self._feedback_loop.track_feedback(
            FeedbackInput(
                email_id=email_id,
                is_newsletter=is_newsletter,
                user_id=user_id or self._default_user,
                source=source,
                timestamp=timestamp,
            )
        )

    def _fuse(
        self, email_id: str, scores: tuple[DetectionScore, ...]
    ) -> tuple[DetectionResult, bool]:
        combined = self._calculator.calculate_confidence(scores)
        verify = self._calculator.needs_verification(combined)

        terminal = next((score for score in scores if score.is_terminal), None)
        if terminal is not None:
            LOGGER.debug("Explicit sender decision overrides fused score for %s", email_id)
            combined = terminal.score
            verify = False
        elif any(
            score.method is DetectionMethod.USER_FEEDBACK
            and score.confidence > STRONG_FEEDBACK_CONFIDENCE
            for score in scores
        ):
            verify = False

        result = DetectionResult(
            scores=scores,
            combined_score=combined,
            is_newsletter=combined >= NEWSLETTER_THRESHOLD,
            needs_verification=verify,
            email_id=email_id,
        )
        return result, terminal is not None

    def _feedback_analyzer(self) -> UserFeedbackAnalyzer | None:
        if DetectionMethod.USER_FEEDBACK not in self._registry:
            return None
        analyzer = self._registry.get(DetectionMethod.USER_FEEDBACK)
        return analyzer if isinstance(analyzer, UserFeedbackAnalyzer) else None

    def _build_feedback_loop(self) -> FeedbackLoop | None:
        feedback_analyzer = self._feedback_analyzer()
        reputation = (
            self._registry.get(DetectionMethod.SENDER_REPUTATION)
            if DetectionMethod.SENDER_REPUTATION in self._registry
            else None
        )
        if feedback_analyzer is None or not isinstance(reputation, SenderReputationAnalyzer):
            return None
        return FeedbackLoop(
            feedback_store=feedback_analyzer.feedback_store,
            reputation=reputation,
            email_lookup=self._recent,
            result_lookup=self._recent.result,
            pending=self._pending,
        )


def build_detector(
    config: Config | None = None,
    *,
    reputation_store: ReputationStore | None = None,
    feedback_store: FeedbackStore | None = None,
) -> NewsletterDetector:
    """Wire stores, analyzers, and the calculator from configuration."""

    config = config or Config()
    detection = config.detection
    if reputation_store is None:
        reputation_store = InMemoryReputationStore()
        if config.reputation.seed_defaults:
            seed_default_reputation(reputation_store)

    weights = MethodWeights(detection.weights)
    registry = AnalyzerRegistry(
        [
            HeaderAnalyzer(weight=weights.get(DetectionMethod.HEADER)),
            ContentStructureAnalyzer(weight=weights.get(DetectionMethod.CONTENT_STRUCTURE)),
            SenderReputationAnalyzer(
                reputation_store,
                known_providers=config.reputation.known_providers,
                weight=weights.get(DetectionMethod.SENDER_REPUTATION),
            ),
            UserFeedbackAnalyzer(
                feedback_store or FeedbackStore(),
                default_user=detection.default_user,
                weight=weights.get(DetectionMethod.USER_FEEDBACK),
            ),
        ]
    )
    calculator = ConfidenceCalculator(
        weights,
        VerificationThresholds(low=detection.low_threshold, high=detection.high_threshold),
    )
    detection_logger = (
        DetectionLogger(detections_log_path(config.root_dir))
        if config.logging.detections_file
        else None
    )
    return NewsletterDetector(
        registry=registry,
        calculator=calculator,
        detection_logger=detection_logger,
        default_user=detection.default_user,
        max_workers=detection.max_workers,
    )


__all__ = ["DetectionMetrics", "NewsletterDetector", "build_detector"]
