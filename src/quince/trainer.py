"""Feedback loop turning user decisions into reputation and preference updates."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from .analyzers.reputation import SenderReputationAnalyzer
from .message import Email, sender_address
from .senders import FeedbackStore
from .store import PendingVerifications
from .types import DetectionResult, FeedbackInput

LOGGER = logging.getLogger(__name__)

EmailLookup = Callable[[str], Email | None]
ResultLookup = Callable[[str], DetectionResult | None]


@dataclass(frozen=True)
class FeedbackResult:
    """Represents the outcome of handling one feedback event."""

    status: str
    email_id: str
    sender: str | None = None
    domain: str | None = None
    promoted_domain: str | None = None
    reason: str | None = None
    resolved_verification: bool = False


@dataclass(frozen=True)
class AccuracyMetrics:
    """Detector verdicts compared with a user's confirm/reject decisions."""

    true_positives: int = 0
    false_positives: int = 0
    true_negatives: int = 0
    false_negatives: int = 0

    @property
    def evaluated(self) -> int:
        return (
            self.true_positives
            + self.false_positives
            + self.true_negatives
            + self.false_negatives
        )

    @property
    def accuracy(self) -> float:
        return (self.true_positives + self.true_negatives) / max(1, self.evaluated)

    @property
    def precision(self) -> float:
        return self.true_positives / max(1, self.true_positives + self.false_positives)

    @property
    def recall(self) -> float:
        return self.true_positives / max(1, self.true_positives + self.false_negatives)

    @property
    def f1_score(self) -> float:
        precision, recall = self.precision, self.recall
        return 2 * precision * recall / max(0.001, precision + recall)


class FeedbackLoop:
    """Write path: updates the user's decisions and the reputation store."""

    def __init__(
        self,
        *,
        feedback_store: FeedbackStore,
        reputation: SenderReputationAnalyzer,
        email_lookup: EmailLookup | None = None,
        result_lookup: ResultLookup | None = None,
        pending: PendingVerifications | None = None,
    ) -> None:
        self._feedback_store = feedback_store
        self._reputation = reputation
        self._email_lookup = email_lookup
        self._result_lookup = result_lookup
        self._pending = pending
        self._history: dict[str, list[FeedbackInput]] = {}
        self._history_lock = threading.Lock()

    def track_feedback(
        self, feedback_input: FeedbackInput, email: Email | None = None
    ) -> FeedbackResult:
        """Record a confirm/reject event for an email.

        The raw event, stamped with the detector's verdict when one is known,
        is always kept in the history and answers any pending verification.
        Stores are only touched when the email can be resolved and carries a
        sender.
        """

        event = feedback_input
        if event.timestamp is None:
            event = replace(event, timestamp=datetime.now(timezone.utc))
        if event.detection_result is None:
            detected = self._detected(event.email_id)
            if detected is not None:
                event = replace(event, detection_result=detected.is_newsletter)
        with self._history_lock:
            self._history.setdefault(event.email_id, []).append(event)
        resolved_verification = (
            self._pending is not None and self._pending.resolve(event.email_id) is not None
        )

        resolved = email if email is not None else self._lookup(event.email_id)
        if resolved is None:
            LOGGER.warning("Feedback for unknown email %s; stores left unchanged", event.email_id)
            return FeedbackResult(
                status="email_not_found",
                email_id=event.email_id,
                reason="email_not_available",
                resolved_verification=resolved_verification,
            )

        sender = sender_address(resolved)
        if not sender:
            LOGGER.warning("Email %s has no sender; feedback not applied", event.email_id)
            return FeedbackResult(
                status="no_sender",
                email_id=event.email_id,
                reason="sender_missing",
                resolved_verification=resolved_verification,
            )

        change = self._feedback_store.apply(event.user_id, sender, event.is_newsletter)
        self._reputation.update_sender_reputation(sender, event.is_newsletter)
        LOGGER.info(
            "Recorded %s feedback from %s for %s (%s)",
            "newsletter" if event.is_newsletter else "not-newsletter",
            event.user_id,
            sender,
            event.source.value,
        )
        return FeedbackResult(
            status="recorded",
            email_id=event.email_id,
            sender=sender,
            domain=change.domain if change else None,
            promoted_domain=change.promoted_domain if change else None,
            resolved_verification=resolved_verification,
        )

    def history(self, email_id: str) -> list[FeedbackInput]:
        with self._history_lock:
            return list(self._history.get(email_id, ()))

    def accuracy_metrics(self, user_id: str) -> AccuracyMetrics:
        """Confusion counts over the user's events that carry a detector verdict."""

        with self._history_lock:
            events = [
                event
                for events in self._history.values()
                for event in events
                if event.user_id == user_id and event.detection_result is not None
            ]
        tp = sum(1 for e in events if e.detection_result and e.is_newsletter)
        fp = sum(1 for e in events if e.detection_result and not e.is_newsletter)
        tn = sum(1 for e in events if not e.detection_result and not e.is_newsletter)
        fn = sum(1 for e in events if not e.detection_result and e.is_newsletter)
        metrics = AccuracyMetrics(
            true_positives=tp, false_positives=fp, true_negatives=tn, false_negatives=fn
        )
        LOGGER.debug(
            "Accuracy for %s over %d event(s): accuracy=%.2f precision=%.2f recall=%.2f",
            user_id,
            metrics.evaluated,
            metrics.accuracy,
            metrics.precision,
            metrics.recall,
        )
        return metrics

    def _lookup(self, email_id: str) -> Email | None:
        if self._email_lookup is None:
            return None
        return self._email_lookup(email_id)

    def _detected(self, email_id: str) -> DetectionResult | None:
        if self._result_lookup is None:
            return None
        return self._result_lookup(email_id)


__all__ = ["AccuracyMetrics", "EmailLookup", "FeedbackLoop", "FeedbackResult", "ResultLookup"]
