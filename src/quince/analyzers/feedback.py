"""Explicit user decisions as detection evidence."""

from __future__ import annotations

import logging

from ..config import DEFAULT_USER
from ..extractor.domain import domain_from_address
from ..message import Email, sender_address
from ..senders import FeedbackStore
from ..types import DetectionMethod, DetectionScore, UserFeedback
from .base import ERROR_CONFIDENCE, run_analyzer

LOGGER = logging.getLogger(__name__)

DEFAULT_WEIGHT = 0.1
NEUTRAL_SCORE = 0.5


class UserFeedbackAnalyzer:
    """Maps confirmed/rejected senders and trusted/blocked domains to a score.

    Sender decisions are terminal: they carry ``metadata["terminal"]`` so the
    detector can let them override the fused score.
    """

    method = DetectionMethod.USER_FEEDBACK
    fallback_score = NEUTRAL_SCORE

    def __init__(
        self,
        feedback_store: FeedbackStore | None = None,
        *,
        default_user: str = DEFAULT_USER,
        weight: float = DEFAULT_WEIGHT,
    ) -> None:
        self._feedback_store = feedback_store or FeedbackStore()
        self._default_user = default_user
        self._weight = weight

    @property
    def feedback_store(self) -> FeedbackStore:
        return self._feedback_store

    @property
    def default_user(self) -> str:
        return self._default_user

    def get_weight(self) -> float:
        return self._weight

    def get_user_feedback(self, user_id: str) -> UserFeedback:
        return self._feedback_store.snapshot(user_id)

    def analyze(self, email: Email) -> DetectionScore:
        """Score against the default user's stored decisions."""

        feedback = self.get_user_feedback(self._default_user)
        return self.apply_feedback(feedback, email)

    def apply_feedback(self, feedback: UserFeedback, email: Email) -> DetectionScore:
        return run_analyzer(
            self.method,
            lambda message: self._score(feedback, message),
            email,
            fallback_score=self.fallback_score,
        )

    def _score(self, feedback: UserFeedback, email: Email) -> DetectionScore:
        if email.payload is None or not email.payload.headers:
            return self._neutral("No header data available.")
        sender = sender_address(email)
        if not sender:
            return self._neutral("No sender information found.")
        domain = domain_from_address(sender)

        if sender in feedback.confirmed_senders:
            return DetectionScore(
                method=self.method,
                score=1.0,
                confidence=1.0,
                reason="Sender was previously confirmed as a newsletter.",
                metadata={"sender": sender, "decision": "confirmed_sender", "terminal": True},
            )
        if sender in feedback.rejected_senders:
            return DetectionScore(
                method=self.method,
                score=0.0,
                confidence=1.0,
                reason="Sender was previously rejected as a newsletter.",
                metadata={"sender": sender, "decision": "rejected_sender", "terminal": True},
            )
        if domain and domain in feedback.trusted_domains:
            return DetectionScore(
                method=self.method,
                score=0.9,
                confidence=0.9,
                reason=f"Domain {domain} is trusted for newsletters.",
                metadata={"domain": domain, "decision": "trusted_domain"},
            )
        if domain and domain in feedback.blocked_domains:
            return DetectionScore(
                method=self.method,
                score=0.1,
                confidence=0.9,
                reason=f"Domain {domain} is blocked for newsletters.",
                metadata={"domain": domain, "decision": "blocked_domain"},
            )
        return self._neutral("No user feedback for this sender or domain.")

    def _neutral(self, reason: str) -> DetectionScore:
        return DetectionScore(
            method=self.method,
            score=NEUTRAL_SCORE,
            confidence=ERROR_CONFIDENCE,
            reason=reason,
        )


__all__ = ["UserFeedbackAnalyzer"]
