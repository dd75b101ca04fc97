"""Core immutable data structures used throughout Quince."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any


class DetectionMethod(str, Enum):
    """Evidence sources feeding the detection ensemble."""

    HEADER = "header"
    CONTENT_STRUCTURE = "content_structure"
    SENDER_REPUTATION = "sender_reputation"
    USER_FEEDBACK = "user_feedback"


class Triage(str, Enum):
    """Three-way outcome derived from the combined score."""

    ACCEPT = "accept"
    REJECT = "reject"
    VERIFY = "verify"


class FeedbackSource(str, Enum):
    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True)
class DetectionScore:
    """One analyzer's estimate plus its self-reported confidence."""

    method: DetectionMethod
    score: float
    confidence: float
    reason: str
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"score must be within [0, 1], got {self.score!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence!r}")

    @property
    def is_terminal(self) -> bool:
        """True for explicit per-sender user decisions."""

        return bool(self.metadata.get("terminal", False))


@dataclass(frozen=True)
class DetectionResult:
    """Fused outcome of a single detection run."""

    scores: tuple[DetectionScore, ...]
    combined_score: float
    is_newsletter: bool
    needs_verification: bool
    email_id: str | None = None

    @property
    def triage(self) -> Triage:
        if self.needs_verification:
            return Triage.VERIFY
        return Triage.ACCEPT if self.is_newsletter else Triage.REJECT

    def score_for(self, method: DetectionMethod) -> DetectionScore | None:
        for score in self.scores:
            if score.method is method:
                return score
        return None


@dataclass(frozen=True)
class UserFeedback:
    """Explicit per-user newsletter decisions; entries are stored lowercased."""

    confirmed_senders: frozenset[str] = frozenset()
    rejected_senders: frozenset[str] = frozenset()
    trusted_domains: frozenset[str] = frozenset()
    blocked_domains: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        for name in ("confirmed_senders", "rejected_senders", "trusted_domains", "blocked_domains"):
            object.__setattr__(self, name, _lowered(getattr(self, name)))

    @classmethod
    def empty(cls) -> UserFeedback:
        return cls()

    @classmethod
    def from_iterables(
        cls,
        *,
        confirmed_senders: Iterable[str] = (),
        rejected_senders: Iterable[str] = (),
        trusted_domains: Iterable[str] = (),
        blocked_domains: Iterable[str] = (),
    ) -> UserFeedback:
        return cls(
            confirmed_senders=frozenset(confirmed_senders),
            rejected_senders=frozenset(rejected_senders),
            trusted_domains=frozenset(trusted_domains),
            blocked_domains=frozenset(blocked_domains),
        )


@dataclass(frozen=True)
class FeedbackInput:
    """Raw confirm/reject event submitted for an email."""

    email_id: str
    is_newsletter: bool
    user_id: str
    source: FeedbackSource = FeedbackSource.USER
    timestamp: datetime | None = None
    # What the detector said about the email when the feedback arrived.
    detection_result: bool | None = None


@dataclass(frozen=True)
class SenderReputation:
    """Running confirmed/rejected counters for one sender or domain."""

    identity: str
    confirmed_count: int = 0
    rejected_count: int = 0
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total(self) -> int:
        return self.confirmed_count + self.rejected_count

    @property
    def ratio(self) -> float | None:
        if self.total == 0:
            return None
        return self.confirmed_count / self.total

    def record(self, is_newsletter: bool, when: datetime | None = None):
        """Return a copy with exactly one counter incremented."""

        timestamp = when or datetime.now(timezone.utc)
        if is_newsletter:
            return replace(self, confirmed_count=self.confirmed_count + 1, last_updated=timestamp)
        return replace(self, rejected_count=self.rejected_count + 1, last_updated=timestamp)


@dataclass(frozen=True)
class DomainReputation(SenderReputation):
    """Domain-level counters, aggregated independently of sender records."""


def _lowered(values: Iterable[str]) -> frozenset[str]:
    return frozenset(value.strip().lower() for value in values if value and value.strip())


__all__ = [
    "DetectionMethod",
    "DetectionResult",
    "DetectionScore",
    "DomainReputation",
    "FeedbackInput",
    "FeedbackSource",
    "SenderReputation",
    "Triage",
    "UserFeedback",
]
