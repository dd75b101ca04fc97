"""Reputation state, recently seen emails, and the detection audit log."""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from .extractor.domain import domain_from_address
from .message import Email, header_value, sender_address
from .types import DetectionResult, DomainReputation, SenderReputation

LOGGER = logging.getLogger(__name__)

DEFAULT_PRIOR_COUNT = 10
KNOWN_NEWSLETTER_SENDERS: tuple[str, ...] = (
    "newsletter@github.com",
    "hello@convertkit.com",
    "info@substack.com",
    "newsletter@medium.com",
    "newsletter@theverge.com",
    "info@mailchimp.com",
    "newsletter@beehiiv.com",
    "no-reply@techcrunch.com",
    "mailer@notion.so",
    "newsletter@cnn.com",
    "newsletter@nytimes.com",
    "newsletter@wired.com",
    "hello@producthunt.com",
)
KNOWN_NON_NEWSLETTER_SENDERS: tuple[str, ...] = (
    "support@github.com",
    "no-reply@accounts.google.com",
    "notifications@slack.com",
    "notifications@github.com",
    "team@zoom.us",
    "no-reply@dropboxmail.com",
    "notifications@twitter.com",
)


class KeyedLocks:
    """Lazily created locks, one per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Acquire the locks for all keys in sorted order."""

        locks = [self._lock_for(key) for key in sorted(set(keys))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


@runtime_checkable
class ReputationStore(Protocol):
    """Per-sender and per-domain counters with atomic per-key updates."""

    def get_sender(self, sender: str) -> SenderReputation | None:
        """Return the sender record, if one exists."""

    def get_domain(self, domain: str) -> DomainReputation | None:
        """Return the domain record, if one exists."""

    def record(
        self, sender: str, domain: str | None, is_newsletter: bool
    ) -> tuple[SenderReputation, DomainReputation | None]:
        """Increment one counter for the sender and its domain together."""

    def seed(self, sender: str, domain: str | None, *, confirmed: int, rejected: int) -> None:
        """Add prior counts for a sender and its domain."""


class InMemoryReputationStore:
    """Dictionary-backed reputation store guarded by per-key locks."""

    def __init__(self) -> None:
        self._senders: dict[str, SenderReputation] = {}
        self._domains: dict[str, DomainReputation] = {}
        self._locks = KeyedLocks()

    def get_sender(self, sender: str) -> SenderReputation | None:
        return self._senders.get(sender.lower())

    def get_domain(self, domain: str) -> DomainReputation | None:
        return self._domains.get(domain.lower())

    def record(
        self, sender: str, domain: str | None, is_newsletter: bool
    ) -> tuple[SenderReputation, DomainReputation | None]:
        sender_key = sender.lower()
        domain_key = domain.lower() if domain else None
        now = datetime.now(timezone.utc)
        with self._locks.hold(*_lock_keys(sender_key, domain_key)):
            current = self._senders.get(sender_key) or SenderReputation(identity=sender_key)
            updated_sender = current.record(is_newsletter, now)
            updated_domain: DomainReputation | None = None
            if domain_key:
                existing = self._domains.get(domain_key) or DomainReputation(identity=domain_key)
                updated_domain = existing.record(is_newsletter, now)
            # Both records are published under the same locks.
            self._senders[sender_key] = updated_sender
            if updated_domain is not None:
                self._domains[domain_key] = updated_domain
        return updated_sender, updated_domain

    def seed(self, sender: str, domain: str | None, *, confirmed: int, rejected: int) -> None:
        if confirmed < 0 or rejected < 0:
            raise ValueError("prior counts cannot be negative")
        sender_key = sender.lower()
        domain_key = domain.lower() if domain else None
        now = datetime.now(timezone.utc)
        with self._locks.hold(*_lock_keys(sender_key, domain_key)):
            current = self._senders.get(sender_key) or SenderReputation(identity=sender_key)
            self._senders[sender_key] = SenderReputation(
                identity=sender_key,
                confirmed_count=current.confirmed_count + confirmed,
                rejected_count=current.rejected_count + rejected,
                last_updated=now,
            )
            if domain_key:
                existing = self._domains.get(domain_key) or DomainReputation(identity=domain_key)
                self._domains[domain_key] = DomainReputation(
                    identity=domain_key,
                    confirmed_count=existing.confirmed_count + confirmed,
                    rejected_count=existing.rejected_count + rejected,
                    last_updated=now,
                )

    def __len__(self) -> int:
        return len(self._senders)


def seed_default_reputation(
    store: ReputationStore,
    *,
    newsletter_senders: Iterable[str] = KNOWN_NEWSLETTER_SENDERS,
    non_newsletter_senders: Iterable[str] = KNOWN_NON_NEWSLETTER_SENDERS,
    prior_count: int = DEFAULT_PRIOR_COUNT,
) -> None:
    """Seed strong priors for well-known newsletter and transactional senders."""

    seeded = 0
    for sender in newsletter_senders:
        store.seed(sender, domain_from_address(sender), confirmed=prior_count, rejected=0)
        seeded += 1
    for sender in non_newsletter_senders:
        store.seed(sender, domain_from_address(sender), confirmed=0, rejected=prior_count)
        seeded += 1
    LOGGER.debug("Seeded reputation priors for %d sender(s)", seeded)


class RecentEmails:
    """Bounded cache of emails seen by the detector and their latest results."""

    def __init__(self, max_size: int = 1000) -> None:
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._emails: OrderedDict[str, Email] = OrderedDict()
        self._results: dict[str, DetectionResult] = {}
        self._lock = threading.Lock()

    def add(self, email: Email) -> None:
        with self._lock:
            self._emails[email.id] = email
            self._emails.move_to_end(email.id)
            while len(self._emails) > self._max_size:
                evicted, _ = self._emails.popitem(last=False)
                self._results.pop(evicted, None)

    def record_result(self, result: DetectionResult) -> None:
        """Attach a detection result to a cached email; unknown ids are ignored."""

        if result.email_id is None:
            return
        with self._lock:
            if result.email_id in self._emails:
                self._results[result.email_id] = result

    def get(self, email_id: str) -> Email | None:
        with self._lock:
            return self._emails.get(email_id)

    __call__ = get

    def result(self, email_id: str) -> DetectionResult | None:
        with self._lock:
            return self._results.get(email_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._emails)


@dataclass(frozen=True)
class PendingVerification:
    """An ambiguous detection waiting for a human decision."""

    email_id: str
    user_id: str
    combined_score: float
    sender: str | None = None
    sender_domain: str | None = None
    subject: str | None = None
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PendingVerifications:
    """Verification requests keyed by email id, at most one per email."""

    def __init__(self) -> None:
        self._requests: dict[str, PendingVerification] = {}
        self._lock = threading.Lock()

    def request(self, email: Email, result: DetectionResult, user_id: str) -> PendingVerification:
        """Open a request for an email, returning the existing one if already pending."""

        with self._lock:
            existing = self._requests.get(email.id)
            if existing is not None:
                return existing
            sender = sender_address(email)
            pending = PendingVerification(
                email_id=email.id,
                user_id=user_id,
                combined_score=result.combined_score,
                sender=sender,
                sender_domain=domain_from_address(sender) if sender else None,
                subject=header_value(email.payload, "Subject"),
            )
            self._requests[email.id] = pending
        LOGGER.info("Verification requested for %s (%.3f)", email.id, result.combined_score)
        return pending

    def resolve(self, email_id: str) -> PendingVerification | None:
        with self._lock:
            return self._requests.pop(email_id, None)

    def get(self, email_id: str) -> PendingVerification | None:
        with self._lock:
            return self._requests.get(email_id)

    def for_user(self, user_id: str) -> list[PendingVerification]:
        with self._lock:
            return [item for item in self._requests.values() if item.user_id == user_id]

    def __contains__(self, email_id: object) -> bool:
        with self._lock:
            return email_id in self._requests

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)


@dataclass(frozen=True)
class DetectionRecord:
    """JSON serialisable representation of a detection event."""

    timestamp: datetime
    email_id: str | None
    combined_score: float
    is_newsletter: bool
    needs_verification: bool
    triage: str
    scores: dict[str, dict[str, float]]

    @classmethod
    def from_result(
        cls, result: DetectionResult, *, timestamp: datetime | None = None
    ) -> DetectionRecord:
        return cls(
            timestamp=timestamp or datetime.now(timezone.utc),
            email_id=result.email_id,
            combined_score=float(result.combined_score),
            is_newsletter=result.is_newsletter,
            needs_verification=result.needs_verification,
            triage=result.triage.value,
            scores={
                score.method.value: {"score": score.score, "confidence": score.confidence}
                for score in result.scores
            },
        )

    def to_json(self) -> str:
        payload = {
            "timestamp": self.timestamp.isoformat(),
            "email_id": self.email_id,
            "combined_score": self.combined_score,
            "is_newsletter": self.is_newsletter,
            "needs_verification": self.needs_verification,
            "triage": self.triage,
            "scores": self.scores,
        }
        return json.dumps(payload, separators=(",", ":"))


class DetectionLogger:
    """JSON-lines detection log with coarse rotation."""

    def __init__(self, path: Path, *, max_bytes: int = 5_000_000, backups: int = 3) -> None:
        self._path = path
        self._max_bytes = max_bytes
        self._backups = backups
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def log(self, result: DetectionResult) -> None:
        self.append(DetectionRecord.from_result(result))

    def append(self, record: DetectionRecord) -> None:
        encoded = record.to_json() + "\n"
        data_size = len(encoded.encode("utf-8"))
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if self._should_rotate(data_size):
                self._rotate()
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(encoded)

    def _should_rotate(self, incoming: int) -> bool:
        try:
            current_size = self._path.stat().st_size
        except OSError:
            return False
        return current_size + incoming > self._max_bytes

    def _rotate(self) -> None:
        self._backup_path(self._backups).unlink(missing_ok=True)
        for index in range(self._backups, 0, -1):
            source = self._path if index == 1 else self._backup_path(index - 1)
            if source.exists():
                source.replace(self._backup_path(index))

    def _backup_path(self, index: int) -> Path:
        return self._path.with_name(f"{self._path.name}.{index}")


def _lock_keys(sender_key: str, domain_key: str | None) -> list[str]:
    keys = [f"sender:{sender_key}"]
    if domain_key:
        keys.append(f"domain:{domain_key}")
    return keys


__all__ = [
    "DetectionLogger",
    "DetectionRecord",
    "InMemoryReputationStore",
    "KeyedLocks",
    "PendingVerification",
    "PendingVerifications",
    "RecentEmails",
    "ReputationStore",
    "seed_default_reputation",
]
