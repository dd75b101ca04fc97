"""Per-user confirmed/rejected sender sets and trusted/blocked domains."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .config import ConfigError
from .extractor.domain import domain_from_address, normalize_address
from .store import KeyedLocks
from .types import UserFeedback

LOGGER = logging.getLogger(__name__)

DOMAIN_PROMOTION_THRESHOLD = 3


@dataclass(frozen=True)
class FeedbackChange:
    """What a single feedback event changed for one user."""

    sender: str
    domain: str | None
    changed: bool
    promoted_domain: str | None = None


class FeedbackStore:
    """Manages explicit newsletter decisions for each user."""

    def __init__(self, *, promotion_threshold: int = DOMAIN_PROMOTION_THRESHOLD) -> None:
        if promotion_threshold < 1:
            raise ValueError("promotion_threshold must be positive")
        self._promotion_threshold = promotion_threshold
        self._users: dict[str, _UserSets] = {}
        self._locks = KeyedLocks()

    def apply(self, user_id: str, address: str, is_newsletter: bool) -> FeedbackChange | None:
        """Record a confirm/reject decision, moving the sender between sets.

        Once the user has confirmed (rejected) enough senders of one domain the
        domain is promoted to the trusted (blocked) set and leaves the other one.
        """

        sender = normalize_address(address)
        if not sender:
            return None
        domain = domain_from_address(sender)
        with self._locks.hold(user_id):
            sets = self._users.setdefault(user_id, _UserSets())
            if is_newsletter:
                target, opposite = sets.confirmed, sets.rejected
                promoted, demoted = sets.trusted, sets.blocked
            else:
                target, opposite = sets.rejected, sets.confirmed
                promoted, demoted = sets.blocked, sets.trusted
            changed = sender not in target or sender in opposite
            opposite.discard(sender)
            target.add(sender)

            promoted_domain = None
            if domain and domain not in promoted:
                same_domain = sum(1 for s in target if domain_from_address(s) == domain)
                if same_domain >= self._promotion_threshold:
                    demoted.discard(domain)
                    promoted.add(domain)
                    promoted_domain = domain
        if promoted_domain:
            LOGGER.info(
                "Domain %s %s for user %s",
                promoted_domain,
                "trusted" if is_newsletter else "blocked",
                user_id,
            )
        return FeedbackChange(
            sender=sender,
            domain=domain,
            changed=changed or promoted_domain is not None,
            promoted_domain=promoted_domain,
        )

    def set_feedback(
        self,
        user_id: str,
        *,
        confirmed_senders: Iterable[str] = (),
        rejected_senders: Iterable[str] = (),
        trusted_domains: Iterable[str] = (),
        blocked_domains: Iterable[str] = (),
    ) -> None:
        """Replace a user's stored decisions; rejections and blocks win over conflicts."""

        snapshot = UserFeedback.from_iterables(
            confirmed_senders=confirmed_senders,
            rejected_senders=rejected_senders,
            trusted_domains=trusted_domains,
            blocked_domains=blocked_domains,
        )
        with self._locks.hold(user_id):
            self._users[user_id] = _UserSets(
                confirmed=set(snapshot.confirmed_senders - snapshot.rejected_senders),
                rejected=set(snapshot.rejected_senders),
                trusted=set(snapshot.trusted_domains - snapshot.blocked_domains),
                blocked=set(snapshot.blocked_domains),
            )

    def snapshot(self, user_id: str) -> UserFeedback:
        """Return a frozen copy of the user's decisions (empty when unknown)."""

        with self._locks.hold(user_id):
            sets = self._users.get(user_id)
            if sets is None:
                return UserFeedback.empty()
            return UserFeedback(
                confirmed_senders=frozenset(sets.confirmed),
                rejected_senders=frozenset(sets.rejected),
                trusted_domains=frozenset(sets.trusted),
                blocked_domains=frozenset(sets.blocked),
            )

    def users(self) -> list[str]:
        return sorted(self._users)


def load_feedback_file(path: Path) -> UserFeedback:
    """Read a YAML snapshot of confirmed/rejected senders and trusted/blocked domains."""

    feedback_path = Path(path).expanduser()
    if not feedback_path.is_file():
        raise ConfigError(f"Feedback file not found: {feedback_path}")
    with feedback_path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {feedback_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("Feedback file root must be a mapping.")
    return UserFeedback.from_iterables(
        confirmed_senders=_string_list(raw, "confirmed_senders"),
        rejected_senders=_string_list(raw, "rejected_senders"),
        trusted_domains=_string_list(raw, "trusted_domains"),
        blocked_domains=_string_list(raw, "blocked_domains"),
    )


def _string_list(raw: dict[str, Any], key: str) -> list[str]:
    value = raw.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"Feedback field '{key}' must be a list of strings.")
    return value


class _UserSets:
    __slots__ = ("confirmed", "rejected", "trusted", "blocked")

    def __init__(
        self,
        *,
        confirmed: set[str] | None = None,
        rejected: set[str] | None = None,
        trusted: set[str] | None = None,
        blocked: set[str] | None = None,
    ) -> None:
        self.confirmed = confirmed or set()
        self.rejected = rejected or set()
        self.trusted = trusted or set()
        self.blocked = blocked or set()


__all__ = [
    "DOMAIN_PROMOTION_THRESHOLD",
    "FeedbackChange",
    "FeedbackStore",
    "load_feedback_file",
]
