"""Sender and domain reputation tracking."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..extractor.domain import domain_from_address, normalize_address
from ..message import Email, sender_address
from ..store import ReputationStore
from ..types import DetectionMethod, DetectionScore, DomainReputation, SenderReputation
from .base import ERROR_CONFIDENCE, clamp_unit, run_analyzer

LOGGER = logging.getLogger(__name__)

DEFAULT_WEIGHT = 0.2
UNINFORMATIVE_SCORE = 0.5
KNOWN_PROVIDER_RATIO = 0.8
PROVIDER_MIN_OBSERVATIONS = 5
PROVIDER_MIN_RATIO = 0.6
SENDER_MIN_OBSERVATIONS = 3

KNOWN_NEWSLETTER_DOMAINS: frozenset[str] = frozenset(
    {
        "mailchimp.com",
        "sendgrid.net",
        "constantcontact.com",
        "campaignmonitor.com",
        "mailgun.org",
        "aweber.com",
        "getresponse.com",
        "activecampaign.com",
        "hubspot.com",
        "convertkit.com",
        "klaviyo.com",
        "marketo.com",
        "salesforce.com",
        "pardot.com",
        "sendpulse.com",
        "sendinblue.com",
        "omnisend.com",
        "drip.com",
        "zapier.com",
        "moosend.com",
        "benchmark.email",
        "substack.com",
        "beehiiv.com",
        "revue.email",
        "tinyletter.com",
        "memberful.com",
        "patreon.com",
        "medium.com",
    }
)


class SenderReputationAnalyzer:
    """Scores an email by the confirmed/rejected history of its sender and domain."""

    method = DetectionMethod.SENDER_REPUTATION
    fallback_score = 0.0

    def __init__(
        self,
        store: ReputationStore,
        *,
        known_providers: Iterable[str] = (),
        weight: float = DEFAULT_WEIGHT,
    ) -> None:
        self._store = store
        self._known_providers = KNOWN_NEWSLETTER_DOMAINS | {
            domain.strip().lower() for domain in known_providers if domain.strip()
        }
        self._weight = weight

    @property
    def store(self) -> ReputationStore:
        return self._store

    def get_weight(self) -> float:
        return self._weight

    def analyze(self, email: Email) -> DetectionScore:
        return run_analyzer(self.method, self._score, email, fallback_score=self.fallback_score)

    def _score(self, email: Email) -> DetectionScore:
        sender = sender_address(email)
        if not sender:
            return DetectionScore(
                method=self.method,
                score=0.0,
                confidence=ERROR_CONFIDENCE,
                reason="No sender information found.",
            )

        domain = domain_from_address(sender) or ""
        sender_record = self._store.get_sender(sender)
        domain_record = self._store.get_domain(domain) if domain else None
        score = self.get_sender_confidence_score(sender)
        is_provider = self.is_domain_newsletter_provider(domain)

        if sender_record is not None:
            total = sender_record.total
            if total > 1:
                confidence = min(0.5 + total / 10, 0.9)
                reason = f"Sender reputation based on {total} previous emails."
            else:
                confidence = 0.3
                reason = "Limited sender history available."
        elif is_provider:
            score = max(score, 0.7)
            confidence = 0.8
            reason = f"Sender domain {domain} is a known newsletter provider."
        elif domain_record is not None and domain_record.total > 2:
            confidence = min(0.4 + domain_record.total / 20, 0.8)
            reason = f"Domain reputation based on {domain_record.total} previous emails."
        elif domain_record is not None:
            confidence = 0.3
            reason = "Limited domain history available."
        else:
            confidence = 0.3
            reason = "No reputation data available for this sender."

        return DetectionScore(
            method=self.method,
            score=clamp_unit(score),
            confidence=confidence,
            reason=reason,
            metadata={
                "sender": sender,
                "domain": domain,
                "is_domain_newsletter_provider": is_provider,
                "sender_reputation": _counts(sender_record),
                "domain_reputation": _counts(domain_record),
            },
        )

    def is_sender_newsletter_provider(self, sender: str) -> bool:
        """Majority vote once the sender has enough history, else the domain decision."""

        normalized = normalize_address(sender) or ""
        record = self._store.get_sender(normalized) if normalized else None
        if record is not None and record.total >= SENDER_MIN_OBSERVATIONS:
            return record.confirmed_count > record.rejected_count
        return self.is_domain_newsletter_provider(domain_from_address(normalized) or "")

    def get_sender_confidence_score(self, sender: str) -> float:
        """Observed newsletter ratio for the sender, falling back to its domain."""

        normalized = normalize_address(sender) or ""
        record = self._store.get_sender(normalized) if normalized else None
        if record is not None and record.ratio is not None:
            return record.ratio

        domain = domain_from_address(normalized) or ""
        if domain in self._known_providers:
            return KNOWN_PROVIDER_RATIO
        domain_record = self._store.get_domain(domain) if domain else None
        if domain_record is not None and domain_record.ratio is not None:
            return domain_record.ratio
        return UNINFORMATIVE_SCORE

    def update_sender_reputation(self, sender: str, is_newsletter: bool) -> None:
        """Increment the sender's and its domain's counters in one store call."""

        normalized = normalize_address(sender)
        if not normalized:
            raise ValueError(f"Cannot update reputation for invalid sender {sender!r}")
        domain = domain_from_address(normalized)
        updated_sender, updated_domain = self._store.record(normalized, domain, is_newsletter)
        LOGGER.debug(
            "Updated reputation for %s (%d/%d) and domain %s",
            normalized,
            updated_sender.confirmed_count,
            updated_sender.total,
            updated_domain.identity if updated_domain else None,
        )

    def is_domain_newsletter_provider(self, domain: str) -> bool:
        normalized = domain.strip().lower()
        if not normalized:
            return False
        if normalized in self._known_providers:
            return True
        record = self._store.get_domain(normalized)
        if record is None or record.total < PROVIDER_MIN_OBSERVATIONS:
            return False
        return record.confirmed_count / record.total > PROVIDER_MIN_RATIO


def _counts(record: SenderReputation | DomainReputation | None) -> dict[str, int] | None:
    if record is None:
        return None
    return {"confirmed": record.confirmed_count, "rejected": record.rejected_count}


__all__ = ["KNOWN_NEWSLETTER_DOMAINS", "SenderReputationAnalyzer"]
