"""Header and sender-pattern heuristics."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from ..extractor.domain import display_name, domain_from_address, local_part
from ..message import Email, header_map
from ..types import DetectionMethod, DetectionScore
from .base import clamp_unit, run_analyzer

LOGGER = logging.getLogger(__name__)

DEFAULT_WEIGHT = 0.4
HEADER_CONFIDENCE = 0.9
NO_HEADERS_CONFIDENCE = 0.1

# Header name fragments left by bulk mailing platforms.
PLATFORM_HEADER_MARKERS: tuple[str, ...] = (
    "x-campaign",
    "x-mailchimp",
    "x-mc",
    "x-cid",
    "x-mailer",
    "x-newsletter",
    "x-cm-campid",
    "x-sendgrid",
    "x-ses",
    "x-postmark",
    "x-customer",
    "x-ib",
    "x-maropost",
    "x-constantcontact",
    "x-aweber",
    "x-getresponse",
    "x-cm",
    "x-feedback-id",
    "x-report-abuse",
    "x-drip",
)

NEWSLETTER_LOCAL_PARTS: tuple[str, ...] = (
    "newsletter",
    "news",
    "updates",
    "noreply",
    "no-reply",
    "donotreply",
    "do-not-reply",
    "digest",
    "weekly",
    "daily",
    "monthly",
    "notifications",
    "info",
    "hello",
    "support",
    "team",
    "broadcast",
    "campaign",
)

BULK_SENDER_DOMAINS: tuple[str, ...] = (
    "sendgrid.net",
    "mailchimp.com",
    "amazonaws.com",
    "constantcontact.com",
    "cmail19.com",
    "cmail20.com",
    "aweber.com",
    "getresponse.com",
    "mailerlite.com",
    "infusionmail.com",
    "drip.com",
    "maropost.com",
    "activecampaign.com",
    "hubspotmail.net",
    "convertkit.com",
    "klaviyomail.com",
    "sendpulse.com",
    "omnisend.com",
    "sendinblue.com",
    "mailgun.org",
)

NEWSLETTER_NAME_WORDS: tuple[str, ...] = (
    "newsletter",
    "weekly",
    "daily",
    "monthly",
    "digest",
    "update",
    "bulletin",
    "news",
    "roundup",
    "recap",
)


class HeaderAnalyzer:
    """Pure pattern match over a single email's headers."""

    method = DetectionMethod.HEADER
    fallback_score = 0.0

    def __init__(self, weight: float = DEFAULT_WEIGHT) -> None:
        self._weight = weight

    def get_weight(self) -> float:
        return self._weight

    def analyze(self, email: Email) -> DetectionScore:
        return run_analyzer(self.method, self._score, email, fallback_score=self.fallback_score)

    def _score(self, email: Email) -> DetectionScore:
        headers = header_map(email.payload)
        if not headers:
            return DetectionScore(
                method=self.method,
                score=0.0,
                confidence=NO_HEADERS_CONFIDENCE,
                reason="No header data available.",
            )

        unsubscribe = self.check_list_unsubscribe(headers)
        platform = self.check_newsletter_headers(headers)
        sender = headers.get("from", "")
        sender_pattern = self.analyze_sender_pattern(sender)
        total = clamp_unit(unsubscribe * 0.5 + platform * 0.3 + sender_pattern * 0.2)

        reasons: list[str] = []
        if unsubscribe > 0:
            reasons.append("Found List-Unsubscribe header.")
        if platform > 0:
            reasons.append("Detected newsletter-specific headers.")
        if sender_pattern > 0:
            reasons.append("Identified newsletter sender pattern.")
        reason = " ".join(reasons) or "No newsletter header indicators found."
        LOGGER.debug("Header score for %s: %.2f", email.id, total)

        return DetectionScore(
            method=self.method,
            score=total,
            confidence=HEADER_CONFIDENCE,
            reason=reason,
            metadata={
                "list_unsubscribe_score": unsubscribe,
                "newsletter_headers_score": platform,
                "sender_pattern_score": sender_pattern,
                "from": sender,
                "has_list_unsubscribe": unsubscribe > 0,
            },
        )

    def check_list_unsubscribe(self, headers: Mapping[str, str]) -> float:
        return 1.0 if any(name.lower() == "list-unsubscribe" for name in headers) else 0.0

    def check_newsletter_headers(self, headers: Mapping[str, str]) -> float:
        """Score mailing-platform header markers; multipart/alternative is a weak hint."""

        names = [name.lower() for name in headers]
        found = [marker for marker in PLATFORM_HEADER_MARKERS if any(marker in n for n in names)]
        if found:
            return min(len(found) / 3, 1.0)
        content_type = next(
            (value for name, value in headers.items() if name.lower() == "content-type"), ""
        )
        if "multipart/alternative" in content_type.lower():
            return 0.3
        return 0.0

    def analyze_sender_pattern(self, sender: str) -> float:
        if not sender:
            return 0.0
        local = local_part(sender)
        if local and any(local.endswith(prefix) for prefix in NEWSLETTER_LOCAL_PARTS):
            return 0.8
        domain = domain_from_address(sender) or ""
        if domain and any(_within(domain, esp) for esp in BULK_SENDER_DOMAINS):
            return 0.7
        name = display_name(sender)
        if name and any(word in name for word in NEWSLETTER_NAME_WORDS):
            return 0.6
        return 0.0


def _within(domain: str, parent: str) -> bool:
    return domain == parent or domain.endswith(f".{parent}")


__all__ = ["HeaderAnalyzer"]
