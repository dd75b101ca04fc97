"""HTML layout and templating heuristics."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from ..extractor.html import HtmlStructure, analyse_structure
from ..message import Email, find_html
from ..types import DetectionMethod, DetectionScore
from .base import clamp_unit, run_analyzer

LOGGER = logging.getLogger(__name__)

DEFAULT_WEIGHT = 0.3
LONG_CONTENT_CHARS = 1000


def _compile(patterns: Sequence[str]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE | re.DOTALL) for pattern in patterns)


HEADER_PATTERNS = _compile(
    (
        r"<header",
        r"<div[^>]*header",
        r"<div[^>]*masthead",
        r"<img[^>]*logo",
        r"<div[^>]*logo",
        r"<table[^>]*header",
        r"<table[^>]*masthead",
        r"<div[^>]*banner",
        r"<div[^>]*emailHeader",
    )
)
FOOTER_PATTERNS = _compile(
    (
        r"<footer",
        r"<div[^>]*footer",
        r"unsubscribe",
        r"opt-out",
        r"opt out",
        r"email preferences",
        r"manage your (?:email|subscription)",
        r"view (?:in|as) (?:browser|web)",
        r"<div[^>]*emailFooter",
        r"privacy policy",
        r"copyright \d{4}",
        r"&copy;|©",
        r"sent to",
        r"you(?:'re| are) receiving this",
    )
)
LAYOUT_PATTERNS = _compile(
    (
        r"<table[^>]*width=[\"'](?:600|650|700|750|800)",
        r"<div[^>]*width=[\"'](?:600|650|700|750|800)",
        r"<table[^>]*cellpadding",
        r"<table[^>]*cellspacing",
        r"<table[^>]*align=[\"']center",
        r"<div[^>]*align=[\"']center",
        r"<div[^>]*class=[\"'][^\"']*\bcolumn",
        r"media query",
        r"@media",
        r"<div[^>]*class=[\"'][^\"']*\bcontainer",
        r"<table[^>]*container",
    )
)
SECTION_PATTERNS = _compile(
    (
        r"<h1[^>]*>",
        r"<h2[^>]*>",
        r"<div[^>]*section",
        r"<div[^>]*article",
        r"<table[^>]*article",
        r"<div[^>]*story",
        r"<div[^>]*post",
        r"<div[^>]*content",
        r"<div[^>]*block",
        r"<div[^>]*card",
        r"<table[^>]*card",
        r"<div[^>]*feature",
    )
)
CTA_PATTERNS = _compile(
    (
        r"<a[^>]*class=[\"'][^\"']*\bbutton",
        r"<a[^>]*style=[\"'][^\"']*background-color",
        r"<a[^>]*style=[\"'][^\"']*background:",
        r"<a[^>]*class=[\"'][^\"']*\bcta",
        r"<a[^>]*class=[\"'][^\"']*\bbtn",
        r"<div[^>]*class=[\"'][^\"']*\bbutton",
        r"<div[^>]*class=[\"'][^\"']*\bcta",
        r"read more",
        r"learn more",
        r"find out more",
        r"click here",
        r"shop now",
        r"sign up",
        r"join now",
        r"register",
        r"download",
    )
)
IMAGE_PATTERNS = _compile(
    (
        r"<img[^>]*width=[\"']?(?:100%|[4-9][0-9][0-9])",
        r"<img[^>]*style=[\"'][^\"']*max-width",
        r"<img[^>]*class=[\"'][^\"']*\bbanner",
        r"<img[^>]*class=[\"'][^\"']*\bhero",
        r"<div[^>]*class=[\"'][^\"']*\bbanner",
        r"<div[^>]*class=[\"'][^\"']*\bhero",
        r"<div[^>]*class=[\"'][^\"']*\bheader-image",
        r"<table[^>]*background=",
    )
)
FIXED_WIDTH_RE = re.compile(r"width=[\"'](?:600|650|700|750|800)", re.IGNORECASE)
OPT_OUT_RE = re.compile(r"unsubscribe|opt-out|opt out", re.IGNORECASE)


class ContentStructureAnalyzer:
    """Scores how much an HTML body looks like a templated newsletter."""

    method = DetectionMethod.CONTENT_STRUCTURE
    fallback_score = 0.0

    def __init__(self, weight: float = DEFAULT_WEIGHT) -> None:
        self._weight = weight

    def get_weight(self) -> float:
        return self._weight

    def analyze(self, email: Email) -> DetectionScore:
        return run_analyzer(self.method, self._score, email, fallback_score=self.fallback_score)

    def _score(self, email: Email) -> DetectionScore:
        html = find_html(email)
        if not html.strip():
            return DetectionScore(
                method=self.method,
                score=0.1,
                confidence=0.5,
                reason="No HTML content found in email.",
            )

        structure = analyse_structure(html)
        layout = self.identify_newsletter_layout(html, structure)
        elements = self.detect_structural_elements(html)
        sections = self.recognize_templated_sections(html, structure)
        total = clamp_unit(layout * 0.4 + elements * 0.4 + sections * 0.2)

        reasons: list[str] = []
        if layout > 0.5:
            reasons.append("Detected newsletter-like layout.")
        if elements > 0.5:
            reasons.append("Found newsletter structural elements.")
        if sections > 0.5:
            reasons.append("Identified templated content sections.")
        reason = " ".join(reasons) or "No strong newsletter content structure detected."
        LOGGER.debug(
            "Content structure for %s: layout=%.2f elements=%.2f sections=%.2f",
            email.id,
            layout,
            elements,
            sections,
        )

        return DetectionScore(
            method=self.method,
            score=total,
            confidence=0.8 if structure.length >= LONG_CONTENT_CHARS else 0.6,
            reason=reason,
            metadata={
                "layout_score": layout,
                "element_score": elements,
                "section_score": sections,
                "content_length": structure.length,
                "repeated_classes": list(structure.repeated_classes),
            },
        )

    def identify_newsletter_layout(
        self, content: str, structure: HtmlStructure | None = None
    ) -> float:
        structure = structure or analyse_structure(content)
        ratio = _count_matches(content, LAYOUT_PATTERNS) / len(LAYOUT_PATTERNS)
        if structure.table_count > 3:
            return min(0.2 + ratio, 1.0)
        lowered = content.lower()
        if "@media" in lowered or "media query" in lowered:
            return min(0.3 + ratio, 1.0)
        if FIXED_WIDTH_RE.search(content):
            return min(0.2 + ratio, 1.0)
        return min(ratio, 1.0)

    def detect_structural_elements(self, content: str) -> float:
        score = 0.0
        if _count_matches(content, HEADER_PATTERNS):
            score += 0.25
        if _count_matches(content, FOOTER_PATTERNS):
            score += 0.25
        score += min(_count_matches(content, CTA_PATTERNS) / 3, 0.25)
        score += min(_count_matches(content, IMAGE_PATTERNS) / 3, 0.25)
        if OPT_OUT_RE.search(content):
            score += 0.2
        return min(score, 1.0)

    def recognize_templated_sections(
        self, content: str, structure: HtmlStructure | None = None
    ) -> float:
        structure = structure or analyse_structure(content)
        score = min(_count_matches(content, SECTION_PATTERNS) / 5, 0.8)
        if structure.repeated_classes:
            score += 0.2
        return min(score, 1.0)


def _count_matches(content: str, patterns: Sequence[re.Pattern[str]]) -> int:
    """Number of distinct patterns found at least once."""

    return sum(1 for pattern in patterns if pattern.search(content))


__all__ = ["ContentStructureAnalyzer"]
