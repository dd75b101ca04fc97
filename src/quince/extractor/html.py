"""Helpers for analysing the structure of HTML email bodies."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from bs4 import BeautifulSoup

TEMPLATE_TAGS: tuple[str, ...] = ("div", "table")


@dataclass(frozen=True)
class HtmlStructure:
    """Summary of structural HTML features."""

    length: int
    text_content: str
    table_count: int
    repeated_classes: tuple[str, ...]


def analyse_structure(html: str) -> HtmlStructure:
    """Return tag counts and templating hints for an HTML fragment."""

    soup = BeautifulSoup(html, "lxml")
    return HtmlStructure(
        length=len(html),
        text_content=soup.get_text(" ", strip=True),
        table_count=len(soup.find_all("table")),
        repeated_classes=_repeated_classes(soup),
    )


def _repeated_classes(soup: BeautifulSoup) -> tuple[str, ...]:
    counts: Counter[str] = Counter()
    for tag in soup.find_all(list(TEMPLATE_TAGS)):
        classes = tag.get("class")
        if not classes:
            continue
        if isinstance(classes, str):
            classes = classes.split()
        counts.update(name for name in classes if name)
    return tuple(sorted(name for name, count in counts.items() if count > 1))


__all__ = ["HtmlStructure", "analyse_structure"]
