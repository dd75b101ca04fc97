"""Email address and HTML structure extraction utilities."""

from .domain import display_name, domain_from_address, local_part, normalize_address
from .html import HtmlStructure, analyse_structure

__all__ = [
    "HtmlStructure",
    "analyse_structure",
    "display_name",
    "domain_from_address",
    "local_part",
    "normalize_address",
]
