"""Independent evidence analyzers."""

from .base import Analyzer, run_analyzer
from .content import ContentStructureAnalyzer
from .feedback import UserFeedbackAnalyzer
from .header import HeaderAnalyzer
from .registry import AnalyzerRegistry
from .reputation import KNOWN_NEWSLETTER_DOMAINS, SenderReputationAnalyzer

__all__ = [
    "Analyzer",
    "AnalyzerRegistry",
    "ContentStructureAnalyzer",
    "HeaderAnalyzer",
    "KNOWN_NEWSLETTER_DOMAINS",
    "SenderReputationAnalyzer",
    "UserFeedbackAnalyzer",
    "run_analyzer",
]
