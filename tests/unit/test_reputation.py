from __future__ import annotations

import pytest

from quince.analyzers.reputation import SenderReputationAnalyzer
from quince.store import InMemoryReputationStore
from quince.types import DetectionMethod


@pytest.fixture
def analyzer() -> SenderReputationAnalyzer:
    return SenderReputationAnalyzer(InMemoryReputationStore())


@pytest.mark.parametrize(("confirmed", "rejected"), [(1, 0), (3, 1), (2, 5), (0, 4)])
def test_confidence_score_is_observed_ratio(analyzer, confirmed, rejected):
    for _ in range(confirmed):
        analyzer.update_sender_reputation("writer@example.com", True)
    for _ in range(rejected):
        analyzer.update_sender_reputation("writer@example.com", False)

    assert analyzer.get_sender_confidence_score("writer@example.com") == pytest.approx(
        confirmed / (confirmed + rejected)
    )


def _observe_domain(analyzer: SenderReputationAnalyzer, domain: str, yes: int, no: int) -> None:
    for index in range(yes):
        analyzer.update_sender_reputation(f"yes{index}@{domain}", True)
    for index in range(no):
        analyzer.update_sender_reputation(f"no{index}@{domain}", False)


def test_domain_provider_boundaries(analyzer):
    _observe_domain(analyzer, "exact.example", 3, 2)
    _observe_domain(analyzer, "above.example", 4, 1)
    _observe_domain(analyzer, "few.example", 4, 0)

    assert analyzer.is_domain_newsletter_provider("exact.example") is False
    assert analyzer.is_domain_newsletter_provider("above.example") is True
    assert analyzer.is_domain_newsletter_provider("few.example") is False
    assert analyzer.is_domain_newsletter_provider("") is False


def test_allowlist_overrides_observations(analyzer):
    _observe_domain(analyzer, "substack.com", 0, 6)

    assert analyzer.is_domain_newsletter_provider("substack.com") is True
    assert analyzer.is_domain_newsletter_provider("SUBSTACK.COM") is True


def test_extra_known_providers():
    analyzer = SenderReputationAnalyzer(
        InMemoryReputationStore(), known_providers=["Letters.Example"]
    )

    assert analyzer.is_domain_newsletter_provider("letters.example") is True
    assert analyzer.get_sender_confidence_score("anyone@letters.example") == 0.8


def test_sender_provider_uses_majority_then_domain(analyzer):
    analyzer.update_sender_reputation("mixed@example.com", True)
    analyzer.update_sender_reputation("mixed@example.com", True)
    analyzer.update_sender_reputation("mixed@example.com", False)
    analyzer.update_sender_reputation("new@substack.com", False)

    assert analyzer.is_sender_newsletter_provider("mixed@example.com") is True
    assert analyzer.is_sender_newsletter_provider("new@substack.com") is True
    assert analyzer.is_sender_newsletter_provider("unknown@example.org") is False


def test_confidence_score_falls_back_to_domain(analyzer):
    _observe_domain(analyzer, "shop.example", 1, 3)

    assert analyzer.get_sender_confidence_score("fresh@shop.example") == pytest.approx(0.25)
    assert analyzer.get_sender_confidence_score("fresh@nowhere.example") == 0.5
    assert analyzer.get_sender_confidence_score("") == 0.5


def test_update_rejects_invalid_sender(analyzer):
    with pytest.raises(ValueError):
        analyzer.update_sender_reputation("", True)


def test_analyze_without_sender(analyzer, make_email):
    score = analyzer.analyze(make_email(sender=None))

    assert score.method is DetectionMethod.SENDER_REPUTATION
    assert (score.score, score.confidence) == (0.0, 0.1)


def test_analyze_brand_new_sender(analyzer, make_email):
    score = analyzer.analyze(make_email(sender="someone@nowhere.example"))

    assert (score.score, score.confidence) == (0.5, 0.3)


def test_analyze_with_sender_history(analyzer, make_email):
    for _ in range(4):
        analyzer.update_sender_reputation("writer@example.com", True)
    analyzer.update_sender_reputation("writer@example.com", False)

    score = analyzer.analyze(make_email(sender="Writer <writer@example.com>"))

    assert score.score == pytest.approx(0.8)
    assert score.confidence == pytest.approx(0.9)
    assert score.metadata["sender_reputation"] == {"confirmed": 4, "rejected": 1}


def test_analyze_with_single_observation(analyzer, make_email):
    analyzer.update_sender_reputation("once@example.com", True)

    score = analyzer.analyze(make_email(sender="once@example.com"))

    assert (score.score, score.confidence) == (1.0, 0.3)


def test_analyze_known_provider_domain(analyzer, make_email):
    score = analyzer.analyze(make_email(sender="author@substack.com"))

    assert score.score == pytest.approx(0.8)
    assert score.confidence == 0.8
    assert score.metadata["is_domain_newsletter_provider"] is True


def test_analyze_learned_provider_domain_raises_score(analyzer, make_email):
    _observe_domain(analyzer, "letters.example", 4, 1)

    score = analyzer.analyze(make_email(sender="new@letters.example"))

    assert score.score == pytest.approx(0.8)
    assert score.confidence == 0.8


def test_analyze_with_domain_history(analyzer, make_email):
    _observe_domain(analyzer, "shop.example", 1, 3)

    score = analyzer.analyze(make_email(sender="fresh@shop.example"))

    assert score.score == pytest.approx(0.25)
    assert score.confidence == pytest.approx(0.6)


def test_analyze_with_thin_domain_history(analyzer, make_email):
    _observe_domain(analyzer, "thin.example", 1, 1)

    score = analyzer.analyze(make_email(sender="fresh@thin.example"))

    assert (score.score, score.confidence) == (0.5, 0.3)


def test_store_failure_is_isolated(make_email):
    class BrokenStore(InMemoryReputationStore):
        def get_sender(self, sender):
            raise RuntimeError("store offline")

    score = SenderReputationAnalyzer(BrokenStore()).analyze(make_email())

    assert (score.score, score.confidence) == (0.0, 0.1)
    assert "store offline" in score.reason
