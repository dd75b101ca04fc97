from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from quince.analyzers.feedback import UserFeedbackAnalyzer
from quince.analyzers.registry import AnalyzerRegistry
from quince.analyzers.reputation import SenderReputationAnalyzer
from quince.config import Config, DetectionConfig, LoggingConfig
from quince.confidence import ConfidenceCalculator
from quince.detector import NewsletterDetector, build_detector
from quince.store import DetectionLogger, InMemoryReputationStore
from quince.types import DetectionMethod, DetectionScore, Triage, UserFeedback


class FixedAnalyzer:
    def __init__(self, method, score, confidence):
        self.method = method
        self.fallback_score = 0.0
        self._score = score
        self._confidence = confidence

    def analyze(self, email):
        return DetectionScore(self.method, self._score, self._confidence, "fixed")

    def get_weight(self):
        return 0.0


def _fixed_detector(**kwargs) -> NewsletterDetector:
    registry = AnalyzerRegistry(
        [
            FixedAnalyzer(DetectionMethod.HEADER, 0.9, 0.8),
            FixedAnalyzer(DetectionMethod.CONTENT_STRUCTURE, 0.8, 0.7),
            FixedAnalyzer(DetectionMethod.SENDER_REPUTATION, 0.5, 0.3),
            FixedAnalyzer(DetectionMethod.USER_FEEDBACK, 0.5, 0.1),
        ]
    )
    return NewsletterDetector(registry=registry, calculator=ConfidenceCalculator(), **kwargs)


def test_detect_fuses_scores(make_email):
    detector = _fixed_detector()

    result = detector.detect(make_email("scenario"))

    assert result.email_id == "scenario"
    assert result.combined_score == pytest.approx(0.757, abs=0.001)
    assert result.is_newsletter is True
    assert result.needs_verification is False
    assert detector.needs_verification(result) is False
    assert result.triage is Triage.ACCEPT
    assert [score.method for score in result.scores] == list(DetectionMethod)
    assert detector.feedback_loop is None
    assert detector.metrics.processed == 1
    assert detector.metrics.triage == {"accept": 1}


def test_get_confidence_score_over_subset(make_email):
    detector = _fixed_detector()

    assert detector.get_confidence_score(make_email(), [DetectionMethod.HEADER]) == pytest.approx(0.9)
    assert detector.get_confidence_score(make_email(), []) == 0.5


def test_record_feedback_requires_feedback_components():
    with pytest.raises(RuntimeError):
        _fixed_detector().record_feedback("scenario", True)


def test_detection_logger_receives_results(tmp_path, make_email):
    logger = DetectionLogger(tmp_path / "detections.log")
    detector = _fixed_detector(detection_logger=logger)

    detector.detect(make_email("logged"))

    record = json.loads(logger.path.read_text(encoding="utf-8").strip())
    assert record["email_id"] == "logged"
    assert record["triage"] == "accept"


def _config(tmp_path) -> Config:
    return Config(root_dir=tmp_path / "state")


def test_brand_new_sender_plain_text_is_not_newsletter(tmp_path, make_email):
    detector = build_detector(_config(tmp_path))

    result = detector.detect(make_email(sender="carol@nowhere.example", text="see you at lunch"))

    content = result.score_for(DetectionMethod.CONTENT_STRUCTURE)
    reputation = result.score_for(DetectionMethod.SENDER_REPUTATION)
    feedback = result.score_for(DetectionMethod.USER_FEEDBACK)
    assert content is not None and (content.score, content.confidence) == (0.1, 0.5)
    assert reputation is not None and (reputation.score, reputation.confidence) == (0.5, 0.3)
    assert feedback is not None and (feedback.score, feedback.confidence) == (0.5, 0.1)
    assert result.is_newsletter is False
    assert result.combined_score < 0.5


def test_confirmed_sender_overrides_content(tmp_path, make_email):
    detector = build_detector(_config(tmp_path))
    sender = "Dana <dana@nowhere.example>"
    for index in range(10):
        email = make_email(f"confirmed-{index}", sender=sender, text="hello")
        detector.detect(email)
        assert detector.record_feedback(email.id, True).status == "recorded"

    result = detector.detect(make_email("later", sender=sender, html="<p>short note</p>"))

    content = result.score_for(DetectionMethod.CONTENT_STRUCTURE)
    feedback = result.score_for(DetectionMethod.USER_FEEDBACK)
    assert content is not None and content.score < 0.2
    assert feedback is not None and (feedback.score, feedback.confidence) == (1.0, 1.0)
    assert result.combined_score == 1.0
    assert result.is_newsletter is True
    assert result.needs_verification is False
    assert detector.metrics.overrides == 10


def test_supplied_feedback_snapshot_is_used(tmp_path, make_email):
    detector = build_detector(_config(tmp_path))
    feedback = UserFeedback.from_iterables(rejected_senders=["news@letters.example"])

    result = detector.detect(
        make_email(sender="news@letters.example", headers=[("List-Unsubscribe", "<u>")]),
        user_feedback=feedback,
    )

    assert result.combined_score == 0.0
    assert result.triage is Triage.REJECT


def test_seeded_priors_inform_reputation(tmp_path, make_email):
    detector = build_detector(_config(tmp_path))

    result = detector.detect(make_email(sender="support@github.com", text="ticket update"))

    reputation = result.score_for(DetectionMethod.SENDER_REPUTATION)
    assert reputation is not None
    assert reputation.score == 0.0
    assert reputation.confidence == pytest.approx(0.9)


def test_build_detector_honours_config(tmp_path):
    config = Config(
        root_dir=tmp_path / "state",
        detection=DetectionConfig(low_threshold=0.2, high_threshold=0.8, default_user="alice"),
        logging=LoggingConfig(detections_file=True),
    )

    detector = build_detector(config)

    assert detector.calculator.thresholds.low == 0.2
    assert detector.registry.get(DetectionMethod.HEADER).get_weight() == 0.4
    assert detector.record_feedback("unknown", True).status == "email_not_found"


def test_unknown_email_feedback_is_not_an_error(tmp_path):
    detector = build_detector(_config(tmp_path))

    result = detector.record_feedback("never-seen", False, "alice")

    assert result.status == "email_not_found"
    assert detector.feedback_loop is not None
    assert len(detector.feedback_loop.history("never-seen")) == 1


def test_mixed_case_feedback_snapshot_still_overrides(tmp_path, make_email):
    detector = build_detector(_config(tmp_path))
    feedback = UserFeedback(confirmed_senders=frozenset({"Dana@Nowhere.example"}))

    result = detector.detect(
        make_email(sender="Dana <dana@nowhere.example>", text="lunch?"), user_feedback=feedback
    )

    assert result.combined_score == 1.0
    assert result.is_newsletter is True
    assert result.needs_verification is False


def _ambiguous_detector() -> NewsletterDetector:
    registry = AnalyzerRegistry(
        [
            FixedAnalyzer(DetectionMethod.HEADER, 0.6, 0.9),
            FixedAnalyzer(DetectionMethod.CONTENT_STRUCTURE, 0.5, 0.8),
            SenderReputationAnalyzer(InMemoryReputationStore()),
            UserFeedbackAnalyzer(default_user="alice"),
        ]
    )
    return NewsletterDetector(registry=registry, calculator=ConfidenceCalculator())


def test_ambiguous_detection_waits_for_user_until_feedback(make_email):
    detector = _ambiguous_detector()
    email = make_email("unsure", sender="Pat <pat@ambiguous.example>", text="hello")

    first = detector.detect(email)
    again = detector.detect(email)

    assert 0.35 < first.combined_score < 0.65
    assert first.is_newsletter is True
    assert first.triage is Triage.VERIFY
    assert again.needs_verification is True
    pending = detector.pending_verifications()
    assert [item.email_id for item in pending] == ["unsure"]
    assert pending[0].sender == "pat@ambiguous.example"
    assert pending[0].sender_domain == "ambiguous.example"
    assert detector.pending_verifications("bob") == []

    outcome = detector.record_feedback("unsure", True)

    assert outcome.resolved_verification is True
    assert detector.pending_verifications() == []
    assert detector.feedback_loop is not None
    assert detector.feedback_loop.history("unsure")[0].detection_result is True
    assert detector.detect(email).needs_verification is False
    assert "unsure" not in detector.pending


def test_accuracy_metrics_follow_detector_verdicts(make_email):
    detector = _ambiguous_detector()
    for index in range(3):
        detector.detect(make_email(f"mail-{index}", sender=f"p{index}@ambiguous.example"))

    detector.record_feedback("mail-0", True)
    detector.record_feedback("mail-1", False)
    detector.record_feedback("never-detected", True)

    assert detector.feedback_loop is not None
    metrics = detector.feedback_loop.accuracy_metrics("alice")
    assert (metrics.true_positives, metrics.false_positives) == (1, 1)
    assert metrics.evaluated == 2
    assert metrics.accuracy == pytest.approx(0.5)
    assert metrics.precision == pytest.approx(0.5)
    assert metrics.recall == pytest.approx(1.0)


def test_metrics_survive_concurrent_detection(make_email):
    detector = _fixed_detector()
    emails = [make_email(f"burst-{index}") for index in range(200)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(detector.detect, emails))

    assert detector.metrics.processed == 200
    assert detector.metrics.triage == {"accept": 200}
