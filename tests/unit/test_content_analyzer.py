from __future__ import annotations

from quince.analyzers.content import ContentStructureAnalyzer
from quince.message import Email, EmailPayload
from quince.types import DetectionMethod

NEWSLETTER_HTML = """
<html><head><style>@media only screen and (max-width: 600px) { .column { width: 100%; } }</style></head>
<body>
<table width="600" cellpadding="0" cellspacing="0" align="center" class="container">
  <tr><td><div class="header"><img src="logo.png" class="logo" alt="logo"></div></td></tr>
</table>
<table width="600" cellpadding="0" cellspacing="0" align="center">
  <tr><td>
    <h1>This week in gardening</h1>
    <div class="section article"><h2>Tomatoes</h2><p>Everything about tomatoes.</p>
      <a class="button" href="https://example.com/1">Read more</a></div>
    <div class="section article"><h2>Roses</h2><p>Pruning roses the right way.</p>
      <a class="button" href="https://example.com/2">Learn more</a></div>
    <div class="content"><img src="hero.jpg" width="600"></div>
  </td></tr>
</table>
<table width="600" align="center"><tr><td><div class="footer">
  You are receiving this because you subscribed.
  <a href="https://example.com/unsubscribe">Unsubscribe</a> | Privacy Policy
</div></td></tr></table>
<table width="600" align="center"><tr><td>&copy; 2024 Garden Letters</td></tr></table>
</body></html>
"""
PADDED_NEWSLETTER = NEWSLETTER_HTML + ("<!-- spacer -->" * 80)


def test_templated_newsletter_scores_high(make_email):
    score = ContentStructureAnalyzer().analyze(make_email(html=PADDED_NEWSLETTER))

    assert score.method is DetectionMethod.CONTENT_STRUCTURE
    assert score.score > 0.7
    assert score.confidence == 0.8
    assert "article" in score.metadata["repeated_classes"]


def test_short_personal_html_scores_low(make_email):
    score = ContentStructureAnalyzer().analyze(make_email(html="<p>Hi Bob, lunch?</p>"))

    assert score.score == 0.0
    assert score.confidence == 0.6


def test_no_html_is_weak_evidence(make_email):
    score = ContentStructureAnalyzer().analyze(make_email(text="plain text only"))

    assert (score.score, score.confidence) == (0.1, 0.5)
    assert "No HTML content" in score.reason


def test_missing_payload_degrades_to_error_score():
    score = ContentStructureAnalyzer().analyze(Email(id="bare"))

    assert (score.score, score.confidence) == (0.0, 0.1)
    assert score.reason.startswith("Error during content structure analysis")


def test_undecodable_body_degrades_to_error_score():
    payload = EmailPayload(mime_type="text/html", body_data="!!!!")

    score = ContentStructureAnalyzer().analyze(Email(id="broken", payload=payload))

    assert (score.score, score.confidence) == (0.0, 0.1)


def test_component_scores_are_bounded():
    analyzer = ContentStructureAnalyzer()

    for method in (analyzer.identify_newsletter_layout, analyzer.recognize_templated_sections):
        value = method(PADDED_NEWSLETTER)
        assert 0.0 <= value <= 1.0
    assert analyzer.detect_structural_elements(PADDED_NEWSLETTER) == 1.0
    assert analyzer.detect_structural_elements("<p>hello</p>") == 0.0
