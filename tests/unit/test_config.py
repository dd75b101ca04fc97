from __future__ import annotations

from pathlib import Path

import pytest

from quince.config import DEFAULT_WEIGHTS, Config, ConfigError, load_config
from quince.types import DetectionMethod


def _write(tmp_path: Path, contents: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(contents, encoding="utf-8")
    return path


def test_missing_default_config_falls_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("QUINCE_CONFIG", raising=False)

    config = load_config()

    assert config == Config()
    assert dict(config.detection.weights) == dict(DEFAULT_WEIGHTS)


def test_explicit_missing_config_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml")


def test_env_config_path_is_used(tmp_path, monkeypatch):
    path = _write(tmp_path, "detection:\n  default_user: alice\n")
    monkeypatch.setenv("QUINCE_CONFIG", str(path))

    assert load_config().detection.default_user == "alice"


def test_full_config_is_parsed(tmp_path):
    path = _write(
        tmp_path,
        "\n".join(
            [
                f"root_dir: {tmp_path / 'state'}",
                "detection:",
                "  weights: {header: 0.5, user_feedback: 0.2}",
                "  thresholds: {low: 0.3, high: 0.7}",
                "  default_user: alice",
                "  max_workers: 2",
                "reputation:",
                "  seed_defaults: false",
                "  known_providers: [Letters.Example]",
                "logging:",
                "  level: DEBUG",
                "  debug_file: true",
                "  detections_file: true",
                "",
            ]
        ),
    )

    config = load_config(path)

    assert config.root_dir == tmp_path / "state"
    assert config.detection.weights[DetectionMethod.HEADER] == 0.5
    assert config.detection.weights[DetectionMethod.USER_FEEDBACK] == 0.2
    assert config.detection.weights[DetectionMethod.CONTENT_STRUCTURE] == 0.3
    assert (config.detection.low_threshold, config.detection.high_threshold) == (0.3, 0.7)
    assert config.detection.max_workers == 2
    assert config.reputation.seed_defaults is False
    assert config.reputation.known_providers == ("letters.example",)
    assert config.logging.level == "debug"
    assert config.logging.debug_file is True
    assert config.logging.detections_file is True


@pytest.mark.parametrize(
    "contents",
    [
        "detection:\n  thresholds: {low: 0.7, high: 0.3}\n",
        "detection:\n  thresholds: {low: 0.5, high: 0.5}\n",
        "detection:\n  weights: {header: 1.5}\n",
        "detection:\n  weights: {header: yes}\n",
        "detection:\n  weights: {telepathy: 0.1}\n",
        "detection:\n  max_workers: 0\n",
        "reputation:\n  known_providers: example.com\n",
        "logging: verbose\n",
        "- just\n- a list\n",
        "detection: [unclosed\n",
    ],
)
def test_invalid_config_values_raise(tmp_path, contents):
    path = _write(tmp_path, contents)

    with pytest.raises(ConfigError):
        load_config(path)
