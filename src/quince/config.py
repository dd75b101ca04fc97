"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .types import DetectionMethod

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/quince/config.yaml")
DEFAULT_ROOT_DIR = Path("~/.local/lib/quince")
DEFAULT_LOG_LEVEL = "info"
DEFAULT_USER = "default_user"
DEFAULT_MAX_WORKERS = 4
DEFAULT_WEIGHTS: Mapping[DetectionMethod, float] = {
    DetectionMethod.HEADER: 0.4,
    DetectionMethod.CONTENT_STRUCTURE: 0.3,
    DetectionMethod.SENDER_REPUTATION: 0.2,
    DetectionMethod.USER_FEEDBACK: 0.1,
}
DEFAULT_LOW_THRESHOLD = 0.35
DEFAULT_HIGH_THRESHOLD = 0.65


class ConfigError(ValueError):
    """Raised when configuration is invalid or missing."""


@dataclass(frozen=True)
class LoggingConfig:
    """Logging-related configuration."""

    level: str = DEFAULT_LOG_LEVEL
    debug_file: bool = False
    detections_file: bool = False


@dataclass(frozen=True)
class DetectionConfig:
    """Fusion weights, triage thresholds and analyzer fan-out settings."""

    weights: Mapping[DetectionMethod, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    low_threshold: float = DEFAULT_LOW_THRESHOLD
    high_threshold: float = DEFAULT_HIGH_THRESHOLD
    default_user: str = DEFAULT_USER
    max_workers: int = DEFAULT_MAX_WORKERS


@dataclass(frozen=True)
class ReputationConfig:
    """Reputation priors."""

    seed_defaults: bool = True
    known_providers: tuple[str, ...] = ()


@dataclass(frozen=True)
class Config:
    """Fully parsed configuration."""

    root_dir: Path = DEFAULT_ROOT_DIR.expanduser()
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    reputation: ReputationConfig = field(default_factory=ReputationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: Path | str | None = None) -> Config:
    """Load and validate configuration from YAML.

    An explicit path or ``$QUINCE_CONFIG`` must exist; the default location
    is optional and falls back to built-in defaults.
    """

    config_path, required = _resolve_config_path(path)
    if not config_path.exists():
        if required:
            raise ConfigError(f"Config file not found: {config_path}")
        LOGGER.debug("No config at %s; using defaults", config_path)
        return Config()

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping.")

    return _parse_config(raw)


def _resolve_config_path(explicit: Path | str | None) -> tuple[Path, bool]:
    if explicit:
        return Path(explicit).expanduser(), True
    env_path = os.environ.get("QUINCE_CONFIG")
    if env_path:
        return Path(env_path).expanduser(), True
    return DEFAULT_CONFIG_PATH.expanduser(), False


def _parse_config(raw: dict[str, Any]) -> Config:
    root_dir = Path(raw.get("rootdir") or raw.get("root_dir") or DEFAULT_ROOT_DIR).expanduser()
    return Config(
        root_dir=root_dir,
        detection=_parse_detection(raw.get("detection")),
        reputation=_parse_reputation(raw.get("reputation")),
        logging=_parse_logging(raw.get("logging")),
    )


def _parse_detection(value: Any) -> DetectionConfig:
    if value is None:
        return DetectionConfig()
    if not isinstance(value, dict):
        raise ConfigError("detection must be a mapping.")

    weights = _parse_weights(value.get("weights"))
    low, high = _parse_thresholds(value.get("thresholds"))
    default_user = str(value.get("default_user") or DEFAULT_USER).strip()
    if not default_user:
        raise ConfigError("detection.default_user cannot be empty.")
    max_workers = value.get("max_workers", DEFAULT_MAX_WORKERS)
    if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
        raise ConfigError("detection.max_workers must be a positive integer.")
    return DetectionConfig(
        weights=weights,
        low_threshold=low,
        high_threshold=high,
        default_user=default_user,
        max_workers=max_workers,
    )


def _parse_weights(value: Any) -> dict[DetectionMethod, float]:
    weights = dict(DEFAULT_WEIGHTS)
    if value is None:
        return weights
    if not isinstance(value, dict):
        raise ConfigError("detection.weights must be a mapping of method to weight.")
    for name, raw_weight in value.items():
        try:
            method = DetectionMethod(str(name).strip().lower())
        except ValueError as exc:
            raise ConfigError(f"Unknown detection method in weights: {name}") from exc
        weight = _parse_unit_float(raw_weight, f"detection.weights.{method.value}")
        weights[method] = weight
    return weights


def _parse_thresholds(value: Any) -> tuple[float, float]:
    if value is None:
        return DEFAULT_LOW_THRESHOLD, DEFAULT_HIGH_THRESHOLD
    if not isinstance(value, dict):
        raise ConfigError("detection.thresholds must be a mapping with 'low' and 'high'.")
    low = _parse_unit_float(value.get("low", DEFAULT_LOW_THRESHOLD), "detection.thresholds.low")
    high = _parse_unit_float(
        value.get("high", DEFAULT_HIGH_THRESHOLD), "detection.thresholds.high"
    )
    if low >= high:
        raise ConfigError("detection.thresholds.low must be less than detection.thresholds.high.")
    return low, high


def _parse_unit_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{field_name} must be a number.")
    number = float(value)
    if not 0.0 <= number <= 1.0:
        raise ConfigError(f"{field_name} must be between 0.0 and 1.0.")
    return number


def _parse_reputation(value: Any) -> ReputationConfig:
    if value is None:
        return ReputationConfig()
    if not isinstance(value, dict):
        raise ConfigError("reputation must be a mapping.")
    providers = value.get("known_providers") or []
    if not isinstance(providers, list):
        raise ConfigError("reputation.known_providers must be a list.")
    normalized: list[str] = []
    for idx, entry in enumerate(providers, start=1):
        if not isinstance(entry, str) or not entry.strip():
            raise ConfigError(f"reputation.known_providers[{idx}] must be a domain string.")
        normalized.append(entry.strip().lower())
    return ReputationConfig(
        seed_defaults=bool(value.get("seed_defaults", True)),
        known_providers=tuple(normalized),
    )


def _parse_logging(value: Any) -> LoggingConfig:
    if value is None:
        return LoggingConfig()
    if not isinstance(value, dict):
        raise ConfigError("logging must be a mapping.")
    level = str(value.get("level", DEFAULT_LOG_LEVEL)).lower()
    debug_file = bool(value.get("debug_file", False))
    detections_file = bool(value.get("detections_file", False))
    return LoggingConfig(level=level, debug_file=debug_file, detections_file=detections_file)


__all__ = [
    "Config",
    "ConfigError",
    "DEFAULT_WEIGHTS",
    "DetectionConfig",
    "LoggingConfig",
    "ReputationConfig",
    "load_config",
]
