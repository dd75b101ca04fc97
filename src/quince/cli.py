"""Quince command-line interface."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer

from . import __version__
from .config import DEFAULT_CONFIG_PATH, Config, ConfigError, load_config
from .detector import NewsletterDetector, build_detector
from .logging import configure_logging
from .message import MessageError, read_email
from .senders import load_feedback_file
from .types import DetectionMethod, DetectionResult, UserFeedback

app = typer.Typer(help="Quince newsletter detection utilities.")
LOGGER = logging.getLogger(__name__)


@dataclass
class CLIState:
    """Stores shared CLI options."""

    config_path: Path | None


@app.callback()
def _quince(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "-c",
            "--config",
            help="Path to Quince config (env QUINCE_CONFIG or ~/.config/quince/config.yaml).",
        ),
    ] = None,
) -> None:
    """Capture global CLI options."""

    resolved = config.expanduser() if config else None
    ctx.obj = CLIState(config_path=resolved)


@app.command()
def detect(
    ctx: typer.Context,
    paths: Annotated[
        list[Path],
        typer.Argument(..., help="Email files to score (.json mail-source shape or .eml)."),
    ],
    feedback: Annotated[
        Path | None,
        typer.Option(
            "--feedback",
            help="YAML file with confirmed/rejected senders and trusted/blocked domains.",
        ),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print results as JSON."),
    ] = False,
) -> None:
    """Score emails and print the triage decision for each."""

    state = _state(ctx)
    config = _load_environment(state)
    user_feedback = _load_feedback(feedback) if feedback else None
    detector = build_detector(config)

    results = [_detect_one(detector, path.expanduser(), user_feedback) for path in paths]

    if as_json:
        typer.echo(json.dumps([_result_payload(path, result) for path, result in results], indent=2))
        return
    for path, result in results:
        _print_result(path, result)


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Display the effective weights and verification thresholds."""

    state = _state(ctx)
    config = _load_config(state.config_path)
    detector = build_detector(config)
    calculator = detector.calculator

    typer.echo("→ Quince Configuration")
    typer.echo(f"Version: {__version__}")
    typer.echo(f"Config path: {_resolved_config_path(state.config_path)}")
    typer.echo(f"Root dir: {config.root_dir}")
    typer.echo(f"Default user: {config.detection.default_user}")
    typer.echo("Weights:")
    for method in DetectionMethod:
        typer.echo(f"  {method.value}: {calculator.get_method_weight(method):.3f}")
    thresholds = calculator.thresholds
    typer.echo(f"Verification band: ({thresholds.low:.2f}, {thresholds.high:.2f})")


def _detect_one(
    detector: NewsletterDetector, path: Path, user_feedback: UserFeedback | None
) -> tuple[Path, DetectionResult]:
    if not path.is_file():
        typer.secho(f"Email file not found: {path}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None
    try:
        email = read_email(path)
    except (MessageError, OSError) as exc:
        typer.secho(f"Failed to read email {path}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc
    return path, detector.detect(email, user_feedback=user_feedback)


def _print_result(path: Path, result: DetectionResult) -> None:
    typer.echo(f"Email: {result.email_id} ({path})")
    typer.echo(f"  triage: {result.triage.value}")
    typer.echo(f"  combined: {result.combined_score:.3f}")
    typer.echo(f"  newsletter: {'yes' if result.is_newsletter else 'no'}")
    typer.echo(f"  needs verification: {'yes' if result.needs_verification else 'no'}")
    for score in result.scores:
        typer.echo(
            f"  - {score.method.value}: {score.score:.2f} "
            f"(confidence {score.confidence:.2f}) {score.reason}"
        )


def _result_payload(path: Path, result: DetectionResult) -> dict[str, Any]:
    return {
        "path": str(path),
        "email_id": result.email_id,
        "combined_score": result.combined_score,
        "is_newsletter": result.is_newsletter,
        "needs_verification": result.needs_verification,
        "triage": result.triage.value,
        "scores": [
            {
                "method": score.method.value,
                "score": score.score,
                "confidence": score.confidence,
                "reason": score.reason,
            }
            for score in result.scores
        ],
    }


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise RuntimeError("CLI state missing from context.")
    return state


def _load_environment(state: CLIState) -> Config:
    config = _load_config(state.config_path)
    try:
        configure_logging(config.logging, config.root_dir)
    except ConfigError as exc:
        _config_failure(exc)
    return config


def _load_config(path: Path | None) -> Config:
    try:
        return load_config(path)
    except ConfigError as exc:
        _config_failure(exc)


def _load_feedback(path: Path) -> UserFeedback:
    try:
        return load_feedback_file(path)
    except ConfigError as exc:
        _config_failure(exc)


def _config_failure(exc: ConfigError) -> NoReturn:
    typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(2) from exc


def _resolved_config_path(path: Path | None) -> Path:
    if path:
        return path
    env = os.environ.get("QUINCE_CONFIG")
    if env:
        return Path(env).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def main() -> None:  # pragma: no cover - delegated to Typer
    app()


__all__ = ["app", "main"]
