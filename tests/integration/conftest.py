from __future__ import annotations

from pathlib import Path

import pytest

from quince.config import Config, LoggingConfig
from quince.detector import NewsletterDetector, build_detector


@pytest.fixture
def detector(tmp_path: Path) -> NewsletterDetector:
    """Fully wired detector writing its detection log under a temporary root."""

    config = Config(root_dir=tmp_path / "state", logging=LoggingConfig(detections_file=True))
    return build_detector(config)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Automatically mark tests in this package as integration."""

    package_root = Path(__file__).resolve().parent
    integration_mark = pytest.mark.integration
    for item in items:
        try:
            path = Path(item.fspath).resolve()
        except OSError:
            continue
        if package_root in path.parents:
            item.add_marker(integration_mark)
