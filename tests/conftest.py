"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from src.core.services.generators.driver_config import config_dir
from src.core.services.generators.render import default_template_text


@pytest.fixture
def package_root(tmp_path: Path) -> Path:
    """A driver checkout with the test config directory and bundled template."""
    root = tmp_path / "driver"
    cfg = config_dir(root)
    cfg.mkdir(parents=True)
    (cfg / "test-config-template.in").write_text(default_template_text(), encoding="utf-8")
    (cfg / "sc-standard.yaml").write_text("kind: StorageClass\n", encoding="utf-8")
    return root


@pytest.fixture
def output_yaml(package_root: Path) -> Path:
    """Where test-config.yaml lands for ``package_root``."""
    return config_dir(package_root) / "test-config.yaml"
