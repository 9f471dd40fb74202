"""
Configuration loader — reads a params YAML into GenerationParams.

A params file lets a test job pin its inputs instead of passing every
flag on the command line. Values given on the command line still win.

    testdriver:
      platform: linux
      deployment_strategy: gke
      storage_class_file: sc-standard.yaml
      snapshot_class_file: ""
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from src.core.services.generators.driver_config import TEST_CONFIG_DIR

logger = logging.getLogger(__name__)

# Optional wrapper key in the params file
PARAMS_SECTION = "testdriver"


class ConfigError(Exception):
    """Raised when the params file is invalid or missing."""


class GenerationParams(BaseModel):
    """Inputs for one test-config generation."""

    model_config = ConfigDict(extra="forbid")

    platform: str = "linux"
    deployment_strategy: str = "gce"
    storage_class_file: str = "sc-standard.yaml"
    snapshot_class_file: str = ""
    package_root: Path = Field(default_factory=Path.cwd)

    def merged(self, **overrides: object) -> GenerationParams:
        """Return a copy with every non-None override applied."""
        updates = {k: v for k, v in overrides.items() if v is not None}
        if not updates:
            return self
        return GenerationParams.model_validate({**self.model_dump(), **updates})


def find_package_root(start_dir: Path | None = None) -> Path | None:
    """Walk upward from *start_dir* to the first directory holding the
    test config directory.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        The package root, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        if (current / TEST_CONFIG_DIR).is_dir():
            return current
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_params(path: Path) -> GenerationParams:
    """Load and validate a params file.

    Relative ``package_root`` values are resolved against the params
    file's directory.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if not path.is_file():
        raise ConfigError(f"Params file not found: {path}")

    logger.debug("Loading params from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "testdriver" key or be flat
    params_data = data[PARAMS_SECTION] if PARAMS_SECTION in data else data
    if not isinstance(params_data, dict):
        raise ConfigError(f"Expected a mapping under '{PARAMS_SECTION}' in {path}")
    params_data = dict(params_data)

    root = params_data.get("package_root")
    if root is not None and not Path(str(root)).is_absolute():
        params_data["package_root"] = (path.parent / str(root)).resolve()

    try:
        params = GenerationParams.model_validate(params_data)
    except Exception as e:
        raise ConfigError(f"Invalid params configuration: {e}") from e

    logger.info(
        "Loaded params: platform=%s strategy=%s storage class=%s",
        params.platform, params.deployment_strategy, params.storage_class_file,
    )
    return params
