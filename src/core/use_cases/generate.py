"""
Generate use case — resolve the driver config and write test-config.yaml.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from src.core.config.loader import GenerationParams
from src.core.models.driver_config import DriverConfig
from src.core.services.generators.driver_config import resolve_driver_config
from src.core.services.generators.errors import DriverConfigError
from src.core.services.generators.render import render_test_config

logger = logging.getLogger(__name__)


@dataclass
class GenerateResult:
    """Outcome of a generation run."""

    params: GenerationParams | None = None
    config: DriverConfig | None = None
    output_path: Path | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.output_path is not None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        result: dict = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
            return result

        result["output_path"] = str(self.output_path) if self.output_path else None
        if self.config:
            result["config"] = self.config.model_dump()
        return result


def resolve_params(params: GenerationParams) -> DriverConfig:
    """Resolve a DriverConfig from params without touching the filesystem."""
    return resolve_driver_config(
        params.platform,
        params.deployment_strategy,
        params.storage_class_file,
        params.snapshot_class_file,
        package_root=params.package_root,
    )


def run_generate(
    params: GenerationParams,
    *,
    template_path: Path | None = None,
    output_path: Path | None = None,
) -> GenerateResult:
    """Resolve and render in one step.

    Failures are reported on the result, never raised, so CLI and JSON
    callers can decide how to surface them. Any error means no usable
    artifact exists.
    """
    result = GenerateResult(params=params)

    try:
        result.config = resolve_params(params)
        result.output_path = render_test_config(
            result.config,
            params.package_root,
            template_path=template_path,
            output_path=output_path,
        )
    except DriverConfigError as e:
        logger.debug("Test config generation failed: %s", e)
        result.error = str(e)
        result.error_type = type(e).__name__
        result.output_path = None

    return result
