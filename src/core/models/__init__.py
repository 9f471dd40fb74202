"""
Domain models — Pydantic types for the test-config generator.

    from src.core.models import DriverConfig, GeneratedFile
"""

from src.core.models.driver_config import (
    KNOWN_CAPABILITIES,
    SNAPSHOT_CAPABILITY,
    DriverConfig,
)
from src.core.models.template import GeneratedFile

__all__ = [
    # driver_config.py
    "DriverConfig",
    "KNOWN_CAPABILITIES",
    "SNAPSHOT_CAPABILITY",
    # template.py
    "GeneratedFile",
]
