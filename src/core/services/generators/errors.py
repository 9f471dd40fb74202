"""
Errors raised while resolving and rendering the test-driver config.

Every failure is terminal for the invocation: callers must treat any
``DriverConfigError`` as "no usable test-config.yaml was produced".
"""

from __future__ import annotations


class DriverConfigError(Exception):
    """Base class for test-driver config failures."""


class UnsupportedDeploymentStrategyError(DriverConfigError):
    """Deployment strategy is not one the driver is tested under."""

    def __init__(self, strategy: str, supported: tuple[str, ...]):
        self.strategy = strategy
        self.supported = supported
        super().__init__(
            f"Unknown deployment strategy '{strategy}', "
            f"expected one of: {', '.join(supported)}"
        )


class MalformedFilenameError(DriverConfigError):
    """Storage-class filename has no extension separator."""

    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(
            f"Cannot derive a storage class name from '{filename}': "
            "filename has no extension"
        )


class TemplateLoadError(DriverConfigError):
    """Template is missing, unreadable, or has unbalanced blocks."""


class OutputCreationError(DriverConfigError):
    """Destination file could not be created or opened."""


class RenderError(DriverConfigError):
    """Substitution left the output unusable, or the write failed."""
