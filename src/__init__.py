"""PD CSI test-driver config generator."""

__version__ = "0.1.0"
