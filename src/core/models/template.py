"""
Generated file model — a rendered artifact waiting to be written.
"""

from __future__ import annotations

from pydantic import BaseModel


class GeneratedFile(BaseModel):
    """A file produced by a generator.

    Attributes:
        path:      Absolute destination path.
        content:   Full file content.
        overwrite: Whether an existing file at ``path`` is replaced.
        reason:    Why this file was generated.
    """

    path: str
    content: str
    overwrite: bool = True
    reason: str = ""
