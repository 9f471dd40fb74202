"""
Logging setup for the pdtest-config CLI.

Modules log through ``logging.getLogger(__name__)``; ``setup_logging`` is
called once from ``src.main``. The console level comes from the
``--debug/--verbose/--quiet`` flags, else ``PDTEST_LOG_LEVEL``, else
WARNING. CI jobs can also capture a log file via ``PDTEST_LOG_FILE``.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

ENV_LOG_LEVEL = "PDTEST_LOG_LEVEL"
ENV_LOG_FILE = "PDTEST_LOG_FILE"
ENV_LOG_FILE_LEVEL = "PDTEST_LOG_FILE_LEVEL"

_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def level_from_flags(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Console level name for the given CLI flags."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root handlers with a stderr handler and an optional file.

    The root logger sits at the lower of the two handler levels so the
    file can record debug output while the console stays quiet.
    """
    console_level = _parse_level(level)
    root = logging.getLogger()
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    root.addHandler(console)
    root.setLevel(console_level)

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        root.addHandler(handler)
        root.setLevel(min(console_level, file_level))


def _parse_level(level: str | None) -> int:
    """Level name to number; unknown or empty names mean WARNING."""
    numeric = getattr(logging, level.upper(), None) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
