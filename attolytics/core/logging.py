from __future__ import annotations

import logging
import sys

from attolytics.core.config import get_settings


_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Install a single stdout handler; repeated calls only adjust the level.
    root = logging.getLogger()
    resolved = (level or get_settings().log_level).upper()
    if not any(getattr(handler, "_attolytics", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._attolytics = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(resolved)


def verbosity_to_level(verbose: int, quiet: int) -> str:
    # Map -v/-q counts onto logging levels the way the CLI flags stack.
    verbosity = 1 + verbose - quiet
    if verbosity <= 0:
        return "CRITICAL"
    if verbosity == 1:
        return "WARNING"
    if verbosity == 2:
        return "INFO"
    return "DEBUG"
