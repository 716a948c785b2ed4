from __future__ import annotations

import logging
import sys


class _QuietThirdParty(logging.Filter):
    """Keep studyboard logs at the configured level; other libraries only at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("studyboard"):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: str | int = logging.INFO) -> None:
    """Install a single stderr handler on the root logger. Safe to call twice."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    for handler in root.handlers:
        if getattr(handler, "_studyboard", False):
            handler.setLevel(level)
            root.setLevel(level)
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.addFilter(_QuietThirdParty())
    handler._studyboard = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger("passlib").setLevel(logging.ERROR)
