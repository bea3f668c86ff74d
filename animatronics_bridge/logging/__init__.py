"""Logging setup for the bridge process."""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("aiohttp.access", "aiomqtt")


def setup_logging(level: str | int = "INFO", format_type: str = "colored") -> None:
    """
    Configure root logging.

    Args:
        level: Level name or number
        format_type: "colored" for rich console output, "plain" for
            timestamped lines on stderr
    """
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")
        level = numeric

    if format_type == "colored":
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    elif format_type == "plain":
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    else:
        raise ValueError(f"Unknown log format: {format_type}")

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    if level > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


__all__ = [
    "setup_logging",
]
