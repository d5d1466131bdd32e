# fscrawl/logging/logger.py
"""
Central logging helpers.

Every module obtains its logger through `get_logger(__name__)` and prefixes
messages with a tag from `fscrawl.logging.tags`, e.g.:

    logger.info(f"{CRAWLER} Run #3 finished for job 'docs'")

`configure_logging` is called once by the CLI. Library users are free to
configure the `fscrawl` logger hierarchy themselves instead.
"""

from __future__ import annotations

import logging
import sys

_ROOT_LOGGER = "fscrawl"
_FORMAT = "%(asctime)s %(levelname)-7s %(name)s - %(message)s"
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger living under the `fscrawl` hierarchy."""
    if name != _ROOT_LOGGER and not name.startswith(_ROOT_LOGGER + "."):
        name = f"{_ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def configure_logging(level: str | int = "INFO") -> None:
    """
    Install a single stderr handler on the `fscrawl` logger.

    Safe to call more than once; later calls only change the level.
    """
    global _configured

    root = logging.getLogger(_ROOT_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    _configured = True


__all__ = ["get_logger", "configure_logging"]
