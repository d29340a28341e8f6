"""
Logging configuration for the CLI and the MCP servers.

stdout carries the MCP stdio protocol, so every handler writes to stderr.

Usage:
    from second_opinion.logging_setup import configure_logging
    configure_logging("INFO")
"""

import logging
import os
import sys

LOG_LEVEL_ENV = "SECOND_OPINION_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty libraries that log every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "mcp", "openai", "anthropic")


def configure_logging(level: str | int | None = None) -> None:
    """Route all logging to stderr at `level` (default: $SECOND_OPINION_LOG_LEVEL or INFO)."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
