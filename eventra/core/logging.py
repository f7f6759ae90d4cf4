"""
Logging utilities for the Eventra server and maintenance scripts.

Provides a consistent logging format and configuration. Output goes to stderr
because stdout carries the MCP stream in stdio mode.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )


__all__ = ["configure_logging"]
