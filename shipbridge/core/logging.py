"""
Logging utilities for the bridge API and operator scripts.

Provides a consistent logging format and configuration.
"""

import logging
import sys

_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every request line, including per-mall hosts, at INFO.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_secret(value: str | None, show: int = 6) -> str:
    """Return a log-safe preview of a token."""
    if not value:
        return "<empty>"
    if len(value) <= show:
        return "*" * len(value)
    return f"{value[:show]}..."


__all__ = ["configure_logging", "mask_secret"]
