"""
Normalize the expiry information returned by the Cafe24 token endpoint.

Cafe24 responses have carried an absolute ``expires_at`` (naive, mall-local
time), a relative ``expires_in`` (number or numeric string), both, or neither.
``normalize_expiry`` turns any of those shapes into one aware instant and never
raises.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Mapping, Optional

from shipbridge.models.oauth import TokenResponse

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_SECONDS = 7200
# Anything beyond this is treated as garbage rather than a real lifetime.
MAX_EXPIRES_IN_SECONDS = 366 * 24 * 60 * 60
# Parsed instants must leave room for refresh-window arithmetic on either side.
_EARLIEST_EXPIRY = datetime.min.replace(tzinfo=timezone.utc) + timedelta(days=1)
_LATEST_EXPIRY = datetime.max.replace(tzinfo=timezone.utc) - timedelta(days=1)
_LEADING_INTEGER = re.compile(r"\s*([+-]?[0-9]+)")


def _parse_expires_at(value: Any, naive_tz: tzinfo) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=naive_tz)
        parsed = parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None
    if not _EARLIEST_EXPIRY <= parsed <= _LATEST_EXPIRY:
        return None
    return parsed


def _seconds_from_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if not 0 < value <= MAX_EXPIRES_IN_SECONDS:
        return None
    return float(value)


def _seconds_from_string(value: Any) -> Optional[float]:
    if not isinstance(value, str):
        return None
    # Leading integer only, so "3600.0" and "3600s" both read as 3600.
    match = _LEADING_INTEGER.match(value)
    if match is None:
        logger.warning("Ignoring non-numeric expires_in value %r.", value)
        return None
    try:
        seconds = int(match.group(1))
    except ValueError:
        # More digits than int() will convert.
        return None
    return float(seconds) if 0 < seconds <= MAX_EXPIRES_IN_SECONDS else None


_EXPIRES_IN_PARSERS: tuple[Callable[[Any], Optional[float]], ...] = (
    _seconds_from_number,
    _seconds_from_string,
)


def _as_mapping(payload: TokenResponse | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(payload, TokenResponse):
        return {"expires_at": payload.expires_at, "expires_in": payload.expires_in}
    return payload


def normalize_expiry(
    payload: TokenResponse | Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
    naive_tz: tzinfo = timezone.utc,
) -> datetime:
    """Return the absolute UTC instant at which the issued access token expires.

    ``expires_at`` wins when it parses. Otherwise ``expires_in`` is read as
    seconds from ``now``; missing, non-positive, non-finite or unparseable values
    fall back to ``DEFAULT_EXPIRES_IN_SECONDS``.
    """
    fields = _as_mapping(payload)
    issued = now or datetime.now(timezone.utc)
    if issued.tzinfo is None:
        issued = issued.replace(tzinfo=timezone.utc)

    raw_expires_at = fields.get("expires_at")
    if raw_expires_at is not None:
        absolute = _parse_expires_at(raw_expires_at, naive_tz)
        if absolute is not None:
            return absolute
        logger.warning(
            "Unparseable expires_at %r; falling back to expires_in.", raw_expires_at
        )

    raw_expires_in = fields.get("expires_in")
    seconds: Optional[float] = None
    for parser in _EXPIRES_IN_PARSERS:
        seconds = parser(raw_expires_in)
        if seconds is not None:
            break

    if seconds is None:
        if raw_expires_in is not None:
            logger.warning(
                "Invalid expires_in %r; using default of %s seconds.",
                raw_expires_in,
                DEFAULT_EXPIRES_IN_SECONDS,
            )
        seconds = DEFAULT_EXPIRES_IN_SECONDS

    return issued.astimezone(timezone.utc) + timedelta(seconds=seconds)


__all__ = [
    "DEFAULT_EXPIRES_IN_SECONDS",
    "MAX_EXPIRES_IN_SECONDS",
    "normalize_expiry",
]
