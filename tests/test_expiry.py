try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from shipbridge.models.oauth import TokenResponse
from shipbridge.services.expiry import (
    DEFAULT_EXPIRES_IN_SECONDS,
    MAX_EXPIRES_IN_SECONDS,
    normalize_expiry,
)

NOW = datetime(2025, 9, 5, 6, 0, 0, tzinfo=timezone.utc)


def test_expires_in_number_is_relative_to_now() -> None:
    assert normalize_expiry({"expires_in": 3600}, now=NOW) == NOW + timedelta(seconds=3600)


def test_expires_in_defaults_to_current_time() -> None:
    before = datetime.now(timezone.utc)
    result = normalize_expiry({"expires_in": 3600})
    after = datetime.now(timezone.utc)

    assert before + timedelta(seconds=3600) <= result <= after + timedelta(seconds=3600)


@pytest.mark.parametrize(
    ("value", "seconds"),
    [
        ("3600", 3600),
        (" 1800 ", 1800),
        ("3600.0", 3600),
        ("3600s", 3600),
        ("+120", 120),
        ("1e3", 1),
    ],
)
def test_expires_in_string_reads_leading_integer(value: str, seconds: int) -> None:
    assert normalize_expiry({"expires_in": value}, now=NOW) == NOW + timedelta(seconds=seconds)


def test_expires_at_wins_over_expires_in() -> None:
    result = normalize_expiry(
        {"expires_at": "2025-09-05T08:36:33.000", "expires_in": 60}, now=NOW
    )
    assert result == datetime(2025, 9, 5, 8, 36, 33, tzinfo=timezone.utc)


def test_naive_expires_at_uses_configured_zone() -> None:
    result = normalize_expiry(
        {"expires_at": "2025-09-05T08:36:33.000"},
        now=NOW,
        naive_tz=ZoneInfo("Asia/Seoul"),
    )
    assert result == datetime(2025, 9, 4, 23, 36, 33, tzinfo=timezone.utc)
    assert result.utcoffset() == timedelta(0)


@pytest.mark.parametrize(
    "value",
    ["2025-09-05T08:36:33Z", "2025-09-05T17:36:33+09:00"],
)
def test_expires_at_with_offset_ignores_naive_zone(value: str) -> None:
    result = normalize_expiry(
        {"expires_at": value}, now=NOW, naive_tz=ZoneInfo("Asia/Seoul")
    )
    assert result == datetime(2025, 9, 5, 8, 36, 33, tzinfo=timezone.utc)


def test_unparseable_expires_at_falls_back_to_expires_in() -> None:
    result = normalize_expiry({"expires_at": "invalid-date", "expires_in": 3600}, now=NOW)
    assert result == NOW + timedelta(seconds=3600)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"expires_in": None},
        {"expires_in": 0},
        {"expires_in": -1},
        {"expires_in": float("nan")},
        {"expires_in": float("inf")},
        {"expires_in": float("-inf")},
        {"expires_in": True},
        {"expires_in": "abc"},
        {"expires_in": ""},
        {"expires_in": "-5"},
        {"expires_in": "0.5"},
        {"expires_in": "1" + "0" * 5000},
        {"expires_in": 10**30},
        {"expires_in": "9" * 40},
        {"expires_in": MAX_EXPIRES_IN_SECONDS + 1},
        {"expires_in": [3600]},
        {"expires_at": "invalid-date"},
        {"expires_at": 1757061393},
        {"expires_at": "9999-12-31T23:59:59-12:00"},
        {"expires_at": "0001-01-01T00:00:00Z"},
        {"expires_at": "9999-12-31T23:59:59Z"},
    ],
)
def test_unusable_values_fall_back_to_default(payload: dict) -> None:
    assert normalize_expiry(payload, now=NOW) == NOW + timedelta(
        seconds=DEFAULT_EXPIRES_IN_SECONDS
    )


def test_accepts_token_response_model() -> None:
    tokens = TokenResponse(access_token="access", refresh_token="refresh", expires_in="120")
    assert normalize_expiry(tokens, now=NOW) == NOW + timedelta(seconds=120)


def test_result_is_always_timezone_aware() -> None:
    naive_now = datetime(2025, 9, 5, 6, 0, 0)
    result = normalize_expiry({"expires_in": 60}, now=naive_now)
    assert result.tzinfo is not None
    assert result == NOW + timedelta(seconds=60)


def test_non_numeric_string_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="shipbridge.services.expiry"):
        normalize_expiry({"expires_in": "invalid"}, now=NOW)

    assert any("non-numeric" in record.getMessage() for record in caplog.records)


def test_expires_at_too_close_to_calendar_limits_uses_expires_in() -> None:
    result = normalize_expiry(
        {"expires_at": "0001-01-01T00:00:00Z", "expires_in": 3600}, now=NOW
    )
    assert result == NOW + timedelta(seconds=3600)


def test_negative_numeric_string_is_not_reported_as_non_numeric(
    caplog: pytest.LogCaptureFixture,
) -> None:
    with caplog.at_level(logging.WARNING, logger="shipbridge.services.expiry"):
        result = normalize_expiry({"expires_in": "-5"}, now=NOW)

    assert result == NOW + timedelta(seconds=DEFAULT_EXPIRES_IN_SECONDS)
    assert not any("non-numeric" in record.getMessage() for record in caplog.records)
