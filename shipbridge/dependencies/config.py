"""
FastAPI dependency utilities for injecting configuration and request guards.
"""

import hmac
from functools import lru_cache
from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException

from shipbridge.core.config import AppSettings, get_settings


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def verify_partner_api_key(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    x_api_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """Reject webhook calls whose X-API-Key does not match PARTNER_API_KEY.

    The check is skipped when no partner key is configured.
    """
    expected = settings.security.partner_api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Unauthorized: invalid API key.",
        )


SettingsDependency = Depends(get_app_settings)

__all__ = ["SettingsDependency", "get_app_settings", "verify_partner_api_key"]
