"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token lifecycle
services and the operator scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

import os
import re

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_MALL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class _Settings(BaseSettings):
    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class Cafe24Settings(_Settings):
    """Configuration required for interacting with the Cafe24 Admin API."""

    client_id: str = Field(..., validation_alias="CAFE24_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="CAFE24_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="CAFE24_REDIRECT_URI")
    api_base_url_template: str = Field(
        "https://{mall_id}.cafe24api.com/api/v2",
        validation_alias="CAFE24_API_BASE_URL_TEMPLATE",
        description="Per-mall API root; must contain a '{mall_id}' placeholder.",
    )
    api_version: str = Field("2022-03-01", validation_alias="CAFE24_API_VERSION")
    http_timeout_seconds: float = Field(10.0, validation_alias="CAFE24_HTTP_TIMEOUT")
    scope: str = Field(
        "mall.read_product,mall.read_order,mall.write_order",
        validation_alias="CAFE24_SCOPES",
        description="Comma-separated list of OAuth scopes requested on install.",
    )
    token_timezone: str = Field(
        "Asia/Seoul",
        validation_alias="CAFE24_TOKEN_TIMEZONE",
        description="Zone used for expiry timestamps returned without an offset.",
    )

    @field_validator("api_base_url_template")
    @classmethod
    def _require_placeholder(cls, value: str) -> str:
        if "{mall_id}" not in value:
            raise ValueError("api_base_url_template must contain '{mall_id}'.")
        return value.rstrip("/")

    @field_validator("http_timeout_seconds")
    @classmethod
    def _require_finite_timeout(cls, value: float) -> float:
        if not 0 < value < 600:
            raise ValueError("http_timeout_seconds must be between 0 and 600.")
        return value

    @property
    def scopes(self) -> tuple[str, ...]:
        return tuple(item.strip() for item in self.scope.split(",") if item.strip())

    def naive_timezone(self) -> ZoneInfo:
        return ZoneInfo(self.token_timezone)

    def base_url_for(self, mall_id: str) -> str:
        """Return the API root for a mall, rejecting ids unsafe for a host name."""
        if not mall_id or not _MALL_ID_PATTERN.match(mall_id):
            raise ValueError(f"Invalid mall id: {mall_id!r}")
        return self.api_base_url_template.format(mall_id=mall_id)


class OAuthSettings(_Settings):
    """OAuth flow configuration."""

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")


class SecuritySettings(_Settings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    token_encryption_previous_secrets: str = Field(
        "",
        validation_alias="TOKEN_ENCRYPTION_PREVIOUS_SECRETS",
        description="Comma-separated retired secrets still accepted for decryption.",
    )
    partner_api_key: Optional[str] = Field(
        None,
        validation_alias="PARTNER_API_KEY",
        description="Shared key the logistics partner sends in X-API-Key.",
    )

    @property
    def previous_secrets(self) -> tuple[str, ...]:
        return tuple(
            item.strip()
            for item in self.token_encryption_previous_secrets.split(",")
            if item.strip()
        )


class AppSettings(_Settings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        populate_by_name=True,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL of the operator dashboard.",
    )
    database_path: str = Field(
        "data/shipbridge.db",
        validation_alias="SHIPBRIDGE_DB_PATH",
        description="SQLite file holding credentials and shipment logs.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    cafe24: Cafe24Settings = Field(default_factory=Cafe24Settings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "Cafe24Settings",
    "OAuthSettings",
    "SecuritySettings",
    "get_settings",
]
