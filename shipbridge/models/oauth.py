"""
Domain models for OAuth token exchange and persistence.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CAFE24_PROVIDER = "cafe24"


class MalformedResponseError(Exception):
    """Raised when the token endpoint returns a payload missing required fields."""


class TokenResponse(BaseModel):
    """Payload returned by the Cafe24 token endpoint.

    Only the two tokens are required. The expiry fields are left untyped because
    Cafe24 has been observed returning ``expires_in`` as a number or a string and
    ``expires_at`` as a naive timestamp; ``normalize_expiry`` owns their meaning.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    expires_in: Any = None
    expires_at: Any = None
    # Informational extras; never grounds for rejecting a payload.
    refresh_token_expires_at: Any = None
    token_type: Any = None
    scope: Any = None
    scopes: Any = None
    client_id: Any = None
    mall_id: Any = None
    user_id: Any = None
    shop_no: Any = None
    issued_at: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenResponse":
        """Validate a decoded JSON body, rejecting anything without both tokens."""
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                f"Token endpoint returned {type(payload).__name__}, expected an object."
            )
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in exc.errors()})
            raise MalformedResponseError(
                f"Token payload failed validation: {', '.join(fields)}"
            ) from exc


class StoredCredential(BaseModel):
    """Represents the current credential persisted for a (provider, mall) pair."""

    provider: str = Field(CAFE24_PROVIDER, description="Upstream platform identifier.")
    mall_id: str = Field(..., description="Tenant identifier on the upstream platform.")
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = [
    "CAFE24_PROVIDER",
    "MalformedResponseError",
    "StoredCredential",
    "TokenResponse",
]
