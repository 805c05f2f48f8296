"""Schemas related to OAuth flows."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

MALL_ID_REGEX = r"^[A-Za-z0-9_-]+$"


class OAuthRefreshRequest(BaseModel):
    """Operator request to force a token refresh for a mall."""

    mall_id: str = Field(..., pattern=MALL_ID_REGEX, description="Cafe24 mall identifier.")


class TokenStatus(BaseModel):
    """Connection state of a mall's stored credential."""

    mall_id: str
    status: Literal["disconnected", "expired", "expiring", "connected"]
    has_token: bool
    token_preview: Optional[str] = None
    expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TokenRefreshResult(BaseModel):
    mall_id: str
    token_preview: str
    expires_at: datetime


__all__ = ["MALL_ID_REGEX", "OAuthRefreshRequest", "TokenRefreshResult", "TokenStatus"]
