"""
Serve valid Cafe24 access tokens per mall, refreshing them when necessary.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Optional, TYPE_CHECKING

from shipbridge.core.logging import mask_secret
from shipbridge.models.oauth import CAFE24_PROVIDER, StoredCredential
from shipbridge.schemas.auth import TokenStatus
from shipbridge.services.expiry import normalize_expiry

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from shipbridge.clients.cafe24_auth import Cafe24OAuthClient
    from shipbridge.clients.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class NotAuthorizedError(Exception):
    """Raised when no usable credential is stored for a mall."""

    def __init__(self, mall_id: str, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or f"No OAuth credential stored for mall {mall_id}; complete the install flow."
        )
        self.mall_id = mall_id


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


REFRESH_WINDOW = timedelta(minutes=5)


def credential_state(record: StoredCredential, now: Optional[datetime] = None) -> str:
    """Classify a stored credential as connected, expiring or expired."""
    now = now or datetime.now(timezone.utc)
    expires_at = _as_utc(record.access_expires_at)
    if now >= expires_at:
        return "expired"
    if now + REFRESH_WINDOW >= expires_at:
        return "expiring"
    return "connected"


class Cafe24TokenService:
    """Single source of truth for a currently valid access token per mall.

    Tokens are refreshed once ``now`` is within ``_REFRESH_WINDOW`` of the stored
    expiry. Refreshes for the same mall are serialized by an in-process lock and
    the stored record is re-read under that lock, so concurrent callers that
    all see a stale token trigger a single upstream refresh. Nothing coordinates
    separate processes.
    """

    _REFRESH_WINDOW = REFRESH_WINDOW

    def __init__(
        self,
        store: "CredentialStore",
        oauth_client: "Cafe24OAuthClient",
        *,
        provider: str = CAFE24_PROVIDER,
        naive_tz: tzinfo = timezone.utc,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._provider = provider
        self._naive_tz = naive_tz
        self._refresh_locks: Dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    async def _get_lock(self, mall_id: str) -> asyncio.Lock:
        async with self._locks_lock:
            lock = self._refresh_locks.get(mall_id)
            if lock is None:
                lock = self._refresh_locks[mall_id] = asyncio.Lock()
            return lock

    async def _load(self, mall_id: str) -> StoredCredential:
        try:
            record = await self._store.get_credential(self._provider, mall_id)
        except ValueError as exc:
            # Undecryptable rows (e.g. a dropped encryption secret) are unusable.
            raise NotAuthorizedError(
                mall_id,
                f"Stored credential for mall {mall_id} cannot be read; "
                "re-authorization required.",
            ) from exc
        if record is None:
            raise NotAuthorizedError(mall_id)
        return record

    def _is_fresh(self, record: StoredCredential, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        # Shift "now" rather than the stored instant, which may sit at a calendar limit.
        return now + self._REFRESH_WINDOW < _as_utc(record.access_expires_at)

    async def _refresh(self, record: StoredCredential) -> str:
        logger.info(
            "Refreshing access token for mall %s (expires %s).",
            record.mall_id,
            record.access_expires_at.isoformat(),
        )
        refreshed_at = datetime.now(timezone.utc)
        tokens = await self._oauth.refresh_access_token(record.mall_id, record.refresh_token)
        expires_at = normalize_expiry(tokens, now=refreshed_at, naive_tz=self._naive_tz)
        await self._store.upsert_credential(
            self._provider,
            record.mall_id,
            tokens.access_token,
            tokens.refresh_token,
            expires_at,
        )
        return tokens.access_token

    async def get_valid_access_token(self, mall_id: str) -> str:
        """Return a token usable for at least the refresh window, refreshing if needed."""
        record = await self._load(mall_id)
        if self._is_fresh(record):
            return record.access_token

        async with await self._get_lock(mall_id):
            record = await self._load(mall_id)
            if self._is_fresh(record):
                return record.access_token
            return await self._refresh(record)

    async def force_refresh(self, mall_id: str, stale_token: Optional[str] = None) -> str:
        """Refresh regardless of the stored expiry.

        When ``stale_token`` is given and another task has already replaced it
        with a fresh token, that token is returned instead of refreshing again.
        """
        # Unknown malls fail here, before a lock is created for them.
        await self._load(mall_id)
        async with await self._get_lock(mall_id):
            record = await self._load(mall_id)
            if (
                stale_token is not None
                and record.access_token != stale_token
                and self._is_fresh(record)
            ):
                return record.access_token
            return await self._refresh(record)

    async def complete_authorization(
        self, mall_id: str, code: str, redirect_uri: Optional[str] = None
    ) -> StoredCredential:
        """Exchange an authorization code and persist the mall's first credential."""
        issued_at = datetime.now(timezone.utc)
        tokens = await self._oauth.exchange_authorization_code(mall_id, code, redirect_uri)
        expires_at = normalize_expiry(tokens, now=issued_at, naive_tz=self._naive_tz)

        async with await self._get_lock(mall_id):
            await self._store.upsert_credential(
                self._provider,
                mall_id,
                tokens.access_token,
                tokens.refresh_token,
                expires_at,
            )
        logger.info(
            "Stored credential for mall %s (token %s, expires %s).",
            mall_id,
            mask_secret(tokens.access_token),
            expires_at.isoformat(),
        )
        return StoredCredential(
            provider=self._provider,
            mall_id=mall_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            access_expires_at=expires_at,
            created_at=issued_at,
            updated_at=issued_at,
        )

    async def get_status(self, mall_id: str) -> TokenStatus:
        """Describe the stored credential without refreshing it."""
        try:
            record = await self._load(mall_id)
        except NotAuthorizedError:
            return TokenStatus(mall_id=mall_id, status="disconnected", has_token=False)

        return TokenStatus(
            mall_id=mall_id,
            status=credential_state(record),
            has_token=True,
            token_preview=mask_secret(record.access_token, show=8),
            expires_at=_as_utc(record.access_expires_at),
            updated_at=record.updated_at,
        )


__all__ = [
    "REFRESH_WINDOW",
    "Cafe24TokenService",
    "NotAuthorizedError",
    "credential_state",
]
