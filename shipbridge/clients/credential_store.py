"""SQLite-backed store for per-mall OAuth credentials."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TYPE_CHECKING

from shipbridge.models.oauth import StoredCredential

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from shipbridge.services.token_cipher import TokenCipherService


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed-width text so ORDER BY on the column is chronological.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class CredentialStore:
    """Credential table keyed by (provider, mall_id) with tokens encrypted at rest.

    Every write is a single ``INSERT ... ON CONFLICT DO UPDATE`` statement, so
    concurrent upserts for one key cannot interleave partial rows. SQLite calls
    run in a worker thread to keep the event loop free.
    """

    def __init__(self, db_path: str, cipher: "TokenCipherService") -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_credentials (
                    provider TEXT NOT NULL,
                    mall_id TEXT NOT NULL,
                    access_token_encrypted TEXT NOT NULL,
                    refresh_token_encrypted TEXT NOT NULL,
                    access_expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (provider, mall_id)
                )
                """
            )

    def _row_to_credential(self, row: sqlite3.Row) -> StoredCredential:
        return StoredCredential(
            provider=row["provider"],
            mall_id=row["mall_id"],
            access_token=self._cipher.decrypt(row["access_token_encrypted"]),
            refresh_token=self._cipher.decrypt(row["refresh_token_encrypted"]),
            access_expires_at=datetime.fromisoformat(row["access_expires_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _upsert(
        self,
        provider: str,
        mall_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> None:
        now = _isoformat(datetime.now(timezone.utc))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_credentials (
                    provider, mall_id, access_token_encrypted,
                    refresh_token_encrypted, access_expires_at, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(provider, mall_id) DO UPDATE SET
                    access_token_encrypted = excluded.access_token_encrypted,
                    refresh_token_encrypted = excluded.refresh_token_encrypted,
                    access_expires_at = excluded.access_expires_at,
                    updated_at = excluded.updated_at
                """,
                (
                    provider,
                    mall_id,
                    self._cipher.encrypt(access_token),
                    self._cipher.encrypt(refresh_token),
                    _isoformat(expires_at),
                    now,
                    now,
                ),
            )

    def _select_one(self, provider: str, mall_id: str) -> Optional[StoredCredential]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM oauth_credentials
                WHERE provider = ? AND mall_id = ?
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (provider, mall_id),
            ).fetchone()
        if not row:
            return None
        return self._row_to_credential(row)

    def _select_all(self, provider: Optional[str]) -> list[StoredCredential]:
        query = "SELECT * FROM oauth_credentials"
        params: tuple[str, ...] = ()
        if provider:
            query += " WHERE provider = ?"
            params = (provider,)
        query += " ORDER BY updated_at DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_credential(row) for row in rows]

    async def upsert_credential(
        self,
        provider: str,
        mall_id: str,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
    ) -> None:
        """Insert or fully overwrite the credential for ``(provider, mall_id)``."""
        if not provider or not mall_id:
            raise ValueError("Credential must include provider and mall_id.")
        if not access_token or not refresh_token:
            raise ValueError("Credential requires both an access and a refresh token.")
        if not isinstance(expires_at, datetime):
            raise ValueError("expires_at must be a datetime instance.")
        await asyncio.to_thread(
            self._upsert, provider, mall_id, access_token, refresh_token, expires_at
        )

    async def get_credential(
        self, provider: str, mall_id: str
    ) -> Optional[StoredCredential]:
        """Return the most recently updated credential, or ``None`` when absent."""
        return await asyncio.to_thread(self._select_one, provider, mall_id)

    async def list_credentials(
        self, provider: Optional[str] = None
    ) -> list[StoredCredential]:
        return await asyncio.to_thread(self._select_all, provider)


__all__ = ["CredentialStore"]
