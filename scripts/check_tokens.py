"""List stored Cafe24 credentials and flag the ones that need attention.

Reads the credential table directly, never refreshes anything, and prints one
line per mall with its connection state.

Example usages::

    # All malls in the configured database.
    python -m scripts.check_tokens

    # One mall in a specific database file.
    python -m scripts.check_tokens --db-path /srv/shipbridge/data/shipbridge.db \
        --mall-id examplemall
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from shipbridge.clients.credential_store import CredentialStore
from shipbridge.core.config import AppSettings
from shipbridge.models.oauth import StoredCredential
from shipbridge.services.token_cipher import TokenCipherService
from shipbridge.services.tokens import credential_state

EXIT_OK = 0
EXIT_NO_CREDENTIALS = 2
EXIT_VALIDATION_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Report the state of stored Cafe24 OAuth credentials."
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="SQLite database to inspect (default: SHIPBRIDGE_DB_PATH).",
    )
    parser.add_argument(
        "--mall-id",
        default=None,
        help="Only report the given mall.",
    )
    return parser


def _format_line(record: StoredCredential, now: datetime) -> str:
    return (
        f"{record.mall_id:<24} {record.provider:<8} "
        f"{credential_state(record, now):<10} "
        f"expires={record.access_expires_at.isoformat()} "
        f"updated={record.updated_at.isoformat()}"
    )


async def _load_credentials(
    store: CredentialStore, mall_id: str | None
) -> list[StoredCredential]:
    records = await store.list_credentials()
    if mall_id:
        records = [record for record in records if record.mall_id == mall_id]
    return records


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = AppSettings()  # type: ignore[call-arg]
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR

    db_path: Path = args.db_path or Path(settings.database_path)
    if not db_path.exists():
        print(f"Database file {db_path} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    secret = settings.security.token_encryption_secret or settings.cafe24.client_secret
    try:
        cipher = TokenCipherService(
            secret=secret, previous_secrets=settings.security.previous_secrets
        )
        store = CredentialStore(str(db_path), cipher)
        records = asyncio.run(_load_credentials(store, args.mall_id))
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error while reading credentials: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    if not records:
        print("No OAuth credentials found; complete the install flow for each mall.")
        return EXIT_NO_CREDENTIALS

    now = datetime.now(timezone.utc)
    print(f"Found {len(records)} credential(s):")
    for record in records:
        print(_format_line(record, now))
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
