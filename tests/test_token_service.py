try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from shipbridge.clients.cafe24_auth import RefreshError
from shipbridge.clients.credential_store import CredentialStore
from shipbridge.models.oauth import TokenResponse
from shipbridge.services.token_cipher import TokenCipherService
from shipbridge.services.tokens import Cafe24TokenService, NotAuthorizedError


class DummyOAuthClient:
    def __init__(
        self,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        expires_in: object = 7200,
        exchange_expires_at: object = "2099-01-01T09:00:00.000",
    ) -> None:
        self.error = error
        self.delay = delay
        self.expires_in = expires_in
        self.exchange_expires_at = exchange_expires_at
        self.refresh_calls: list[tuple[str, str]] = []
        self.exchange_calls: list[tuple[str, str]] = []

    async def refresh_access_token(self, mall_id: str, refresh_token: str) -> TokenResponse:
        self.refresh_calls.append((mall_id, refresh_token))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        count = len(self.refresh_calls)
        return TokenResponse(
            access_token=f"{mall_id}-access-{count}",
            refresh_token=f"{mall_id}-refresh-{count}",
            expires_in=self.expires_in,
        )

    async def exchange_authorization_code(
        self, mall_id: str, code: str, redirect_uri: str | None = None
    ) -> TokenResponse:
        self.exchange_calls.append((mall_id, code))
        if self.error:
            raise self.error
        return TokenResponse(
            access_token=f"{mall_id}-first-access",
            refresh_token=f"{mall_id}-first-refresh",
            expires_at=self.exchange_expires_at,
        )


def _build(
    tmp_path: Path, oauth_client: DummyOAuthClient
) -> tuple[Cafe24TokenService, CredentialStore]:
    store = CredentialStore(
        str(tmp_path / "tokens.db"), TokenCipherService(secret="service-secret")
    )
    return Cafe24TokenService(store, oauth_client), store


async def _seed(
    store: CredentialStore, mall_id: str, expires_in: timedelta, suffix: str = "initial"
) -> None:
    await store.upsert_credential(
        "cafe24",
        mall_id,
        f"{mall_id}-access-{suffix}",
        f"{mall_id}-refresh-{suffix}",
        datetime.now(timezone.utc) + expires_in,
    )


@pytest.mark.asyncio
async def test_missing_credential_raises_without_network(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, _ = _build(tmp_path, oauth_client)

    with pytest.raises(NotAuthorizedError) as excinfo:
        await service.get_valid_access_token("mall-a")

    assert excinfo.value.mall_id == "mall-a"
    assert oauth_client.refresh_calls == []


@pytest.mark.asyncio
async def test_fresh_token_is_served_from_store(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", timedelta(minutes=5, seconds=30))

    token = await service.get_valid_access_token("mall-a")

    assert token == "mall-a-access-initial"
    assert oauth_client.refresh_calls == []


@pytest.mark.asyncio
async def test_token_inside_refresh_window_is_refreshed_once(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", timedelta(minutes=4, seconds=30))

    before = datetime.now(timezone.utc)
    token = await service.get_valid_access_token("mall-a")

    assert token == "mall-a-access-1"
    assert oauth_client.refresh_calls == [("mall-a", "mall-a-refresh-initial")]

    record = await store.get_credential("cafe24", "mall-a")
    assert record.access_token == "mall-a-access-1"
    assert record.refresh_token == "mall-a-refresh-1"
    assert record.access_expires_at >= before + timedelta(seconds=7200)

    assert await service.get_valid_access_token("mall-a") == "mall-a-access-1"
    assert len(oauth_client.refresh_calls) == 1


@pytest.mark.asyncio
async def test_garbage_expiry_from_refresh_uses_default_lifetime(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient(expires_in=float("nan"))
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", -timedelta(minutes=1))

    before = datetime.now(timezone.utc)
    await service.get_valid_access_token("mall-a")

    record = await store.get_credential("cafe24", "mall-a")
    assert before + timedelta(seconds=7200) <= record.access_expires_at
    assert record.access_expires_at <= datetime.now(timezone.utc) + timedelta(seconds=7200)


@pytest.mark.asyncio
async def test_failed_refresh_leaves_store_untouched(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient(error=RefreshError("boom", status_code=400))
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", -timedelta(minutes=1))
    before = await store.get_credential("cafe24", "mall-a")

    with pytest.raises(RefreshError):
        await service.get_valid_access_token("mall-a")

    after = await store.get_credential("cafe24", "mall-a")
    assert after == before


@pytest.mark.asyncio
async def test_refresh_only_touches_requested_mall(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", -timedelta(minutes=1))
    await _seed(store, "mall-b", -timedelta(minutes=1))
    untouched = await store.get_credential("cafe24", "mall-b")

    await service.get_valid_access_token("mall-a")

    assert await store.get_credential("cafe24", "mall-b") == untouched
    assert oauth_client.refresh_calls == [("mall-a", "mall-a-refresh-initial")]


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient(delay=0.05)
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", -timedelta(minutes=1))

    tokens = await asyncio.gather(
        *(service.get_valid_access_token("mall-a") for _ in range(5))
    )

    assert len(oauth_client.refresh_calls) == 1
    assert set(tokens) == {"mall-a-access-1"}


@pytest.mark.asyncio
async def test_force_refresh_skips_when_stale_token_already_replaced(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", timedelta(hours=1), suffix="current")

    token = await service.force_refresh("mall-a", stale_token="mall-a-access-old")
    assert token == "mall-a-access-current"
    assert oauth_client.refresh_calls == []

    token = await service.force_refresh("mall-a", stale_token="mall-a-access-current")
    assert token == "mall-a-access-1"

    token = await service.force_refresh("mall-a")
    assert token == "mall-a-access-2"


@pytest.mark.asyncio
async def test_unreadable_credential_requires_reauthorization(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    _, store = _build(tmp_path, oauth_client)
    await _seed(store, "mall-a", timedelta(hours=1))

    rotated_store = CredentialStore(
        str(tmp_path / "tokens.db"), TokenCipherService(secret="different-secret")
    )
    service = Cafe24TokenService(rotated_store, oauth_client)

    with pytest.raises(NotAuthorizedError):
        await service.get_valid_access_token("mall-a")


@pytest.mark.asyncio
async def test_complete_authorization_persists_first_credential(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, store = _build(tmp_path, oauth_client)

    credential = await service.complete_authorization("mall-a", "auth-code")

    assert oauth_client.exchange_calls == [("mall-a", "auth-code")]
    assert credential.access_expires_at == datetime(2099, 1, 1, 9, 0, tzinfo=timezone.utc)

    record = await store.get_credential("cafe24", "mall-a")
    assert record.access_token == "mall-a-first-access"
    assert record.refresh_token == "mall-a-first-refresh"
    assert await service.get_valid_access_token("mall-a") == "mall-a-first-access"


@pytest.mark.asyncio
async def test_get_status_reports_each_state(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, store = _build(tmp_path, oauth_client)
    await _seed(store, "connected-mall", timedelta(hours=1))
    await _seed(store, "expiring-mall", timedelta(minutes=2))
    await _seed(store, "expired-mall", -timedelta(minutes=2))

    disconnected = await service.get_status("missing-mall")
    assert disconnected.status == "disconnected"
    assert disconnected.has_token is False

    connected = await service.get_status("connected-mall")
    assert connected.status == "connected"
    assert connected.token_preview == "connecte..."
    assert "access-initial" not in connected.token_preview

    assert (await service.get_status("expiring-mall")).status == "expiring"
    assert (await service.get_status("expired-mall")).status == "expired"
    assert oauth_client.refresh_calls == []


@pytest.mark.asyncio
async def test_expiry_at_calendar_limit_is_replaced_on_authorization(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient(exchange_expires_at="0001-01-01T00:00:00Z")
    service, store = _build(tmp_path, oauth_client)

    before = datetime.now(timezone.utc)
    await service.complete_authorization("mall-a", "auth-code")

    record = await store.get_credential("cafe24", "mall-a")
    assert record.access_expires_at >= before + timedelta(seconds=7200)
    assert await service.get_valid_access_token("mall-a") == "mall-a-first-access"
    assert oauth_client.refresh_calls == []


@pytest.mark.asyncio
async def test_stored_expiry_at_datetime_min_still_refreshes(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, store = _build(tmp_path, oauth_client)
    await store.upsert_credential(
        "cafe24",
        "mall-a",
        "mall-a-access-initial",
        "mall-a-refresh-initial",
        datetime.min.replace(tzinfo=timezone.utc),
    )

    assert (await service.get_status("mall-a")).status == "expired"
    assert await service.get_valid_access_token("mall-a") == "mall-a-access-1"
    assert oauth_client.refresh_calls == [("mall-a", "mall-a-refresh-initial")]


@pytest.mark.asyncio
async def test_force_refresh_for_unknown_mall_creates_no_lock(tmp_path: Path) -> None:
    oauth_client = DummyOAuthClient()
    service, _ = _build(tmp_path, oauth_client)

    for mall_id in ("ghost-1", "ghost-2"):
        with pytest.raises(NotAuthorizedError):
            await service.force_refresh(mall_id)

    assert service._refresh_locks == {}
    assert oauth_client.refresh_calls == []
