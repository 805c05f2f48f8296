"""Pytest configuration shared across the suite."""

import pytest

from shipbridge.core.config import Cafe24Settings


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def cafe24_settings() -> Cafe24Settings:
    """Cafe24 settings pointing at the default per-mall API host."""
    return Cafe24Settings(
        CAFE24_CLIENT_ID="client-id",
        CAFE24_CLIENT_SECRET="client-secret",
        CAFE24_REDIRECT_URI="https://bridge.example.com/api/oauth/callback",
        CAFE24_API_BASE_URL_TEMPLATE="https://{mall_id}.cafe24api.com/api/v2",
        CAFE24_SCOPES="mall.read_order,mall.write_order",
    )
