"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from shipbridge.clients import (
    Cafe24ApiClient,
    Cafe24OAuthClient,
    CredentialStore,
    OAuthStateEncoder,
    ShipmentLogStore,
)
from shipbridge.core.config import get_settings
from shipbridge.services import (
    Cafe24TokenService,
    ShipmentSyncService,
    TokenCipherService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the Cafe24 client secret."""
    settings = _settings()
    return OAuthStateEncoder(
        secret_key=settings.cafe24.client_secret,
        ttl_seconds=settings.oauth.state_ttl_seconds,
    )


@lru_cache()
def get_cafe24_oauth_client() -> Cafe24OAuthClient:
    """Create the process-wide Cafe24 token endpoint client."""
    return Cafe24OAuthClient(_settings().cafe24)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.cafe24.client_secret
    return TokenCipherService(
        secret=secret, previous_secrets=settings.security.previous_secrets
    )


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the shared credential store."""
    return CredentialStore(_settings().database_path, get_token_cipher_service())


@lru_cache()
def get_shipment_log_store() -> ShipmentLogStore:
    return ShipmentLogStore(_settings().database_path)


@lru_cache()
def get_token_service() -> Cafe24TokenService:
    """Provide the per-mall token lifecycle manager."""
    settings = _settings()
    return Cafe24TokenService(
        store=get_credential_store(),
        oauth_client=get_cafe24_oauth_client(),
        naive_tz=settings.cafe24.naive_timezone(),
    )


@lru_cache()
def get_cafe24_api_client() -> Cafe24ApiClient:
    """Provide the authenticated Cafe24 Admin API client."""
    return Cafe24ApiClient(get_token_service(), _settings().cafe24)


def get_shipment_sync_service() -> ShipmentSyncService:
    """Build a shipment sync service using configured clients."""
    return ShipmentSyncService(
        api_client=get_cafe24_api_client(),
        log_store=get_shipment_log_store(),
    )


__all__ = [
    "get_cafe24_api_client",
    "get_cafe24_oauth_client",
    "get_credential_store",
    "get_oauth_state_encoder",
    "get_shipment_log_store",
    "get_shipment_sync_service",
    "get_token_cipher_service",
    "get_token_service",
]
