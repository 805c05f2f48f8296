"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_cafe24_api_client,
    get_cafe24_oauth_client,
    get_credential_store,
    get_oauth_state_encoder,
    get_shipment_log_store,
    get_shipment_sync_service,
    get_token_cipher_service,
    get_token_service,
)
from .config import SettingsDependency, get_app_settings, verify_partner_api_key

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_cafe24_api_client",
    "get_cafe24_oauth_client",
    "get_credential_store",
    "get_oauth_state_encoder",
    "get_shipment_log_store",
    "get_shipment_sync_service",
    "get_token_cipher_service",
    "get_token_service",
    "verify_partner_api_key",
]
