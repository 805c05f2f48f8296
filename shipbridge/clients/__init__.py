"""Expose constructed client wrappers."""

from .cafe24_api import Cafe24ApiClient, Cafe24Request, UpstreamCallError
from .cafe24_auth import (
    Cafe24OAuthClient,
    ExchangeError,
    InvalidStateError,
    OAuthStateEncoder,
    RefreshError,
    TokenEndpointError,
)
from .credential_store import CredentialStore
from .shipment_log_store import ShipmentLogStore

__all__ = [
    "Cafe24ApiClient",
    "Cafe24OAuthClient",
    "Cafe24Request",
    "CredentialStore",
    "ExchangeError",
    "InvalidStateError",
    "OAuthStateEncoder",
    "RefreshError",
    "ShipmentLogStore",
    "TokenEndpointError",
    "UpstreamCallError",
]
