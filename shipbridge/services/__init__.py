"""Service layer exports."""

from .expiry import normalize_expiry
from .shipments import ShipmentSyncService
from .token_cipher import TokenCipherService
from .tokens import Cafe24TokenService, NotAuthorizedError

__all__ = [
    "Cafe24TokenService",
    "NotAuthorizedError",
    "ShipmentSyncService",
    "TokenCipherService",
    "normalize_expiry",
]
