"""Public schema exports."""

from .auth import MALL_ID_REGEX, OAuthRefreshRequest, TokenRefreshResult, TokenStatus
from .shipment import (
    LogiviewWebhookPayload,
    ShipmentItem,
    ShipmentLog,
    ShipmentSyncResult,
)

__all__ = [
    "MALL_ID_REGEX",
    "LogiviewWebhookPayload",
    "OAuthRefreshRequest",
    "ShipmentItem",
    "ShipmentLog",
    "ShipmentSyncResult",
    "TokenRefreshResult",
    "TokenStatus",
]
