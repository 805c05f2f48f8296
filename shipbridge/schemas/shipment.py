"""
Pydantic models for logistics webhooks and shipment logs.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class ShipmentItem(BaseModel):
    """A line item covered by a shipment."""

    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(..., gt=0)


class LogiviewWebhookPayload(BaseModel):
    """Shipment status update pushed by the logistics partner."""

    order_id: str = Field(..., min_length=1, description="Cafe24 order identifier.")
    tracking_no: str = Field(..., min_length=1)
    shipping_company_code: str = Field(
        ..., min_length=1, description="Carrier code as registered in Cafe24."
    )
    status: Literal["shipping", "delivered", "returned"]
    items: Optional[List[ShipmentItem]] = None
    metadata: Optional[Dict[str, Any]] = None


class ShipmentLog(BaseModel):
    """Outcome of forwarding one shipment update to Cafe24."""

    mall_id: str
    order_id: str
    tracking_no: str
    shipping_company_code: str
    status: str = Field(
        ..., description="Shipment status, or 'error' when forwarding failed."
    )
    payload: Optional[Dict[str, Any]] = None
    cafe24_response: Optional[Any] = None
    created_at: datetime
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class ShipmentSyncResult(BaseModel):
    mall_id: str
    order_id: str
    tracking_no: str
    action: Literal["created", "updated"]
    cafe24_response: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "LogiviewWebhookPayload",
    "ShipmentItem",
    "ShipmentLog",
    "ShipmentSyncResult",
]
