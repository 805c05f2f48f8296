"""Forward logistics shipment updates to Cafe24 and record the outcome."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, TYPE_CHECKING

from shipbridge.clients.cafe24_api import UpstreamCallError
from shipbridge.schemas.shipment import (
    LogiviewWebhookPayload,
    ShipmentLog,
    ShipmentSyncResult,
)

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from shipbridge.clients.cafe24_api import Cafe24ApiClient
    from shipbridge.clients.shipment_log_store import ShipmentLogStore

logger = logging.getLogger(__name__)


class ShipmentSyncService:
    """Create (or, when Cafe24 reports a conflict, update) shipments for a mall."""

    def __init__(self, api_client: "Cafe24ApiClient", log_store: "ShipmentLogStore") -> None:
        self._api = api_client
        self._logs = log_store

    async def process_webhook(
        self, *, mall_id: str, payload: LogiviewWebhookPayload
    ) -> ShipmentSyncResult:
        raw_payload = payload.model_dump(mode="json", exclude_none=True)
        try:
            response, action = await self._push(mall_id, payload)
        except Exception as exc:
            await self._record_failure(mall_id, payload, raw_payload, exc)
            raise

        await self._logs.save_log(
            ShipmentLog(
                mall_id=mall_id,
                order_id=payload.order_id,
                tracking_no=payload.tracking_no,
                shipping_company_code=payload.shipping_company_code,
                status=payload.status,
                payload=raw_payload,
                cafe24_response=response,
                created_at=datetime.now(timezone.utc),
            )
        )
        return ShipmentSyncResult(
            mall_id=mall_id,
            order_id=payload.order_id,
            tracking_no=payload.tracking_no,
            action=action,
            cafe24_response=response,
        )

    async def _push(
        self, mall_id: str, payload: LogiviewWebhookPayload
    ) -> tuple[Dict[str, Any], str]:
        try:
            response = await self._api.create_shipment(
                mall_id,
                order_id=payload.order_id,
                tracking_no=payload.tracking_no,
                shipping_company_code=payload.shipping_company_code,
                status=payload.status,
                items=[item.model_dump(exclude_none=True) for item in payload.items or []],
            )
            logger.info("Created shipment for order %s (mall %s).", payload.order_id, mall_id)
            return response, "created"
        except UpstreamCallError as exc:
            if exc.status_code != HTTPStatus.CONFLICT:
                raise
            logger.info(
                "Shipment for order %s already exists (mall %s); updating.",
                payload.order_id,
                mall_id,
            )

        response = await self._api.update_shipment(
            mall_id,
            order_id=payload.order_id,
            tracking_no=payload.tracking_no,
            shipping_company_code=payload.shipping_company_code,
            status=payload.status,
        )
        return response, "updated"

    async def _record_failure(
        self,
        mall_id: str,
        payload: LogiviewWebhookPayload,
        raw_payload: Dict[str, Any],
        exc: Exception,
    ) -> None:
        logger.error(
            "Failed to forward shipment for order %s (mall %s): %s",
            payload.order_id,
            mall_id,
            exc,
        )
        try:
            await self._logs.save_log(
                ShipmentLog(
                    mall_id=mall_id,
                    order_id=payload.order_id,
                    tracking_no=payload.tracking_no,
                    shipping_company_code=payload.shipping_company_code,
                    status="error",
                    payload=raw_payload,
                    cafe24_response={"error": str(exc)},
                    created_at=datetime.now(timezone.utc),
                )
            )
        except sqlite3.Error:
            # The forwarding error is re-raised by the caller either way.
            logger.exception("Failed to record shipment error log.")


__all__ = ["ShipmentSyncService"]
