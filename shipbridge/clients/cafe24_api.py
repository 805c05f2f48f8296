"""Cafe24 Admin API client wrapper."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, TYPE_CHECKING
from urllib.parse import quote

import httpx

from shipbridge.core.config import Cafe24Settings

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from shipbridge.services.tokens import Cafe24TokenService

logger = logging.getLogger(__name__)


class UpstreamCallError(Exception):
    """Raised when a Cafe24 resource call fails after token handling."""

    def __init__(
        self, message: str, *, status_code: Optional[int] = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class Cafe24Request:
    """A resource call relative to the mall's API root (e.g. ``/admin/orders``)."""

    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Optional[Any] = None
    headers: Optional[Dict[str, str]] = None


class Cafe24ApiClient:
    """Issue authenticated Cafe24 calls for a mall.

    A 401 on the first attempt forces one token refresh and one retry; any other
    failure, or a second 401, raises ``UpstreamCallError``.
    """

    def __init__(
        self,
        token_service: "Cafe24TokenService",
        cafe24_settings: Cafe24Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token_service = token_service
        self._cafe24 = cafe24_settings
        self._transport = transport

    async def call(self, mall_id: str, request: Cafe24Request) -> httpx.Response:
        token = await self._token_service.get_valid_access_token(mall_id)
        response = await self._send(mall_id, request, token)

        if response.status_code == httpx.codes.UNAUTHORIZED:
            logger.info(
                "Cafe24 rejected token for mall %s on %s %s; refreshing and retrying once.",
                mall_id,
                request.method,
                request.path,
            )
            token = await self._token_service.force_refresh(mall_id, stale_token=token)
            response = await self._send(mall_id, request, token)

        if not response.is_success:
            raise UpstreamCallError(
                f"Cafe24 {request.method} {request.path} for mall {mall_id} failed "
                f"with status {response.status_code}.",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    async def _send(
        self, mall_id: str, request: Cafe24Request, token: str
    ) -> httpx.Response:
        url = f"{self._cafe24.base_url_for(mall_id)}{request.path}"
        headers = {
            **(request.headers or {}),
            "X-Cafe24-Api-Version": self._cafe24.api_version,
            "Authorization": f"Bearer {token}",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._cafe24.http_timeout_seconds, transport=self._transport
            ) as client:
                return await client.request(
                    request.method,
                    url,
                    params=request.params,
                    json=request.json,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise UpstreamCallError(
                f"Cafe24 {request.method} {request.path} for mall {mall_id} failed: {exc}",
                body=str(exc),
            ) from exc

    async def _call_json(self, mall_id: str, request: Cafe24Request) -> Dict[str, Any]:
        response = await self.call(mall_id, request)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamCallError(
                f"Cafe24 {request.method} {request.path} returned a non-JSON body.",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    async def get_orders(
        self,
        mall_id: str,
        *,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """List orders for a mall."""
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        if status:
            params["status"] = status
        return await self._call_json(
            mall_id, Cafe24Request("GET", "/admin/orders", params=params)
        )

    async def get_order(self, mall_id: str, order_id: str) -> Dict[str, Any]:
        return await self._call_json(
            mall_id, Cafe24Request("GET", f"/admin/orders/{quote(order_id, safe='')}")
        )

    async def create_shipment(
        self,
        mall_id: str,
        *,
        order_id: str,
        tracking_no: str,
        shipping_company_code: str,
        status: str,
        items: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Register tracking details for an order."""
        body = {
            "shipment": {
                "tracking_no": tracking_no,
                "shipping_company_code": shipping_company_code,
                "status": status,
                "items": list(items or []),
            }
        }
        return await self._call_json(
            mall_id,
            Cafe24Request(
                "POST", f"/admin/orders/{quote(order_id, safe='')}/shipments", json=body
            ),
        )

    async def update_shipment(
        self,
        mall_id: str,
        *,
        order_id: str,
        tracking_no: str,
        shipping_company_code: str,
        status: str,
    ) -> Dict[str, Any]:
        """Overwrite tracking details already registered for an order."""
        body = {
            "shipment": {
                "tracking_no": tracking_no,
                "shipping_company_code": shipping_company_code,
                "status": status,
            }
        }
        return await self._call_json(
            mall_id,
            Cafe24Request(
                "PUT", f"/admin/orders/{quote(order_id, safe='')}/shipments", json=body
            ),
        )


__all__ = ["Cafe24ApiClient", "Cafe24Request", "UpstreamCallError"]
