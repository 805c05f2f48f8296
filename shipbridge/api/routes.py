"""
FastAPI routes for the Cafe24 logistics bridge.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any, Dict, List, Literal, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from shipbridge.clients.cafe24_api import UpstreamCallError
from shipbridge.clients.cafe24_auth import (
    ExchangeError,
    InvalidStateError,
    TokenEndpointError,
)
from shipbridge.dependencies import (
    get_app_settings,
    get_cafe24_api_client,
    get_cafe24_oauth_client,
    get_oauth_state_encoder,
    get_shipment_log_store,
    get_shipment_sync_service,
    get_token_service,
    verify_partner_api_key,
)
from shipbridge.models.oauth import MalformedResponseError
from shipbridge.schemas import (
    MALL_ID_REGEX,
    LogiviewWebhookPayload,
    OAuthRefreshRequest,
    ShipmentSyncResult,
    TokenRefreshResult,
    TokenStatus,
)
from shipbridge.services.tokens import NotAuthorizedError
from shipbridge.utils.tracking import build_tracking_url, normalize_shipping_company

router = APIRouter()
logger = logging.getLogger(__name__)

_UPSTREAM_ERRORS = (
    NotAuthorizedError,
    TokenEndpointError,
    MalformedResponseError,
    UpstreamCallError,
)

OrderSort = Literal["date_asc", "date_desc", "order_id_asc", "order_id_desc"]

STATS_STATUSES = ("shipping", "delivered", "returned", "cancelled")


def _to_http_exception(exc: Exception) -> HTTPException:
    """Translate token and upstream failures into user-facing responses."""
    if isinstance(exc, NotAuthorizedError):
        return HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail=f"Mall {exc.mall_id} is not connected; please (re)authorize.",
        )
    if isinstance(exc, MalformedResponseError):
        return HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail="Cafe24 returned a malformed token response.",
        )
    if isinstance(exc, TokenEndpointError):
        return HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Cafe24 token refresh failed; try again later.",
        )
    if isinstance(exc, UpstreamCallError):
        return HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail={
                "message": "Cafe24 API call failed.",
                "upstream_status": exc.status_code,
            },
        )
    return HTTPException(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail="Internal server error."
    )


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _sort_orders(orders: List[Dict[str, Any]], sort: str) -> List[Dict[str, Any]]:
    field = "order_date" if sort.startswith("date") else "order_id"
    return sorted(
        orders,
        key=lambda order: str(order.get(field) or ""),
        reverse=sort.endswith("_desc"),
    )


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/oauth/install")
async def start_cafe24_install(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_cafe24_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    mall_id: str = Query(..., pattern=MALL_ID_REGEX, description="Cafe24 mall identifier."),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Cafe24 consent screen.",
    ),
) -> Response:
    """
    Kick off the install flow by signing a state token and building the consent URL.
    """
    state = state_encoder.issue(mall_id)
    authorization_url = oauth_client.build_authorization_url(mall_id, state)
    logger.info("Starting OAuth install for mall %s.", mall_id)

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return JSONResponse(content={"authorization_url": authorization_url, "state": state})


@router.get("/oauth/callback")
async def handle_cafe24_oauth_callback(
    request: Request,
    token_service: Annotated[Any, Depends(get_token_service)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by Cafe24."),
    mall_id: Optional[str] = Query(default=None, description="Mall echoed by Cafe24."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Complete the code exchange and persist the mall's credential."""
    try:
        state_mall_id = state_encoder.decode(state).mall_id
    except InvalidStateError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    if mall_id and mall_id != state_mall_id:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Mall identifier does not match the OAuth state.",
        )

    try:
        credential = await token_service.complete_authorization(state_mall_id, code)
    except ExchangeError as exc:
        logger.warning("Code exchange failed for mall %s: %s", state_mall_id, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc
    except MalformedResponseError as exc:
        raise _to_http_exception(exc) from exc

    result = {
        "status": "connected",
        "mall_id": state_mall_id,
        "expires_at": credential.access_expires_at.isoformat(),
    }

    frontend = settings.frontend_base_url
    if frontend and (redirect or _wants_html(request)):
        query = urlencode({"installed": 1, "mall_id": state_mall_id})
        target = f"{str(frontend).rstrip('/')}/settings?{query}"
        return RedirectResponse(url=target, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return JSONResponse(content=result)


@router.get("/oauth/status", response_model=TokenStatus)
async def get_token_status(
    token_service: Annotated[Any, Depends(get_token_service)],
    mall_id: str = Query(..., pattern=MALL_ID_REGEX),
) -> TokenStatus:
    """Report whether a mall is connected and when its access token expires."""
    return await token_service.get_status(mall_id)


@router.post("/oauth/refresh", response_model=TokenRefreshResult)
async def refresh_token(
    payload: OAuthRefreshRequest,
    token_service: Annotated[Any, Depends(get_token_service)],
) -> TokenRefreshResult:
    """Force a refresh of the mall's access token."""
    try:
        await token_service.force_refresh(payload.mall_id)
    except _UPSTREAM_ERRORS as exc:
        raise _to_http_exception(exc) from exc

    token_status = await token_service.get_status(payload.mall_id)
    return TokenRefreshResult(
        mall_id=payload.mall_id,
        token_preview=token_status.token_preview or "",
        expires_at=token_status.expires_at,
    )


@router.get("/orders")
async def list_orders(
    api_client: Annotated[Any, Depends(get_cafe24_api_client)],
    mall_id: str = Query(..., pattern=MALL_ID_REGEX),
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    sort: Optional[OrderSort] = Query(default=None),
) -> dict:
    """List a mall's orders from Cafe24."""
    try:
        payload = await api_client.get_orders(
            mall_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            limit=limit,
            offset=offset,
        )
    except _UPSTREAM_ERRORS as exc:
        raise _to_http_exception(exc) from exc

    orders = list(payload.get("orders") or [])
    if sort:
        orders = _sort_orders(orders, sort)

    return {
        "data": orders,
        "pagination": {
            "total": payload.get("total_count") or len(orders),
            "limit": limit,
            "offset": offset,
            "has_more": len(orders) == limit,
        },
    }


@router.get("/orders/stats/summary")
async def order_stats_summary(
    api_client: Annotated[Any, Depends(get_cafe24_api_client)],
    mall_id: str = Query(..., pattern=MALL_ID_REGEX),
    start_date: Optional[str] = Query(default=None),
    end_date: Optional[str] = Query(default=None),
) -> dict:
    """Count a mall's orders per shipping status.

    A status whose count cannot be fetched reports 0; token failures still
    fail the whole request.
    """
    stats: Dict[str, int] = {}
    for order_status in STATS_STATUSES:
        try:
            payload = await api_client.get_orders(
                mall_id,
                start_date=start_date,
                end_date=end_date,
                status=order_status,
                limit=1,
            )
        except UpstreamCallError as exc:
            logger.warning(
                "Failed to count %s orders for mall %s: %s", order_status, mall_id, exc
            )
            stats[order_status] = 0
            continue
        except _UPSTREAM_ERRORS as exc:
            raise _to_http_exception(exc) from exc
        stats[order_status] = int(payload.get("total_count") or 0)

    return {
        "data": {
            "period": {"start_date": start_date, "end_date": end_date},
            "stats": stats,
        }
    }


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    api_client: Annotated[Any, Depends(get_cafe24_api_client)],
    mall_id: str = Query(..., pattern=MALL_ID_REGEX),
) -> dict:
    """Fetch one order from Cafe24."""
    try:
        payload = await api_client.get_order(mall_id, order_id)
    except _UPSTREAM_ERRORS as exc:
        raise _to_http_exception(exc) from exc
    return {"data": payload.get("order")}


@router.get("/orders/{order_id}/shipments")
async def list_order_shipments(
    order_id: str,
    log_store: Annotated[Any, Depends(get_shipment_log_store)],
    mall_id: Optional[str] = Query(default=None, pattern=MALL_ID_REGEX),
) -> dict:
    """Return the shipment updates recorded for an order, newest first."""
    logs = await log_store.list_logs(mall_id=mall_id, order_id=order_id)
    data = []
    for log in logs:
        log.carrier = normalize_shipping_company(log.shipping_company_code)
        log.tracking_url = build_tracking_url(log.shipping_company_code, log.tracking_no)
        data.append(log.model_dump(mode="json"))
    return {"data": data}


@router.post(
    "/webhook/logiview",
    response_model=ShipmentSyncResult,
    dependencies=[Depends(verify_partner_api_key)],
)
async def receive_logiview_webhook(
    payload: LogiviewWebhookPayload,
    sync_service: Annotated[Any, Depends(get_shipment_sync_service)],
    mall_id: str = Query(..., pattern=MALL_ID_REGEX, description="Mall owning the order."),
) -> ShipmentSyncResult:
    """Forward a logistics status update to the mall's Cafe24 order."""
    logger.info(
        "Received logiview webhook for order %s (mall %s, status %s).",
        payload.order_id,
        mall_id,
        payload.status,
    )
    try:
        return await sync_service.process_webhook(mall_id=mall_id, payload=payload)
    except _UPSTREAM_ERRORS as exc:
        raise _to_http_exception(exc) from exc


@router.post(
    "/webhook/test",
    response_model=ShipmentSyncResult,
    dependencies=[Depends(verify_partner_api_key)],
)
async def send_test_webhook(
    sync_service: Annotated[Any, Depends(get_shipment_sync_service)],
    mall_id: str = Query(..., pattern=MALL_ID_REGEX, description="Mall to send the test to."),
) -> ShipmentSyncResult:
    """Push a canned shipment through the same path as a partner webhook."""
    payload = LogiviewWebhookPayload(
        order_id=f"TEST-{int(datetime.now(timezone.utc).timestamp() * 1000)}",
        tracking_no="123456789012",
        shipping_company_code="kr.cjlogistics",
        status="shipping",
        items=[{"product_id": "test-product", "quantity": 1}],
    )
    logger.info("Sending test shipment %s for mall %s.", payload.order_id, mall_id)
    try:
        return await sync_service.process_webhook(mall_id=mall_id, payload=payload)
    except _UPSTREAM_ERRORS as exc:
        raise _to_http_exception(exc) from exc


@router.get("/webhook/status")
async def webhook_status() -> dict:
    """Report that the webhook endpoints are mounted."""
    return {
        "status": "active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoints": {
            "logiview": "/api/webhook/logiview",
            "test": "/api/webhook/test",
        },
    }


__all__ = ["router"]
