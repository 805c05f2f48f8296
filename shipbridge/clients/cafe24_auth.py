"""
Cafe24 OAuth utilities.

These helpers build the per-mall consent URL and call the Cafe24 token endpoint
for the authorization-code and refresh-token grants.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any, Dict, Optional, Type
from urllib.parse import urlencode

import httpx

from shipbridge.core.config import Cafe24Settings
from shipbridge.models.oauth import MalformedResponseError, TokenResponse

logger = logging.getLogger(__name__)


class InvalidStateError(ValueError):
    """Raised when an install state value is forged, malformed or expired."""


@dataclass(frozen=True)
class InstallState:
    """Verified contents of an install state token."""

    mall_id: str
    nonce: str
    issued_at: datetime


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class OAuthStateEncoder:
    """Sign the ``state`` that binds a Cafe24 consent round-trip to one mall.

    Tokens are ``<payload>.<signature>`` in unpadded urlsafe base64, where the
    payload is JSON carrying ``mall_id``, ``nonce`` and ``issued_at``. ``decode``
    rejects tokens older than ``ttl_seconds``.
    """

    def __init__(self, secret_key: str, *, ttl_seconds: int = 600) -> None:
        self._secret_key = secret_key.encode("utf-8")
        self._ttl = timedelta(seconds=ttl_seconds)

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._secret_key, payload, sha256).digest()

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return f"{_b64encode(serialized)}.{_b64encode(self._sign(serialized))}"

    def issue(self, mall_id: str, *, now: Optional[datetime] = None) -> str:
        """Return a fresh state token for a mall's install request."""
        issued_at = now or datetime.now(timezone.utc)
        return self.encode(
            {
                "mall_id": mall_id,
                "nonce": uuid.uuid4().hex,
                "issued_at": issued_at.isoformat(),
            }
        )

    def decode(self, token: str, *, now: Optional[datetime] = None) -> InstallState:
        payload_part, sep, signature_part = token.partition(".")
        if not sep or not payload_part or not signature_part:
            raise InvalidStateError("Malformed OAuth state.")
        try:
            serialized = _b64decode(payload_part)
            signature = _b64decode(signature_part)
        except (binascii.Error, ValueError) as exc:
            raise InvalidStateError("Malformed OAuth state.") from exc

        if not hmac.compare_digest(signature, self._sign(serialized)):
            raise InvalidStateError("Invalid OAuth state signature.")

        try:
            data = json.loads(serialized)
        except ValueError as exc:
            raise InvalidStateError("Malformed OAuth state.") from exc
        if not isinstance(data, dict):
            raise InvalidStateError("Malformed OAuth state.")

        mall_id = data.get("mall_id")
        if not isinstance(mall_id, str) or not mall_id:
            raise InvalidStateError("Missing mall identifier in state token.")

        issued_at_raw = data.get("issued_at")
        if not isinstance(issued_at_raw, str):
            raise InvalidStateError("Missing issued_at in state token.")
        try:
            issued_at = datetime.fromisoformat(issued_at_raw)
        except ValueError as exc:
            raise InvalidStateError("Invalid issued_at in state token.") from exc
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)

        if (now or datetime.now(timezone.utc)) - issued_at > self._ttl:
            raise InvalidStateError("OAuth state token has expired.")

        return InstallState(
            mall_id=mall_id, nonce=str(data.get("nonce") or ""), issued_at=issued_at
        )


class TokenEndpointError(Exception):
    """Raised when the Cafe24 token endpoint does not return a success status."""

    def __init__(
        self, message: str, *, status_code: Optional[int] = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ExchangeError(TokenEndpointError):
    """Authorization-code grant failed."""


class RefreshError(TokenEndpointError):
    """Refresh-token grant failed."""


class Cafe24OAuthClient:
    """Build Cafe24 authorization URLs and call the per-mall token endpoint.

    Client credentials go in an HTTP Basic header; the grant itself is sent as
    a form-encoded body.
    """

    AUTHORIZE_PATH = "/oauth/authorize"
    TOKEN_PATH = "/oauth/token"

    def __init__(
        self,
        cafe24_settings: Cafe24Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._cafe24 = cafe24_settings
        self._transport = transport

    def build_authorization_url(self, mall_id: str, state: str) -> str:
        """Construct the consent URL for a mall."""
        params = {
            "response_type": "code",
            "client_id": self._cafe24.client_id,
            "redirect_uri": str(self._cafe24.redirect_uri),
            "state": state,
            "scope": ",".join(self._cafe24.scopes),
        }
        base_url = self._cafe24.base_url_for(mall_id)
        return f"{base_url}{self.AUTHORIZE_PATH}?{urlencode(params)}"

    async def exchange_authorization_code(
        self, mall_id: str, code: str, redirect_uri: Optional[str] = None
    ) -> TokenResponse:
        """Exchange an authorization code for a mall's first token pair."""
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or str(self._cafe24.redirect_uri),
        }
        tokens = await self._request_token(mall_id, form, ExchangeError)
        logger.info("Exchanged authorization code for mall %s.", mall_id)
        return tokens

    async def refresh_access_token(self, mall_id: str, refresh_token: str) -> TokenResponse:
        """Mint a new token pair from a stored refresh token."""
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        tokens = await self._request_token(mall_id, form, RefreshError)
        logger.info("Refreshed access token for mall %s.", mall_id)
        return tokens

    async def _request_token(
        self,
        mall_id: str,
        form: Dict[str, str],
        error_cls: Type[TokenEndpointError],
    ) -> TokenResponse:
        url = f"{self._cafe24.base_url_for(mall_id)}{self.TOKEN_PATH}"
        grant = form["grant_type"]

        try:
            async with httpx.AsyncClient(
                timeout=self._cafe24.http_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    url,
                    data=form,
                    auth=(self._cafe24.client_id, self._cafe24.client_secret),
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            logger.warning("Token request (%s) for mall %s failed: %s", grant, mall_id, exc)
            raise error_cls(
                f"Token request ({grant}) for mall {mall_id} failed: {exc}",
                body=str(exc),
            ) from exc

        if not response.is_success:
            logger.warning(
                "Token endpoint returned %s for mall %s (%s).",
                response.status_code,
                mall_id,
                grant,
            )
            raise error_cls(
                f"Token request ({grant}) for mall {mall_id} failed with status "
                f"{response.status_code}.",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"Token endpoint returned a non-JSON body for mall {mall_id}."
            ) from exc
        return TokenResponse.from_payload(payload)


__all__ = [
    "Cafe24OAuthClient",
    "ExchangeError",
    "InstallState",
    "InvalidStateError",
    "MalformedResponseError",
    "OAuthStateEncoder",
    "RefreshError",
    "TokenEndpointError",
]
