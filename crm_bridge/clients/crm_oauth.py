"""
CRM OAuth utilities.

These helpers build the consent URL, sign the OAuth ``state`` value, and talk
to the CRM token endpoint for authorization-code and refresh-token grants.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from crm_bridge.core.config import OAuthSettings
from crm_bridge.core.errors import (
    InvalidOAuthStateError,
    TokenExchangeFailedError,
    TokenRefreshFailedError,
    TokenResponseIncompleteError,
)

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidOAuthStateError("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidOAuthStateError("Invalid OAuth state signature.")
        return json.loads(serialized)


@dataclass(frozen=True)
class TokenGrant:
    """Fields returned by the token endpoint; ``refresh_token`` may be omitted on refresh."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int


class CRMOAuthClient:
    """Build CRM authorization URLs and run token grants."""

    def __init__(
        self,
        oauth_settings: OAuthSettings,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._oauth = oauth_settings
        self._timeout = timeout
        self._transport = transport

    def build_authorization_url(self, state: str) -> str:
        """Construct the CRM OAuth consent URL."""
        params = {
            "client_id": self._oauth.client_id,
            "redirect_uri": str(self._oauth.redirect_uri),
            "scope": self._oauth.scopes,
            "state": state,
        }
        return f"{self._oauth.authorize_url}?{urlencode(params)}"

    async def _post_grant(self, payload: Dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await client.post(str(self._oauth.token_url), data=payload)

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code; all three token fields are required."""
        payload = {
            "grant_type": "authorization_code",
            "client_id": self._oauth.client_id,
            "client_secret": self._oauth.client_secret,
            "redirect_uri": str(self._oauth.redirect_uri),
            "code": code,
        }

        try:
            response = await self._post_grant(payload)
        except httpx.HTTPError as exc:
            raise TokenExchangeFailedError(f"Token endpoint unreachable: {exc}") from exc

        if not response.is_success:
            logger.warning("Authorization code exchange rejected with status %s", response.status_code)
            raise TokenExchangeFailedError()

        token_payload = _json_body(response)
        for field in ("access_token", "refresh_token", "expires_in"):
            if not token_payload.get(field):
                raise TokenResponseIncompleteError(f"{field} not found in response")

        return TokenGrant(
            access_token=token_payload["access_token"],
            refresh_token=token_payload["refresh_token"],
            expires_in=_as_seconds(token_payload["expires_in"]),
        )

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token using a stored refresh token."""
        payload = {
            "grant_type": "refresh_token",
            "client_id": self._oauth.client_id,
            "client_secret": self._oauth.client_secret,
            "redirect_uri": str(self._oauth.redirect_uri),
            "refresh_token": refresh_token,
        }

        try:
            response = await self._post_grant(payload)
        except httpx.HTTPError as exc:
            raise TokenRefreshFailedError(f"Token endpoint unreachable: {exc}") from exc

        if not response.is_success:
            logger.warning("Token refresh rejected with status %s", response.status_code)
            raise TokenRefreshFailedError()

        token_payload = _json_body(response)
        for field in ("access_token", "expires_in"):
            if not token_payload.get(field):
                raise TokenResponseIncompleteError(f"{field} not found in refresh response")

        return TokenGrant(
            access_token=token_payload["access_token"],
            refresh_token=token_payload.get("refresh_token") or None,
            expires_in=_as_seconds(token_payload["expires_in"]),
        )


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise TokenResponseIncompleteError("Token endpoint returned a non-JSON body.") from exc
    if not isinstance(body, dict):
        raise TokenResponseIncompleteError("Token endpoint returned an unexpected body.")
    return body


def _as_seconds(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise TokenResponseIncompleteError("expires_in is not an integer.") from exc


__all__ = [
    "CRMOAuthClient",
    "OAuthStateEncoder",
    "TokenGrant",
]
