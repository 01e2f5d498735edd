try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from crm_bridge.clients.crm_oauth import CRMOAuthClient, OAuthStateEncoder
from crm_bridge.core.config import OAuthSettings
from crm_bridge.core.errors import (
    InvalidOAuthStateError,
    TokenExchangeFailedError,
    TokenRefreshFailedError,
    TokenResponseIncompleteError,
)


def _oauth_settings() -> OAuthSettings:
    return OAuthSettings(
        CLIENT_ID="client-123",
        CLIENT_SECRET="shh",
        REDIRECT_URI="https://broker.example/api/auth/callback",
        SCOPES="crm.objects.contacts.read oauth",
        TOKEN_URL="https://crm.example/oauth/v1/token",
        AUTHORIZE_URL="https://crm.example/oauth/authorize",
    )


def _client(handler) -> tuple[CRMOAuthClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = CRMOAuthClient(_oauth_settings(), transport=httpx.MockTransport(recording_handler))
    return client, requests


def test_build_authorization_url_includes_expected_params() -> None:
    client = CRMOAuthClient(_oauth_settings())

    url = client.build_authorization_url(state="signed-state")

    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://crm.example/oauth/authorize"
    params = parse_qs(parsed.query)
    assert params["client_id"] == ["client-123"]
    assert params["redirect_uri"] == ["https://broker.example/api/auth/callback"]
    assert params["scope"] == ["crm.objects.contacts.read oauth"]
    assert params["state"] == ["signed-state"]


@pytest.mark.asyncio
async def test_exchange_authorization_code_posts_form_fields() -> None:
    client, requests = _client(
        lambda request: httpx.Response(
            200, json={"access_token": "A1", "refresh_token": "R1", "expires_in": 1800}
        )
    )

    grant = await client.exchange_authorization_code("auth-code")

    assert grant.access_token == "A1"
    assert grant.refresh_token == "R1"
    assert grant.expires_in == 1800

    (request,) = requests
    assert str(request.url) == "https://crm.example/oauth/v1/token"
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    form = parse_qs(request.content.decode())
    assert form == {
        "grant_type": ["authorization_code"],
        "client_id": ["client-123"],
        "client_secret": ["shh"],
        "redirect_uri": ["https://broker.example/api/auth/callback"],
        "code": ["auth-code"],
    }


@pytest.mark.asyncio
async def test_exchange_rejects_incomplete_response() -> None:
    client, _ = _client(
        lambda request: httpx.Response(200, json={"access_token": "A1", "expires_in": 1800})
    )

    with pytest.raises(TokenResponseIncompleteError) as excinfo:
        await client.exchange_authorization_code("auth-code")
    assert excinfo.value.message == "refresh_token not found in response"


@pytest.mark.asyncio
async def test_exchange_surfaces_upstream_rejection() -> None:
    client, _ = _client(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))

    with pytest.raises(TokenExchangeFailedError):
        await client.exchange_authorization_code("stale-code")


@pytest.mark.asyncio
async def test_exchange_surfaces_transport_errors() -> None:
    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    client, _ = _client(boom)

    with pytest.raises(TokenExchangeFailedError):
        await client.exchange_authorization_code("auth-code")


@pytest.mark.asyncio
async def test_refresh_token_allows_missing_refresh_token() -> None:
    client, requests = _client(
        lambda request: httpx.Response(200, json={"access_token": "A2", "expires_in": "3600"})
    )

    grant = await client.refresh_token("R1")

    assert grant.access_token == "A2"
    assert grant.refresh_token is None
    assert grant.expires_in == 3600
    form = parse_qs(requests[0].content.decode())
    assert form["grant_type"] == ["refresh_token"]
    assert form["refresh_token"] == ["R1"]


@pytest.mark.asyncio
async def test_refresh_token_surfaces_upstream_rejection() -> None:
    client, _ = _client(lambda request: httpx.Response(401, json={"error": "revoked"}))

    with pytest.raises(TokenRefreshFailedError):
        await client.refresh_token("R1")


def test_state_encoder_roundtrip_and_tamper_detection() -> None:
    encoder = OAuthStateEncoder("state-secret")
    token = encoder.encode({"username": "alice", "nonce": "n1"})

    assert encoder.decode(token) == {"username": "alice", "nonce": "n1"}

    with pytest.raises(InvalidOAuthStateError):
        OAuthStateEncoder("other-secret").decode(token)

    with pytest.raises(InvalidOAuthStateError):
        encoder.decode("c2hvcnQ=")
