from __future__ import annotations

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import hashlib
import json

import httpx
import pytest

from crm_bridge.clients import CRMApiClient, SQLiteStore, WorkflowWebhookClient
from crm_bridge.core.errors import (
    CRMRequestError,
    DownstreamDeliveryError,
    MalformedWebhookPayloadError,
    MissingSignatureError,
    UnknownPortalError,
    UnsupportedSignatureVersionError,
)
from crm_bridge.models.users import SessionUser
from crm_bridge.services.user_store import SessionUserStore
from crm_bridge.services.webhooks import (
    WebhookSignatureVerifier,
    WorkflowDispatcher,
    compute_signature,
)

SECRET = "client-secret"
BODY = b'[{"objectId":"42","portalId":"99"}]'


class StubTokenService:
    def __init__(self, token: str = "crm-access") -> None:
        self.token = token
        self.calls: list[str] = []

    async def get_valid_access_token(self, username: str) -> str:
        self.calls.append(username)
        return self.token


def _headers(signature: str, version: str | None = "v1") -> dict[str, str]:
    headers = {"X-HubSpot-Signature": signature}
    if version is not None:
        headers["X-HubSpot-Signature-Version"] = version
    return headers


def test_compute_signature_hashes_secret_then_body() -> None:
    expected = hashlib.sha256(SECRET.encode() + BODY).hexdigest()

    assert compute_signature(SECRET, BODY) == expected
    assert compute_signature(f"  {SECRET}\n", BODY) == expected


def test_valid_signature_is_accepted() -> None:
    verifier = WebhookSignatureVerifier(SECRET)

    assert verifier.validate_signature(_headers(compute_signature(SECRET, BODY)), BODY) is True


def test_one_byte_change_fails_verification() -> None:
    verifier = WebhookSignatureVerifier(SECRET)
    signature = compute_signature(SECRET, BODY)
    tampered = BODY.replace(b"42", b"43")

    assert verifier.validate_signature(_headers(signature), tampered) is False


def test_reformatted_body_fails_verification() -> None:
    verifier = WebhookSignatureVerifier(SECRET)
    signature = compute_signature(SECRET, BODY)
    reserialized = json.dumps(json.loads(BODY)).encode()

    assert reserialized != BODY
    assert verifier.validate_signature(_headers(signature), reserialized) is False


def test_short_headers_are_accepted() -> None:
    verifier = WebhookSignatureVerifier(SECRET)
    headers = {"x-signature-version": "v1", "x-signature": compute_signature(SECRET, BODY)}

    assert verifier.validate_signature(headers, BODY) is True


def test_version_is_checked_before_signature() -> None:
    verifier = WebhookSignatureVerifier(SECRET)
    good_signature = compute_signature(SECRET, BODY)

    with pytest.raises(UnsupportedSignatureVersionError):
        verifier.validate_signature(_headers(good_signature, version="v2"), BODY)
    with pytest.raises(MissingSignatureError):
        verifier.validate_signature(_headers(good_signature, version=None), BODY)
    with pytest.raises(MissingSignatureError):
        verifier.validate_signature({"X-HubSpot-Signature-Version": "v1"}, BODY)


@pytest.mark.parametrize("raw_body", [b"not json", b"{}", b"[]"])
def test_parse_events_rejects_malformed_bodies(raw_body: bytes) -> None:
    with pytest.raises(MalformedWebhookPayloadError):
        WebhookSignatureVerifier.parse_events(raw_body)


def _dispatcher(
    record_store: SQLiteStore,
    crm_handler,
    downstream_handler,
    token_service: StubTokenService | None = None,
) -> WorkflowDispatcher:
    users = SessionUserStore(record_store)
    users.insert(SessionUser(username="alice", password_hash="x", user_account_id="99"))
    return WorkflowDispatcher(
        user_store=users,
        token_service=token_service or StubTokenService(),
        crm_client=CRMApiClient(
            "https://crm.example/", transport=httpx.MockTransport(crm_handler)
        ),
        webhook_client=WorkflowWebhookClient(
            "https://hooks.example/workflow", transport=httpx.MockTransport(downstream_handler)
        ),
        forward_fields={"candidate_name": "Candidate_name", "candidate_number": "Candidate_number"},
    )


@pytest.mark.asyncio
async def test_dispatch_forwards_contact_fields(record_store: SQLiteStore) -> None:
    crm_requests: list[httpx.Request] = []
    delivered: list[dict] = []

    def crm_handler(request: httpx.Request) -> httpx.Response:
        crm_requests.append(request)
        return httpx.Response(
            200,
            json={
                "id": "42",
                "properties": {
                    "email": "jane@example.com",
                    "candidate_name": "Jane",
                    "candidate_number": "C-7",
                },
            },
        )

    def downstream_handler(request: httpx.Request) -> httpx.Response:
        delivered.append(json.loads(request.content))
        return httpx.Response(200)

    tokens = StubTokenService()
    dispatcher = _dispatcher(record_store, crm_handler, downstream_handler, tokens)

    result = await dispatcher.dispatch(WebhookSignatureVerifier.parse_events(BODY))

    assert result == {"objectId": "42"}
    assert tokens.calls == ["alice"]
    (request,) = crm_requests
    assert request.url.path == "/crm/v3/objects/contacts/42"
    assert request.url.params["properties"] == "email,candidate_name,candidate_number"
    assert request.headers["authorization"] == "Bearer crm-access"
    assert delivered == [{"Candidate_name": "Jane", "Candidate_number": "C-7"}]


@pytest.mark.asyncio
async def test_dispatch_uses_only_the_first_event(record_store: SQLiteStore) -> None:
    seen: list[str] = []

    def crm_handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json={"properties": {"candidate_name": "Jane"}})

    dispatcher = _dispatcher(record_store, crm_handler, lambda request: httpx.Response(204))

    await dispatcher.dispatch(
        [{"objectId": "42", "portalId": "99"}, {"objectId": "43", "portalId": "99"}]
    )

    assert seen == ["/crm/v3/objects/contacts/42"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "events",
    [[{"portalId": "99"}], [{"objectId": "42"}], ["not-an-object"]],
)
async def test_dispatch_requires_ids(record_store: SQLiteStore, events) -> None:
    dispatcher = _dispatcher(
        record_store,
        lambda request: pytest.fail("CRM should not be called"),
        lambda request: pytest.fail("downstream should not be called"),
    )

    with pytest.raises(MalformedWebhookPayloadError):
        await dispatcher.dispatch(events)


@pytest.mark.asyncio
async def test_dispatch_unknown_portal(record_store: SQLiteStore) -> None:
    dispatcher = _dispatcher(
        record_store,
        lambda request: pytest.fail("CRM should not be called"),
        lambda request: pytest.fail("downstream should not be called"),
    )

    with pytest.raises(UnknownPortalError):
        await dispatcher.dispatch([{"objectId": "42", "portalId": "12345"}])


@pytest.mark.asyncio
async def test_dispatch_contact_without_properties(record_store: SQLiteStore) -> None:
    dispatcher = _dispatcher(
        record_store,
        lambda request: httpx.Response(200, json={"id": "42"}),
        lambda request: pytest.fail("downstream should not be called"),
    )

    with pytest.raises(CRMRequestError) as excinfo:
        await dispatcher.dispatch([{"objectId": "42", "portalId": "99"}])
    assert excinfo.value.message == "Contact does not have properties"


@pytest.mark.asyncio
async def test_dispatch_downstream_failure(record_store: SQLiteStore) -> None:
    dispatcher = _dispatcher(
        record_store,
        lambda request: httpx.Response(200, json={"properties": {"candidate_name": "Jane"}}),
        lambda request: httpx.Response(500),
    )

    with pytest.raises(DownstreamDeliveryError):
        await dispatcher.dispatch([{"objectId": "42", "portalId": "99"}])
