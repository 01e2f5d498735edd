"""
Inbound CRM webhook authentication and workflow dispatch.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Mapping

from crm_bridge.clients.crm_api import CRMApiClient, WorkflowWebhookClient
from crm_bridge.core.errors import (
    MalformedWebhookPayloadError,
    MissingSignatureError,
    UnknownPortalError,
    UnsupportedSignatureVersionError,
)
from crm_bridge.services.crm_tokens import CRMTokenService
from crm_bridge.services.user_store import SessionUserStore

logger = logging.getLogger(__name__)

SUPPORTED_SIGNATURE_VERSION = "v1"
SIGNATURE_VERSION_HEADERS = ("x-signature-version", "x-hubspot-signature-version")
SIGNATURE_HEADERS = ("x-signature", "x-hubspot-signature")


def _first_header(headers: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in names:
        value = lowered.get(name)
        if value:
            return value
    return None


def compute_signature(client_secret: str, raw_body: bytes) -> str:
    """``hex(sha256(client_secret + raw_body))`` over the unparsed body bytes."""
    return hashlib.sha256(client_secret.strip().encode("utf-8") + raw_body).hexdigest()


class WebhookSignatureVerifier:
    """Checks v1 signatures on CRM webhook deliveries."""

    def __init__(self, client_secret: str) -> None:
        self._client_secret = client_secret

    def validate_signature(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        """Return whether the signature matches.

        Header problems are configuration-level failures and raise instead of
        returning False.
        """
        version = _first_header(headers, SIGNATURE_VERSION_HEADERS)
        if version is None:
            raise MissingSignatureError("Missing signature version")
        if version != SUPPORTED_SIGNATURE_VERSION:
            raise UnsupportedSignatureVersionError()

        signature = _first_header(headers, SIGNATURE_HEADERS)
        if signature is None:
            raise MissingSignatureError()

        expected = compute_signature(self._client_secret, raw_body)
        return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))

    @staticmethod
    def parse_events(raw_body: bytes) -> List[Any]:
        """Decode a verified body into its event array."""
        try:
            events = json.loads(raw_body)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedWebhookPayloadError("Invalid JSON in request body") from exc
        if not isinstance(events, list):
            raise MalformedWebhookPayloadError("Webhook body must be a JSON array")
        if not events:
            raise MalformedWebhookPayloadError("Missing event in request body")
        return events


class WorkflowDispatcher:
    """Turns a contact-owner-change event into a downstream notification."""

    CONTACT_PROPERTIES = ("email", "candidate_name", "candidate_number")

    def __init__(
        self,
        *,
        user_store: SessionUserStore,
        token_service: CRMTokenService,
        crm_client: CRMApiClient,
        webhook_client: WorkflowWebhookClient,
        forward_fields: Mapping[str, str],
    ) -> None:
        self._users = user_store
        self._tokens = token_service
        self._crm = crm_client
        self._webhook = webhook_client
        self._forward_fields = dict(forward_fields)

    async def dispatch(self, events: List[Any]) -> Dict[str, Any]:
        # Deliveries carry one event; extras are ignored.
        event = events[0] if events else None
        if not isinstance(event, dict):
            raise MalformedWebhookPayloadError("Missing event in request body")

        object_id = event.get("objectId")
        if not object_id:
            raise MalformedWebhookPayloadError("Missing objectId in request body")
        portal_id = event.get("portalId")
        if not portal_id:
            raise MalformedWebhookPayloadError("Missing portalId in request body")

        user = self._users.find_by_account_id(str(portal_id))
        if user is None:
            raise UnknownPortalError(f"No user is linked to portal {portal_id}.")

        access_token = await self._tokens.get_valid_access_token(user.username)
        requested = tuple(dict.fromkeys((*self.CONTACT_PROPERTIES, *self._forward_fields)))
        properties = await self._crm.get_contact_properties(
            str(object_id),
            access_token=access_token,
            properties=requested,
        )

        payload = {
            target: properties.get(source)
            for source, target in self._forward_fields.items()
        }
        await self._webhook.send(payload)
        logger.info("Forwarded contact %s for portal %s", object_id, portal_id)
        return {"objectId": object_id}


__all__ = [
    "SUPPORTED_SIGNATURE_VERSION",
    "WebhookSignatureVerifier",
    "WorkflowDispatcher",
    "compute_signature",
]
