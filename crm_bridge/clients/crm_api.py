"""
Thin HTTP wrappers for the CRM object API and the downstream workflow webhook.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from crm_bridge.core.errors import CRMRequestError, DownstreamDeliveryError

logger = logging.getLogger(__name__)


class CRMApiClient:
    """Reads CRM objects with a caller-supplied bearer token."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_contact_properties(
        self,
        object_id: str,
        *,
        access_token: str,
        properties: Sequence[str],
    ) -> Dict[str, Any]:
        """Return the ``properties`` map of contact ``object_id``."""
        url = f"{self._base_url}/crm/v3/objects/contacts/{object_id}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        params = {"properties": ",".join(properties)}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers, params=params)
        except httpx.HTTPError as exc:
            raise CRMRequestError(f"Failed to fetch contact: {exc}") from exc

        if not response.is_success:
            raise CRMRequestError(f"Failed to fetch contact: {response.status_code} {response.reason_phrase}")

        try:
            contact = response.json()
        except ValueError as exc:
            raise CRMRequestError("CRM returned a non-JSON contact body.") from exc

        contact_properties = contact.get("properties") if isinstance(contact, dict) else None
        if not contact_properties:
            raise CRMRequestError("Contact does not have properties")
        return contact_properties


class WorkflowWebhookClient:
    """Posts derived contact fields to the configured downstream URL."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport

    async def send(self, payload: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._webhook_url, json=payload)
        except httpx.HTTPError as exc:
            raise DownstreamDeliveryError(f"Failed to send webhook: {exc}") from exc

        if not response.is_success:
            logger.warning("Downstream webhook answered %s", response.status_code)
            raise DownstreamDeliveryError(
                f"Failed to send webhook: {response.status_code} {response.reason_phrase}"
            )


__all__ = ["CRMApiClient", "WorkflowWebhookClient"]
