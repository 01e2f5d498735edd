"""
Repository for encrypted CRM credential records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from crm_bridge.clients.sqlite_store import RecordStore
from crm_bridge.models.credentials import CredentialRecord, utcnow

_SORT_KEY = "oauth#crm"


def is_expired(record: CredentialRecord, now: Optional[datetime] = None) -> bool:
    """A record expires strictly after ``issued_at + expires_in``."""
    return (now or utcnow()) > record.expires_at


class CredentialStore:
    """Find, upsert and refresh one credential record per username."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def find_by_username(self, username: str) -> Optional[CredentialRecord]:
        item = self._store.get_item(partition_key=f"user#{username}", sort_key=_SORT_KEY)
        if not item:
            return None
        return CredentialRecord.from_item(item)

    def create_or_update(
        self,
        username: str,
        encrypted_access_token: str,
        encrypted_refresh_token: str,
        expires_in: int,
    ) -> CredentialRecord:
        """Upsert the record for ``username``; the issue time restarts now."""
        now = utcnow()
        existing = self.find_by_username(username)
        record = CredentialRecord(
            username=username,
            access_token=encrypted_access_token,
            refresh_token=encrypted_refresh_token,
            expires_in=expires_in,
            refreshed_at=now,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._store.put_item(record.to_item())
        return record

    def update_tokens(
        self,
        record: CredentialRecord,
        encrypted_access_token: str,
        encrypted_refresh_token: str,
        expires_in: int,
    ) -> CredentialRecord:
        now = utcnow()
        updated = record.model_copy(
            update={
                "access_token": encrypted_access_token,
                "refresh_token": encrypted_refresh_token,
                "expires_in": expires_in,
                "refreshed_at": now,
                "updated_at": now,
            }
        )
        self._store.put_item(updated.to_item())
        return updated


__all__ = ["CredentialStore", "is_expired"]
