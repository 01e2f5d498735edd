"""
Helpers for obtaining, storing and refreshing CRM OAuth tokens.
"""

from __future__ import annotations

import asyncio
import logging
import weakref

from crm_bridge.clients.crm_oauth import CRMOAuthClient
from crm_bridge.core.errors import CredentialNotFoundError, DecryptionError
from crm_bridge.models.credentials import CredentialRecord, DecryptedCredentials
from crm_bridge.services.credential_store import CredentialStore, is_expired
from crm_bridge.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)


class CRMTokenService:
    """Bridges application usernames to valid CRM access tokens.

    Refresh is lazy: the first caller to find an expired record refreshes it.
    Concurrent callers for the same username wait on a per-username lock and
    reuse the refreshed record instead of issuing a second upstream grant.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        oauth_client: CRMOAuthClient,
        token_cipher: TokenCipherService,
    ) -> None:
        self._store = credential_store
        self._oauth = oauth_client
        self._cipher = token_cipher
        # Entries vanish once no caller holds or waits on the lock.
        self._refresh_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def exchange_code(self, code: str, username: str) -> CredentialRecord:
        """Exchange an authorization code and persist the encrypted token pair."""
        grant = await self._oauth.exchange_authorization_code(code)
        encrypted_access = self._cipher.encrypt(grant.access_token)
        encrypted_refresh = self._cipher.encrypt(grant.refresh_token)
        record = self._store.create_or_update(
            username, encrypted_access, encrypted_refresh, grant.expires_in
        )
        logger.info("Stored CRM credentials for user %s", username)
        return record

    async def refresh(self, username: str) -> CredentialRecord:
        """Force a refresh-token grant for ``username``."""
        async with self._lock_for(username):
            return await self._refresh_unlocked(username)

    async def _refresh_unlocked(self, username: str) -> CredentialRecord:
        record = self._require_record(username)
        stored_refresh_token = self._decrypt_required(record.refresh_token)

        grant = await self._oauth.refresh_token(stored_refresh_token)
        # The CRM may omit refresh_token; the stored one stays valid.
        refresh_token = grant.refresh_token or stored_refresh_token

        updated = self._store.update_tokens(
            record,
            self._cipher.encrypt(grant.access_token),
            self._cipher.encrypt(refresh_token),
            grant.expires_in,
        )
        logger.info("Refreshed CRM access token for user %s", username)
        return updated

    async def get_valid_access_token(self, username: str) -> str:
        """Return a plaintext access token, refreshing first if the stored one expired."""
        record = self._require_record(username)
        if is_expired(record):
            logger.info("CRM token expired for user %s, refreshing", username)
            async with self._lock_for(username):
                record = self._require_record(username)
                if is_expired(record):
                    record = await self._refresh_unlocked(username)
        return self._decrypt_required(record.access_token)

    async def get_decrypted(self, username: str) -> DecryptedCredentials:
        """Return the stored record with both tokens decrypted."""
        record = self._require_record(username)
        return DecryptedCredentials(
            username=record.username,
            access_token=self._decrypt_required(record.access_token),
            refresh_token=self._decrypt_required(record.refresh_token),
            expires_in=record.expires_in,
            refreshed_at=record.refreshed_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
            expires_at=record.expires_at,
        )

    def _lock_for(self, username: str) -> asyncio.Lock:
        lock = self._refresh_locks.get(username)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[username] = lock
        return lock

    def _require_record(self, username: str) -> CredentialRecord:
        record = self._store.find_by_username(username)
        if record is None:
            raise CredentialNotFoundError(f"Auth record not found for user {username}.")
        return record

    def _decrypt_required(self, ciphertext: str) -> str:
        plaintext = self._cipher.decrypt(ciphertext)
        if not plaintext:
            raise DecryptionError()
        return plaintext


__all__ = ["CRMTokenService"]
