"""
Repository for session users and their lookup indexes.

Users live under ``account#<id>``; unique usernames and CRM portal ids are
claimed through conditional inserts of small index rows pointing at the id.
"""

from __future__ import annotations

from typing import Optional

from crm_bridge.clients.sqlite_store import RecordStore
from crm_bridge.models.users import SessionUser

_INDEX_SORT_KEY = "account"


class SessionUserStore:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def get(self, user_id: str) -> Optional[SessionUser]:
        item = self._store.get_item(partition_key=f"account#{user_id}", sort_key="profile")
        if not item:
            return None
        return SessionUser.from_item(item)

    def _get_by_index(self, partition_key: str) -> Optional[SessionUser]:
        pointer = self._store.get_item(partition_key=partition_key, sort_key=_INDEX_SORT_KEY)
        if not pointer:
            return None
        return self.get(pointer["user_id"])

    def find_by_username(self, username: str) -> Optional[SessionUser]:
        return self._get_by_index(f"username#{username}")

    def find_by_account_id(self, user_account_id: str) -> Optional[SessionUser]:
        return self._get_by_index(f"portal#{user_account_id}")

    def insert(self, user: SessionUser) -> bool:
        """Claim the username and persist the user; False if the name is taken."""
        claimed = self._store.put_item_if_absent(
            {
                "pk": f"username#{user.username}",
                "sk": _INDEX_SORT_KEY,
                "user_id": user.id,
            }
        )
        if not claimed:
            return False
        self._store.put_item(user.to_item())
        # Latest signup for a portal wins the webhook mapping.
        self._store.put_item(
            {
                "pk": f"portal#{user.user_account_id}",
                "sk": _INDEX_SORT_KEY,
                "user_id": user.id,
            }
        )
        return True

    def update(self, user: SessionUser) -> SessionUser:
        self._store.put_item(user.to_item())
        return user


__all__ = ["SessionUserStore"]
