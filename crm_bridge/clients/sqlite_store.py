"""SQLite-backed record storage keyed by (pk, sk)."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional, Protocol


class RecordStore(Protocol):
    """Narrow persistence contract the repositories depend on."""

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]:
        ...

    def put_item(self, item: Dict[str, Any]) -> None:
        ...

    def put_item_if_absent(self, item: Dict[str, Any]) -> bool:
        ...


def _require_keys(item: Dict[str, Any]) -> tuple[str, str]:
    pk = item.get("pk")
    sk = item.get("sk")
    if not pk or not sk:
        raise ValueError("Item must include 'pk' and 'sk' keys")
    return pk, sk


class SQLiteStore:
    """Document store using a single table; each write replaces one row atomically."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS records (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (pk, sk)
                )
                """
            )

    def put_item(self, item: Dict[str, Any]) -> None:
        pk, sk = _require_keys(item)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO records (pk, sk, data)
                VALUES (?, ?, ?)
                ON CONFLICT(pk, sk) DO UPDATE SET data = excluded.data
                """,
                (pk, sk, json.dumps(item)),
            )

    def put_item_if_absent(self, item: Dict[str, Any]) -> bool:
        """Insert the item unless the key exists; return whether it was written."""
        pk, sk = _require_keys(item)
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO records (pk, sk, data)
                VALUES (?, ?, ?)
                ON CONFLICT(pk, sk) DO NOTHING
                """,
                (pk, sk, json.dumps(item)),
            )
            return cursor.rowcount == 1

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            ).fetchone()
        if not row:
            return None
        return json.loads(row["data"])


__all__ = ["RecordStore", "SQLiteStore"]
