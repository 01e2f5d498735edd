"""
Session user records and the pure functions that evolve them.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from crm_bridge.models.credentials import utcnow

MAX_REFRESH_TOKENS = 5
REFRESH_TOKEN_TTL = timedelta(days=30)


class RefreshTokenEntry(BaseModel):
    """A live refresh token, stored as its SHA-256 digest."""

    model_config = ConfigDict(frozen=True)

    token: str
    created_at: datetime = Field(default_factory=utcnow)

    def is_stale(self, now: datetime) -> bool:
        return now - self.created_at > REFRESH_TOKEN_TTL


class SessionUser(BaseModel):
    """Application user identity, distinct from the CRM identity."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    username: str = Field(..., min_length=3, max_length=50)
    password_hash: str
    user_account_id: str = Field(..., min_length=1, description="CRM portal id.")
    refresh_tokens: Tuple[RefreshTokenEntry, ...] = ()
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_item(self) -> Dict[str, Any]:
        return {"pk": f"account#{self.id}", "sk": "profile", **self.model_dump(mode="json")}

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "SessionUser":
        data = {key: value for key, value in item.items() if key not in ("pk", "sk")}
        return cls.model_validate(data)

    def public_view(self) -> Dict[str, Any]:
        """Serialize without the password hash or refresh tokens."""
        return self.model_dump(mode="json", exclude={"password_hash", "refresh_tokens"})


def normalize_username(username: str) -> str:
    return username.strip().lower()


def with_refresh_token(user: SessionUser, token_digest: str, now: datetime | None = None) -> SessionUser:
    """Append a refresh token, evicting the oldest so at most five remain."""
    now = now or utcnow()
    tokens = list(user.refresh_tokens)
    if len(tokens) >= MAX_REFRESH_TOKENS:
        tokens = tokens[-(MAX_REFRESH_TOKENS - 1):]
    tokens.append(RefreshTokenEntry(token=token_digest, created_at=now))
    return user.model_copy(update={"refresh_tokens": tuple(tokens), "updated_at": now})


def without_refresh_token(user: SessionUser, token_digest: str, now: datetime | None = None) -> SessionUser:
    tokens = tuple(entry for entry in user.refresh_tokens if entry.token != token_digest)
    return user.model_copy(update={"refresh_tokens": tokens, "updated_at": now or utcnow()})


def without_refresh_tokens(user: SessionUser, now: datetime | None = None) -> SessionUser:
    return user.model_copy(update={"refresh_tokens": (), "updated_at": now or utcnow()})


def with_login(user: SessionUser, now: datetime | None = None) -> SessionUser:
    now = now or utcnow()
    return user.model_copy(update={"last_login": now, "updated_at": now})


def holds_refresh_token(user: SessionUser, token_digest: str, now: datetime | None = None) -> bool:
    """True when the digest is listed and its entry is younger than the TTL."""
    now = now or utcnow()
    return any(
        entry.token == token_digest and not entry.is_stale(now)
        for entry in user.refresh_tokens
    )


__all__ = [
    "MAX_REFRESH_TOKENS",
    "REFRESH_TOKEN_TTL",
    "RefreshTokenEntry",
    "SessionUser",
    "holds_refresh_token",
    "normalize_username",
    "with_login",
    "with_refresh_token",
    "without_refresh_token",
    "without_refresh_tokens",
]
