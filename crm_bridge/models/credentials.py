"""
Domain models for CRM OAuth credential persistence.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialRecord(BaseModel):
    """Encrypted CRM token pair plus expiry bookkeeping for one username."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=3, max_length=50)
    access_token: str = Field(..., description="Ciphertext of the CRM access token.")
    refresh_token: str = Field(..., description="Ciphertext of the CRM refresh token.")
    expires_in: int = Field(..., ge=0, description="Lifetime in seconds granted at issuance.")
    refreshed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def issued_at(self) -> datetime:
        return self.refreshed_at or self.created_at

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    def to_item(self) -> Dict[str, Any]:
        return {
            "pk": f"user#{self.username}",
            "sk": "oauth#crm",
            **self.model_dump(mode="json"),
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "CredentialRecord":
        data = {key: value for key, value in item.items() if key not in ("pk", "sk")}
        return cls.model_validate(data)


class DecryptedCredentials(BaseModel):
    """Credential record with plaintext tokens, for diagnostics only."""

    username: str
    access_token: str
    refresh_token: str
    expires_in: int
    refreshed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


__all__ = ["CredentialRecord", "DecryptedCredentials", "utcnow"]
