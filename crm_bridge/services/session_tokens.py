"""JWT creation and verification for the application's own session tokens."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from crm_bridge.core.config import SecuritySettings
from crm_bridge.core.errors import (
    TokenExpiredError,
    TokenInvalidError,
    TokenVerificationError,
)

ISSUER = "hubspot-integration"
AUDIENCE = "hubspot-api"
ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
        }


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    username: str
    expires_at: datetime


def hash_refresh_token(token: str) -> str:
    """SHA256 hash of refresh token for storage."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionTokenIssuer:
    """Sign access/refresh token pairs and verify either kind."""

    def __init__(self, security_settings: SecuritySettings) -> None:
        self._secret = security_settings.jwt_secret
        self._access_ttl = timedelta(seconds=security_settings.access_token_ttl_seconds)
        self._refresh_ttl = timedelta(seconds=security_settings.refresh_token_ttl_seconds)

    def _sign(self, user_id: str, username: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "username": username,
            # Distinguishes tokens minted within the same second.
            "jti": uuid4().hex,
            "iss": ISSUER,
            "aud": AUDIENCE,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def issue_pair(self, user_id: str, username: str) -> TokenPair:
        return TokenPair(
            access_token=self._sign(user_id, username, self._access_ttl),
            refresh_token=self._sign(user_id, username, self._refresh_ttl),
            expires_in=int(self._access_ttl.total_seconds()),
        )

    def verify(self, token: str) -> SessionClaims:
        """Decode ``token`` checking signature, expiry, issuer and audience."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                audience=AUDIENCE,
                issuer=ISSUER,
            )
        except ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except (JWTClaimsError, JWTError) as exc:
            raise TokenInvalidError() from exc
        except Exception as exc:
            raise TokenVerificationError() from exc

        user_id = payload.get("userId")
        username = payload.get("username")
        if not isinstance(user_id, str) or not isinstance(username, str):
            raise TokenVerificationError("Token is missing identity claims.")
        return SessionClaims(
            user_id=user_id,
            username=username,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from a ``Bearer <token>`` header, else None."""
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        return None
    return parts[1] or None


__all__ = [
    "AUDIENCE",
    "ISSUER",
    "SessionClaims",
    "SessionTokenIssuer",
    "TokenPair",
    "extract_bearer_token",
    "hash_refresh_token",
]
