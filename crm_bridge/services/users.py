"""
Signup, login and session refresh for application users.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import bcrypt

from crm_bridge.core.errors import (
    ForbiddenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidUserInputError,
    TokenExpiredError,
    TokenInvalidError,
    TokenVerificationError,
    UserExistsError,
)
from crm_bridge.models.users import (
    SessionUser,
    holds_refresh_token,
    normalize_username,
    with_login,
    with_refresh_token,
    without_refresh_token,
    without_refresh_tokens,
)
from crm_bridge.services.session_tokens import (
    SessionTokenIssuer,
    TokenPair,
    hash_refresh_token,
)
from crm_bridge.services.user_store import SessionUserStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit)."""
    hashed = bcrypt.hashpw(password.encode("utf-8")[:72], bcrypt.gensalt(12))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8")[:72], password_hash.encode("utf-8"))


@dataclass(frozen=True)
class AuthResult:
    user: SessionUser
    tokens: TokenPair

    def as_dict(self) -> Dict[str, Any]:
        return {"user": self.user.public_view(), "tokens": self.tokens.as_dict()}


class UserService:
    """Issues and rotates session tokens for registered users.

    Every user keeps at most five refresh tokens; using one removes it and
    appends its replacement, so a consumed refresh token cannot be replayed.
    """

    def __init__(self, user_store: SessionUserStore, token_issuer: SessionTokenIssuer) -> None:
        self._users = user_store
        self._issuer = token_issuer

    def signup(self, username: str, password: str, user_account_id: str) -> AuthResult:
        if not username or not password or not user_account_id:
            raise InvalidUserInputError("Username, password, and user_account_id are required")
        username = normalize_username(username)
        if not 3 <= len(username) <= 50:
            raise InvalidUserInputError("Username must be between 3 and 50 characters")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidUserInputError("Password must be at least 6 characters long")

        user = SessionUser(
            username=username,
            password_hash=hash_password(password),
            user_account_id=str(user_account_id).strip(),
        )
        if not self._users.insert(user):
            raise UserExistsError()

        tokens = self._issuer.issue_pair(user.id, user.username)
        user = self._users.update(
            with_refresh_token(user, hash_refresh_token(tokens.refresh_token))
        )
        logger.info("Created user %s", user.username)
        return AuthResult(user=user, tokens=tokens)

    def login(self, username: str, password: str) -> AuthResult:
        if not username or not password:
            raise InvalidUserInputError("Username and password are required")

        user = self._users.find_by_username(normalize_username(username))
        if user is None or not user.is_active:
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        tokens = self._issuer.issue_pair(user.id, user.username)
        user = with_refresh_token(user, hash_refresh_token(tokens.refresh_token))
        user = self._users.update(with_login(user))
        return AuthResult(user=user, tokens=tokens)

    def refresh_tokens(self, refresh_token: str, caller_user_id: Optional[str] = None) -> TokenPair:
        """Rotate ``refresh_token`` into a fresh pair.

        ``caller_user_id`` is the identity of the caller's own access token, if
        any; a refresh token owned by someone else is refused.
        """
        if not refresh_token:
            raise InvalidUserInputError("Refresh token is required")
        try:
            claims = self._issuer.verify(refresh_token)
        except (TokenExpiredError, TokenInvalidError, TokenVerificationError) as exc:
            raise InvalidRefreshTokenError("The refresh token is invalid or expired") from exc

        user = self._users.get(claims.user_id)
        digest = hash_refresh_token(refresh_token)
        if user is None or not user.is_active or not holds_refresh_token(user, digest):
            raise InvalidRefreshTokenError()

        if caller_user_id and caller_user_id != user.id:
            raise ForbiddenError()

        tokens = self._issuer.issue_pair(user.id, user.username)
        user = without_refresh_token(user, digest)
        self._users.update(with_refresh_token(user, hash_refresh_token(tokens.refresh_token)))
        return tokens

    def logout(self, user_id: str, refresh_token: Optional[str] = None) -> None:
        """Drop one refresh token, or every refresh token when none is given."""
        user = self._users.get(user_id)
        if user is None:
            return
        if refresh_token:
            user = without_refresh_token(user, hash_refresh_token(refresh_token))
        else:
            user = without_refresh_tokens(user)
        self._users.update(user)

    def get_active_user(self, user_id: str) -> SessionUser:
        user = self._users.get(user_id)
        if user is None or not user.is_active:
            raise TokenInvalidError("User not found or inactive")
        return user


__all__ = ["AuthResult", "UserService", "hash_password", "verify_password"]
