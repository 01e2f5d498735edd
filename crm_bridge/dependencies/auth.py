"""
Bearer-token authentication for the session-protected endpoints.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header

from crm_bridge.core.errors import TokenExpiredError, TokenInvalidError, TokenVerificationError
from crm_bridge.models.users import SessionUser
from crm_bridge.services import SessionTokenIssuer, UserService
from crm_bridge.services.session_tokens import extract_bearer_token

from .clients import get_session_token_issuer, get_user_service

logger = logging.getLogger(__name__)


def get_current_user(
    issuer: Annotated[SessionTokenIssuer, Depends(get_session_token_issuer)],
    users: Annotated[UserService, Depends(get_user_service)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> SessionUser:
    """Resolve the active user behind the ``Authorization: Bearer`` header."""
    token = extract_bearer_token(authorization)
    if not token:
        raise TokenInvalidError("Access token required")
    claims = issuer.verify(token)
    return users.get_active_user(claims.user_id)


def get_optional_user(
    issuer: Annotated[SessionTokenIssuer, Depends(get_session_token_issuer)],
    users: Annotated[UserService, Depends(get_user_service)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> Optional[SessionUser]:
    """Like ``get_current_user`` but yields None instead of failing.

    A stale or unusable bearer is ignored so clients can still refresh with
    their expired access token attached.
    """
    if not extract_bearer_token(authorization):
        return None
    try:
        return get_current_user(issuer, users, authorization)
    except (TokenExpiredError, TokenInvalidError, TokenVerificationError):
        logger.debug("Ignoring unusable bearer token on optional authentication")
        return None


__all__ = ["get_current_user", "get_optional_user"]
