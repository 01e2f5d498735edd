"""
FastAPI routes for the CRM credential broker.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from crm_bridge.core.errors import (
    InvalidOAuthStateError,
    SignatureMismatchError,
)
from crm_bridge.dependencies import (
    get_app_settings,
    get_crm_oauth_client,
    get_crm_token_service,
    get_current_user,
    get_oauth_state_encoder,
    get_optional_user,
    get_user_service,
    get_webhook_verifier,
    get_workflow_dispatcher,
)
from crm_bridge.models.users import SessionUser
from crm_bridge.schemas import LoginRequest, LogoutRequest, RefreshRequest, SignupRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# Session users. Password hashing and store calls block, so these run in the threadpool.


@router.post("/users/signup", status_code=HTTPStatus.CREATED)
def signup(
    payload: SignupRequest,
    users: Annotated[Any, Depends(get_user_service)],
) -> dict:
    result = users.signup(payload.username, payload.password, payload.user_account_id)
    return {"success": True, "message": "User created successfully", "data": result.as_dict()}


@router.post("/users/login", status_code=HTTPStatus.OK)
def login(
    payload: LoginRequest,
    users: Annotated[Any, Depends(get_user_service)],
) -> dict:
    result = users.login(payload.username, payload.password)
    return {"success": True, "message": "Login successful", "data": result.as_dict()}


@router.post("/users/refresh", status_code=HTTPStatus.OK)
def refresh_session(
    payload: RefreshRequest,
    users: Annotated[Any, Depends(get_user_service)],
    caller: Annotated[Optional[SessionUser], Depends(get_optional_user)],
) -> dict:
    """Rotate a refresh token; a bearer token, when sent, must belong to the same user."""
    tokens = users.refresh_tokens(
        payload.refresh_token,
        caller_user_id=caller.id if caller else None,
    )
    return {
        "success": True,
        "message": "Tokens refreshed successfully",
        "data": {"tokens": tokens.as_dict()},
    }


@router.post("/users/logout", status_code=HTTPStatus.OK)
def logout(
    payload: LogoutRequest,
    users: Annotated[Any, Depends(get_user_service)],
    user: Annotated[SessionUser, Depends(get_current_user)],
) -> dict:
    users.logout(user.id, payload.refresh_token)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/users/me", status_code=HTTPStatus.OK)
def me(user: Annotated[SessionUser, Depends(get_current_user)]) -> dict:
    return {"success": True, "data": {"user": user.public_view()}}


# CRM OAuth


@router.get("/auth/generate", status_code=HTTPStatus.OK)
async def generate_authorization_url(
    user: Annotated[SessionUser, Depends(get_current_user)],
    oauth_client: Annotated[Any, Depends(get_crm_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
) -> dict:
    """Start the CRM OAuth flow for the authenticated user."""
    state = state_encoder.encode(
        {
            "nonce": uuid.uuid4().hex,
            "username": user.username,
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    return {
        "success": True,
        "message": "Redirect to this URL to start OAuth flow",
        "authUrl": oauth_client.build_authorization_url(state=state),
    }


def _username_from_state(state_data: dict, ttl_seconds: int) -> str:
    issued_at_raw = state_data.get("issued_at")
    if not issued_at_raw:
        raise InvalidOAuthStateError("Missing issued_at in state token.")
    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except ValueError as exc:
        raise InvalidOAuthStateError("Invalid issued_at in state token.") from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    if datetime.now(timezone.utc) - issued_at > timedelta(seconds=ttl_seconds):
        raise InvalidOAuthStateError("OAuth state token has expired.")

    username = state_data.get("username")
    if not username:
        raise InvalidOAuthStateError("Missing username in state token.")
    return username


@router.get("/auth/callback", status_code=HTTPStatus.OK)
async def handle_oauth_callback(
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_service: Annotated[Any, Depends(get_crm_token_service)],
    settings: Annotated[Any, Depends(get_app_settings)],
    code: Optional[str] = Query(None, description="Authorization code returned by the CRM."),
    state: Optional[str] = Query(None, description="Signed state issued by /auth/generate."),
    error: Optional[str] = Query(None, description="Error reported by the CRM consent screen."),
) -> dict:
    """Complete the OAuth exchange and store the encrypted token pair."""
    if error:
        logger.warning("OAuth consent returned error %s", error)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"OAuth authorization failed: {error}",
        )
    if not code:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Authorization code is required"
        )
    if not state:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="State parameter is required"
        )

    username = _username_from_state(
        state_encoder.decode(state), settings.oauth.state_ttl_seconds
    )
    await token_service.exchange_code(code, username)
    return {
        "success": True,
        "message": "Access token created successfully",
        "user": username,
    }


@router.post("/auth/refresh", status_code=HTTPStatus.OK)
async def refresh_crm_tokens(
    user: Annotated[SessionUser, Depends(get_current_user)],
    token_service: Annotated[Any, Depends(get_crm_token_service)],
) -> dict:
    """Force a CRM token refresh for the authenticated user."""
    record = await token_service.refresh(user.username)
    return {
        "success": True,
        "message": "CRM tokens refreshed successfully",
        "data": {
            "expires_in": record.expires_in,
            "refreshed_at": record.refreshed_at.isoformat() if record.refreshed_at else None,
        },
    }


# CRM webhooks


@router.post("/webhook/contactownerchange", status_code=HTTPStatus.OK)
async def contact_owner_change(
    request: Request,
    verifier: Annotated[Any, Depends(get_webhook_verifier)],
    dispatcher: Annotated[Any, Depends(get_workflow_dispatcher)],
) -> dict:
    """Verify a CRM webhook delivery over its raw body, then dispatch it."""
    raw_body = await request.body()
    if not verifier.validate_signature(request.headers, raw_body):
        logger.warning("Rejected webhook with invalid signature")
        raise SignatureMismatchError()

    events = verifier.parse_events(raw_body)
    result = await dispatcher.dispatch(events)
    return {
        "success": True,
        "message": "Contact owner change processed successfully",
        "data": result,
    }


__all__ = ["router"]
