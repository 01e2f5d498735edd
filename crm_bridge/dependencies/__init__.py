"""Expose dependency helpers for FastAPI routers."""

from .auth import get_current_user, get_optional_user
from .clients import (
    build_record_store,
    get_app_settings,
    get_credential_store,
    get_crm_oauth_client,
    get_crm_token_service,
    get_oauth_state_encoder,
    get_record_store,
    get_session_token_issuer,
    get_session_user_store,
    get_token_cipher_service,
    get_user_service,
    get_webhook_verifier,
    get_workflow_dispatcher,
)

__all__ = [
    "build_record_store",
    "get_app_settings",
    "get_credential_store",
    "get_crm_oauth_client",
    "get_crm_token_service",
    "get_current_user",
    "get_oauth_state_encoder",
    "get_optional_user",
    "get_record_store",
    "get_session_token_issuer",
    "get_session_user_store",
    "get_token_cipher_service",
    "get_user_service",
    "get_webhook_verifier",
    "get_workflow_dispatcher",
]
