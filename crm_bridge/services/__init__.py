"""Service layer exports."""

from .credential_store import CredentialStore, is_expired
from .crm_tokens import CRMTokenService
from .session_tokens import SessionTokenIssuer, TokenPair
from .token_cipher import TokenCipherService
from .user_store import SessionUserStore
from .users import AuthResult, UserService
from .webhooks import WebhookSignatureVerifier, WorkflowDispatcher

__all__ = [
    "AuthResult",
    "CRMTokenService",
    "CredentialStore",
    "SessionTokenIssuer",
    "SessionUserStore",
    "TokenCipherService",
    "TokenPair",
    "UserService",
    "WebhookSignatureVerifier",
    "WorkflowDispatcher",
    "is_expired",
]
