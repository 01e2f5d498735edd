"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from urllib.parse import parse_qs, urlparse

from crm_bridge.clients import (
    CRMApiClient,
    CRMOAuthClient,
    DynamoDBClient,
    OAuthStateEncoder,
    RecordStore,
    SQLiteStore,
    WorkflowWebhookClient,
)
from crm_bridge.core.config import AppSettings, get_settings
from crm_bridge.core.errors import ConfigIncompleteError
from crm_bridge.services import (
    CredentialStore,
    CRMTokenService,
    SessionTokenIssuer,
    SessionUserStore,
    TokenCipherService,
    UserService,
    WebhookSignatureVerifier,
    WorkflowDispatcher,
)


@lru_cache()
def get_app_settings() -> AppSettings:
    """Settings shared by the route handlers and every client factory."""
    return get_settings()


def build_record_store(url: str) -> RecordStore:
    """Create the record store named by ``STORAGE_URL``."""
    parsed = urlparse(url)
    if parsed.scheme == "sqlite":
        # sqlite:///relative.db and sqlite:////abs/path.db
        path = url[len("sqlite:///"):]
        if not path:
            raise ConfigIncompleteError("STORAGE_URL: sqlite URL is missing a file path")
        return SQLiteStore(path)
    if parsed.scheme == "dynamodb":
        if not parsed.netloc:
            raise ConfigIncompleteError("STORAGE_URL: dynamodb URL is missing a table name")
        region = parse_qs(parsed.query).get("region", ["us-east-1"])[0]
        return DynamoDBClient(parsed.netloc, region_name=region)
    raise ConfigIncompleteError(f"STORAGE_URL: unsupported scheme {parsed.scheme!r}")


@lru_cache()
def get_record_store() -> RecordStore:
    """Provide the shared record store."""
    return build_record_store(get_app_settings().storage.url)


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder derived from the CRM client secret."""
    return OAuthStateEncoder(secret_key=get_app_settings().oauth.client_secret)


@lru_cache()
def get_crm_oauth_client() -> CRMOAuthClient:
    """Create a singleton CRM OAuth client."""
    settings = get_app_settings()
    return CRMOAuthClient(settings.oauth, timeout=settings.crm.http_timeout_seconds)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    return TokenCipherService(secret=get_app_settings().security.encryption_key)


@lru_cache()
def get_credential_store() -> CredentialStore:
    return CredentialStore(get_record_store())


@lru_cache()
def get_crm_token_service() -> CRMTokenService:
    """Provide the CRM token lifecycle manager; one instance keeps one lock table."""
    return CRMTokenService(
        credential_store=get_credential_store(),
        oauth_client=get_crm_oauth_client(),
        token_cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_session_user_store() -> SessionUserStore:
    return SessionUserStore(get_record_store())


@lru_cache()
def get_session_token_issuer() -> SessionTokenIssuer:
    return SessionTokenIssuer(get_app_settings().security)


@lru_cache()
def get_user_service() -> UserService:
    return UserService(get_session_user_store(), get_session_token_issuer())


@lru_cache()
def get_webhook_verifier() -> WebhookSignatureVerifier:
    return WebhookSignatureVerifier(client_secret=get_app_settings().oauth.client_secret)


@lru_cache()
def get_workflow_dispatcher() -> WorkflowDispatcher:
    """Build the dispatcher that forwards webhook events downstream."""
    settings = get_app_settings()
    timeout = settings.crm.http_timeout_seconds
    return WorkflowDispatcher(
        user_store=get_session_user_store(),
        token_service=get_crm_token_service(),
        crm_client=CRMApiClient(str(settings.crm.base_url), timeout=timeout),
        webhook_client=WorkflowWebhookClient(str(settings.crm.webhook_url), timeout=timeout),
        forward_fields=settings.crm.forward_fields,
    )


__all__ = [
    "build_record_store",
    "get_app_settings",
    "get_credential_store",
    "get_crm_oauth_client",
    "get_crm_token_service",
    "get_oauth_state_encoder",
    "get_record_store",
    "get_session_token_issuer",
    "get_session_user_store",
    "get_token_cipher_service",
    "get_user_service",
    "get_webhook_verifier",
    "get_workflow_dispatcher",
]
