"""Expose constructed client wrappers."""

from .crm_api import CRMApiClient, WorkflowWebhookClient
from .crm_oauth import CRMOAuthClient, OAuthStateEncoder, TokenGrant
from .dynamodb import DynamoDBClient
from .sqlite_store import RecordStore, SQLiteStore

__all__ = [
    "CRMApiClient",
    "CRMOAuthClient",
    "DynamoDBClient",
    "OAuthStateEncoder",
    "RecordStore",
    "SQLiteStore",
    "TokenGrant",
    "WorkflowWebhookClient",
]
