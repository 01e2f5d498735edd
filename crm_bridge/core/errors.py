"""
Error taxonomy shared by the credential, session and webhook subsystems.

Each error carries a stable machine-readable ``code`` and the HTTP status the
request boundary should answer with.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Iterable


class CredentialBrokerError(Exception):
    """Base class for every error surfaced to API clients."""

    code = "INTERNAL_ERROR"
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigIncompleteError(CredentialBrokerError):
    code = "CONFIG_INCOMPLETE"
    default_message = "Configuration is incomplete."

    def __init__(self, problems: Iterable[str] | str | None = None) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems or [])
        message = self.default_message
        if self.problems:
            message = "The following errors were found:\n" + "\n".join(self.problems)
        super().__init__(message)


# CRM credentials


class CredentialNotFoundError(CredentialBrokerError):
    code = "CREDENTIAL_NOT_FOUND"
    status_code = HTTPStatus.NOT_FOUND
    default_message = "Auth record not found for user."


class TokenResponseIncompleteError(CredentialBrokerError):
    code = "TOKEN_RESPONSE_INCOMPLETE"
    status_code = HTTPStatus.BAD_GATEWAY
    default_message = "Token endpoint response is missing required fields."


class TokenExchangeFailedError(CredentialBrokerError):
    code = "TOKEN_EXCHANGE_FAILED"
    status_code = HTTPStatus.BAD_GATEWAY
    default_message = "Failed to exchange authorization code for access token."


class TokenRefreshFailedError(CredentialBrokerError):
    code = "TOKEN_REFRESH_FAILED"
    status_code = HTTPStatus.BAD_GATEWAY
    default_message = "Failed to refresh access token."


class InvalidOAuthStateError(CredentialBrokerError):
    code = "INVALID_OAUTH_STATE"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Invalid OAuth state."


# Cipher


class EncryptionConfigError(CredentialBrokerError):
    code = "ENCRYPTION_CONFIG_ERROR"
    default_message = "Encryption key not configured."


class EncryptionError(CredentialBrokerError):
    code = "ENCRYPTION_FAILURE"
    default_message = "Failed to encrypt token."


class DecryptionError(CredentialBrokerError):
    code = "DECRYPTION_FAILURE"
    default_message = "Failed to decrypt token; invalid ciphertext provided."


# Session tokens


class TokenExpiredError(CredentialBrokerError):
    code = "TOKEN_EXPIRED"
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Token has expired."


class TokenInvalidError(CredentialBrokerError):
    code = "TOKEN_INVALID"
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Invalid token."


class TokenVerificationError(CredentialBrokerError):
    code = "TOKEN_VERIFICATION_FAILED"
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Token verification failed."


class InvalidCredentialsError(CredentialBrokerError):
    code = "INVALID_CREDENTIALS"
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Invalid username or password."


class UserExistsError(CredentialBrokerError):
    code = "USER_EXISTS"
    status_code = HTTPStatus.CONFLICT
    default_message = "A user with this username already exists."


class InvalidUserInputError(CredentialBrokerError):
    code = "VALIDATION_ERROR"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Invalid input."


class InvalidRefreshTokenError(CredentialBrokerError):
    code = "INVALID_REFRESH_TOKEN"
    status_code = HTTPStatus.UNAUTHORIZED
    default_message = "Refresh token not found or user inactive."


class ForbiddenError(CredentialBrokerError):
    code = "FORBIDDEN"
    status_code = HTTPStatus.FORBIDDEN
    default_message = "You are not allowed to refresh this token."


# Webhooks


class MissingSignatureError(CredentialBrokerError):
    code = "MISSING_SIGNATURE"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Missing webhook signature."


class UnsupportedSignatureVersionError(CredentialBrokerError):
    code = "UNSUPPORTED_SIGNATURE_VERSION"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Unsupported signature version. Only v1 is supported."


class SignatureMismatchError(CredentialBrokerError):
    code = "SIGNATURE_MISMATCH"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Invalid webhook signature."


class MalformedWebhookPayloadError(CredentialBrokerError):
    code = "MALFORMED_WEBHOOK_PAYLOAD"
    status_code = HTTPStatus.BAD_REQUEST
    default_message = "Malformed webhook payload."


class UnknownPortalError(CredentialBrokerError):
    code = "UNKNOWN_PORTAL"
    status_code = HTTPStatus.NOT_FOUND
    default_message = "No user is linked to this portal."


class CRMRequestError(CredentialBrokerError):
    code = "CRM_REQUEST_FAILED"
    status_code = HTTPStatus.BAD_GATEWAY
    default_message = "CRM API request failed."


class DownstreamDeliveryError(CredentialBrokerError):
    code = "DOWNSTREAM_DELIVERY_FAILED"
    status_code = HTTPStatus.BAD_GATEWAY
    default_message = "Failed to send webhook."


__all__ = [
    "CRMRequestError",
    "ConfigIncompleteError",
    "CredentialBrokerError",
    "CredentialNotFoundError",
    "DecryptionError",
    "DownstreamDeliveryError",
    "EncryptionConfigError",
    "EncryptionError",
    "ForbiddenError",
    "InvalidCredentialsError",
    "InvalidOAuthStateError",
    "InvalidRefreshTokenError",
    "InvalidUserInputError",
    "MalformedWebhookPayloadError",
    "MissingSignatureError",
    "SignatureMismatchError",
    "TokenExchangeFailedError",
    "TokenExpiredError",
    "TokenInvalidError",
    "TokenRefreshFailedError",
    "TokenResponseIncompleteError",
    "TokenVerificationError",
    "UnknownPortalError",
    "UnsupportedSignatureVersionError",
    "UserExistsError",
]
