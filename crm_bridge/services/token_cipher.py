"""Symmetric encryption utilities for protecting stored CRM tokens."""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from crm_bridge.core.errors import DecryptionError, EncryptionConfigError, EncryptionError

logger = logging.getLogger(__name__)


class TokenCipherService:
    """Encrypt and decrypt sensitive strings using a derived Fernet key.

    The key is fixed for the life of the process. Empty input passes through
    as ``None`` so optional tokens can be handled uniformly.
    """

    def __init__(self, *, secret: Optional[str]) -> None:
        self._fernet: Optional[Fernet] = None
        if secret:
            digest = hashlib.sha256(secret.encode("utf-8")).digest()
            self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def _require_fernet(self) -> Fernet:
        if self._fernet is None:
            raise EncryptionConfigError()
        return self._fernet

    def encrypt(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a plaintext string and return the ciphertext."""
        if not plaintext:
            return None
        fernet = self._require_fernet()
        try:
            token = fernet.encrypt(plaintext.encode("utf-8"))
        except (TypeError, ValueError) as exc:
            logger.error("Token encryption failed: %s", type(exc).__name__)
            raise EncryptionError() from exc
        return token.decode("utf-8")

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """Decrypt a ciphertext string and return the plaintext."""
        if not ciphertext:
            return None
        fernet = self._require_fernet()
        try:
            plaintext = fernet.decrypt(ciphertext.encode("utf-8"))
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise DecryptionError() from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService"]
