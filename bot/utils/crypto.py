from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet


def derive_fernet_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class TextCipher:
    """Symmetric encryption for ticket text stored at rest (topics, close reasons, names)."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("An encryption secret is required")
        self._fernet = Fernet(derive_fernet_key(secret))

    def encrypt(self, text: str) -> str:
        return self._fernet.encrypt(text.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")

    def encrypt_optional(self, text: str | None) -> str | None:
        # Empty text is stored as absent, never as ciphertext.
        if not text:
            return None
        return self.encrypt(text)
