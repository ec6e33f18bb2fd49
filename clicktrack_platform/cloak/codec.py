"""
Cloak codec for Clicktrack Platform.

Responsibilities:
    - Encrypt the destination URL of a cloaked link for storage at rest
    - Decrypt it at resolution time, reporting any failure as None

Design notes:
    - Fernet (AES-128-CBC + HMAC-SHA256) from `cryptography`: every token
      carries a fresh random IV and an authentication tag. Two links to the
      same URL get different tokens, and a tampered token is rejected
      instead of decrypting to garbage.
    - Keyed by one process-wide secret (CLICKTRACK_CLOAK_SECRET). The Fernet
      key is urlsafe-base64(SHA-256(secret)), so any secret string works.
    - `decode` never raises. Callers fall back to the link's plain
      `original_url` when it returns None.
"""

import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

log = logging.getLogger(__name__)


def derive_key(secret: str) -> bytes:
    """Derive a Fernet key from an arbitrary secret string."""
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class CloakCodec:
    """Symmetric, authenticated encode/decode of destination URLs."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Cloak secret must not be empty")
        self._fernet = Fernet(derive_key(secret))

    def encode(self, url: str) -> str:
        """
        Encrypt a destination URL.

        Returns:
            str: URL-safe ASCII token, safe to store in a CSV cell.
        """
        return self._fernet.encrypt(url.encode("utf-8")).decode("ascii")

    def decode(self, token: str) -> Optional[str]:
        """
        Decrypt a token produced by `encode`.

        Returns:
            Optional[str]: The URL, or None if the token is empty, malformed,
            tampered with, encrypted under another secret, or not UTF-8.
        """
        if not token:
            return None
        try:
            plain = self._fernet.decrypt(token.encode("ascii"))
            return plain.decode("utf-8")
        except (InvalidToken, UnicodeError, TypeError, ValueError) as exc:
            log.warning("Cloak decode failed: %s", type(exc).__name__)
            return None
