"""
Master key handling and the raw AES-256-GCM primitive for PII fields.

The key arrives as 64 hex characters from configuration (never hardcoded,
never generated on the fly) and stays in memory for the process lifetime.
"""

from __future__ import annotations

import binascii
import hmac
import logging
import os
import re
import string

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mediport.exceptions import ConfigurationError, DecryptionError
from mediport.schemas.envelope import IV_LENGTH, KEY_LENGTH, TAG_LENGTH

logger = logging.getLogger(__name__)


_KEY_PATTERN = re.compile(r"[0-9a-fA-F]{%d}" % (KEY_LENGTH * 2))


def parse_hex_key(key_hex: str | None) -> bytes:
    """Decode a key given as exactly KEY_LENGTH * 2 hex characters."""
    if not key_hex:
        raise ConfigurationError("Encryption key not configured")
    if not isinstance(key_hex, str):
        raise ConfigurationError("Invalid encryption key format: expected hex text")
    candidate = key_hex.strip()
    if not all(c in string.hexdigits for c in candidate):
        raise ConfigurationError("Invalid encryption key format: expected hex")
    if not _KEY_PATTERN.fullmatch(candidate):
        raise ConfigurationError(
            f"Invalid encryption key length: expected {KEY_LENGTH * 2} hex characters, "
            f"got {len(candidate)}"
        )
    return bytes.fromhex(candidate)


class KeyManager:
    """Holds the master key and exposes authenticated encrypt/decrypt."""

    def __init__(self, key_hex: str | None = None):
        self._key: bytes | None = None
        self._aead: AESGCM | None = None
        if key_hex is not None:
            self.initialize(key_hex)

    @property
    def is_initialized(self) -> bool:
        return self._aead is not None

    def initialize(self, key_hex: str) -> None:
        """
        Load the key. Repeating the call with the same key is a no-op;
        a different key is rejected rather than swapped under live readers.
        """
        key = parse_hex_key(key_hex)
        if self._key is not None:
            if hmac.compare_digest(self._key, key):
                return
            raise ConfigurationError("Encryption key already initialized with different material")
        self._key = key
        self._aead = AESGCM(key)
        logger.info("PII encryption key loaded (%d-bit)", KEY_LENGTH * 8)

    def _cipher(self) -> AESGCM:
        if self._aead is None:
            raise ConfigurationError("Encryption key not initialized")
        return self._aead

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> tuple[bytes, bytes, bytes]:
        """Encrypt under a fresh random IV. Returns (ciphertext, iv, tag)."""
        cipher = self._cipher()
        iv = os.urandom(IV_LENGTH)
        sealed = cipher.encrypt(iv, plaintext, associated_data)
        return sealed[:-TAG_LENGTH], iv, sealed[-TAG_LENGTH:]

    def decrypt(
        self, ciphertext: bytes, iv: bytes, tag: bytes, associated_data: bytes
    ) -> bytes:
        """Verify the tag and decrypt. Any mismatch raises DecryptionError."""
        cipher = self._cipher()
        if len(iv) != IV_LENGTH:
            raise DecryptionError(f"Invalid IV length: {len(iv)}")
        if len(tag) != TAG_LENGTH:
            raise DecryptionError(f"Invalid tag length: {len(tag)}")
        try:
            return cipher.decrypt(iv, ciphertext + tag, associated_data)
        except InvalidTag:
            raise DecryptionError("Authentication tag verification failed") from None


def generate_key_hex() -> str:
    """Fresh random key in the configuration format, for provisioning."""
    return binascii.hexlify(os.urandom(KEY_LENGTH)).decode()
