"""
Boundary-side encryption of request payloads (defense in depth over TLS).

This is the sending half of the envelope contract in
mediport.schemas.envelope. It deliberately does not reuse the server's
FieldCodec or KeyManager; only the shared constants are imported, so the
two sides can be checked against each other.
"""

from __future__ import annotations

import base64
import json
import os
from typing import Any

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mediport.exceptions import ConfigurationError
from mediport.schemas.envelope import ASSOCIATED_DATA, IV_LENGTH, KEY_LENGTH, TAG_LENGTH


def canonical_json(data: Any) -> bytes:
    """Stable byte form of a JSON-serializable object."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


class ClientSideEncryption:
    """Encrypts a whole payload into one envelope under the boundary key."""

    def __init__(self, key_hex: str):
        try:
            key = bytes.fromhex(key_hex)
        except (TypeError, ValueError):
            raise ConfigurationError("Invalid boundary key format: expected hex") from None
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(f"Boundary key must be {KEY_LENGTH} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    def encrypt_payload(self, data: Any) -> dict[str, str]:
        """Envelope over the canonical JSON of *data*, as base64 members."""
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, canonical_json(data), ASSOCIATED_DATA)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return {
            "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
            "iv": base64.b64encode(iv).decode("ascii"),
            "tag": base64.b64encode(tag).decode("ascii"),
        }

    def encrypt_payload_bytes(self, data: Any) -> bytes:
        """Serialized envelope, ready to send as a request body."""
        return json.dumps(self.encrypt_payload(data)).encode("utf-8")
