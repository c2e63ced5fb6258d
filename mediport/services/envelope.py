"""
Envelope serialization for encrypted PII fields.

Demonstrates:
- A self-describing storage format (JSON + base64) validated against a schema
- Distinguishing "not an envelope" from "envelope failed authentication"
- Read-time classification of a column as plaintext, encrypted, or absent
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Union

import jsonschema

from mediport.exceptions import MalformedEnvelopeError
from mediport.schemas.envelope import ASSOCIATED_DATA, ENVELOPE_SCHEMA
from mediport.services.encryption import KeyManager

logger = logging.getLogger(__name__)

_validator = jsonschema.Draft7Validator(ENVELOPE_SCHEMA)

StoredBytes = Union[bytes, bytearray, memoryview, str]

ENCRYPTED_SUFFIX = "_encrypted"


@dataclass(frozen=True)
class Envelope:
    """One encrypted field value. Only meaningful as a complete unit."""

    ciphertext: bytes
    iv: bytes
    tag: bytes

    def to_dict(self) -> dict[str, str]:
        return {
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "iv": base64.b64encode(self.iv).decode("ascii"),
            "tag": base64.b64encode(self.tag).decode("ascii"),
        }


# ---------------------------------------------------------------------------
# Read-time field variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Plaintext:
    """Legacy plaintext mirror column, written before encryption was enabled."""

    value: str


@dataclass(frozen=True)
class Encrypted:
    stored: StoredBytes


@dataclass(frozen=True)
class Absent:
    pass


FieldValue = Union[Plaintext, Encrypted, Absent]


def storage_name(field_name: str) -> str:
    """Column name under which a PII field's envelope is stored."""
    return f"{field_name}{ENCRYPTED_SUFFIX}"


def read_field(record: Mapping[str, Any], field_name: str) -> FieldValue:
    """Classify one PII field of a stored record. The envelope wins over a mirror."""
    stored = record.get(storage_name(field_name))
    if stored:
        return Encrypted(stored)
    mirror = record.get(field_name)
    if isinstance(mirror, str) and mirror:
        return Plaintext(mirror)
    return Absent()


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


def _as_text(stored: StoredBytes) -> str:
    if isinstance(stored, str):
        return stored
    try:
        return bytes(stored).decode("utf-8")
    except UnicodeDecodeError:
        raise MalformedEnvelopeError("Stored value is not UTF-8 text") from None


def _b64(value: str, name: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error:
        raise MalformedEnvelopeError(f"Envelope member '{name}' is not valid base64") from None


class FieldCodec:
    """Converts between plaintext values, Envelopes, and stored bytes."""

    def __init__(self, key_manager: KeyManager, associated_data: bytes = ASSOCIATED_DATA):
        self.key_manager = key_manager
        self.associated_data = associated_data

    @staticmethod
    def serialize(envelope: Envelope) -> bytes:
        return json.dumps(envelope.to_dict(), separators=(",", ":")).encode("utf-8")

    @staticmethod
    def parse(stored: StoredBytes) -> Envelope:
        """
        Parse stored bytes into an Envelope.
        Anything that is not a complete, schema-valid envelope raises
        MalformedEnvelopeError (e.g. the legacy "12,34,56" byte dump).
        """
        text = _as_text(stored)
        try:
            data = json.loads(text)
        except (ValueError, RecursionError):
            raise MalformedEnvelopeError("Stored value is not an envelope") from None

        errors = [error.message for error in _validator.iter_errors(data)]
        if errors:
            raise MalformedEnvelopeError("Invalid envelope: " + "; ".join(errors))

        return Envelope(
            ciphertext=_b64(data["ciphertext"], "ciphertext"),
            iv=_b64(data["iv"], "iv"),
            tag=_b64(data["tag"], "tag"),
        )

    def seal(self, plaintext: bytes) -> Envelope:
        ciphertext, iv, tag = self.key_manager.encrypt(plaintext, self.associated_data)
        return Envelope(ciphertext=ciphertext, iv=iv, tag=tag)

    def open(self, envelope: Envelope) -> bytes:
        return self.key_manager.decrypt(
            envelope.ciphertext, envelope.iv, envelope.tag, self.associated_data
        )

    def encode_field(self, plaintext: str | None) -> bytes | None:
        """Encrypt one field value. Empty values are never stored."""
        if not plaintext:
            return None
        if not isinstance(plaintext, str):
            raise TypeError(f"PII field values must be str, got {type(plaintext).__name__}")
        return self.serialize(self.seal(plaintext.encode("utf-8")))

    def decode_field(self, stored: StoredBytes | None) -> str | None:
        """Decrypt one stored field. Returns None when nothing was stored."""
        if stored is None or len(stored) == 0:
            return None
        envelope = self.parse(stored)
        plaintext = self.open(envelope)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise MalformedEnvelopeError("Decrypted value is not UTF-8 text") from None

    def decode_json(self, stored: StoredBytes) -> Any:
        """Decrypt an envelope whose plaintext is a JSON document."""
        text = self.decode_field(stored)
        if text is None:
            raise MalformedEnvelopeError("Encrypted payload is empty")
        try:
            return json.loads(text)
        except (ValueError, RecursionError):
            raise MalformedEnvelopeError("Encrypted payload is not JSON") from None
