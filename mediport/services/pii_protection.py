"""
Entity/field-aware PII encryption.

Demonstrates:
- A single configuration of which fields are PII, per entity type
- All-or-nothing encryption of an entity before it is written
- Failing loudly when asked to encrypt a field that is not configured
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from mediport.exceptions import ConfigurationError, FieldNotConfiguredError
from mediport.services.encryption import KeyManager
from mediport.services.envelope import FieldCodec, StoredBytes, storage_name

logger = logging.getLogger(__name__)


PII_FIELDS: dict[str, tuple[str, ...]] = {
    "user": (
        "first_name",
        "last_name",
        "email",
        "phone",
        "specialty",
        "medical_license_number",
    ),
    "patient": (
        "phone",
        "address_street",
        "address_city",
        "address_state",
        "address_zip",
        "address_country",
        "emergency_name",
        "emergency_relationship",
        "emergency_phone",
    ),
    "medical_record": (
        "description",
        "findings",
        "recommendations",
    ),
    "consultation": (
        "chief_complaint",
        "symptoms",
        "diagnosis",
        "treatment_plan",
        "follow_up_instructions",
    ),
}


class PIIProtectionService:
    """Encrypts configured PII fields of domain records."""

    def __init__(
        self,
        key_manager: KeyManager | None = None,
        pii_fields: Mapping[str, Iterable[str]] | None = None,
    ):
        self.key_manager = key_manager or KeyManager()
        self.codec = FieldCodec(self.key_manager)
        self._pii_fields = {
            entity_type: tuple(fields)
            for entity_type, fields in (pii_fields or PII_FIELDS).items()
        }

    def initialize(self, key_hex: str) -> None:
        self.key_manager.initialize(key_hex)

    @property
    def entity_types(self) -> tuple[str, ...]:
        return tuple(self._pii_fields)

    def pii_fields(self, entity_type: str) -> tuple[str, ...]:
        try:
            return self._pii_fields[entity_type]
        except KeyError:
            raise FieldNotConfiguredError(entity_type, "*") from None

    def require_ready(self) -> None:
        if not self.key_manager.is_initialized:
            raise ConfigurationError("Encryption key not initialized")

    def _require_field(self, entity_type: str, field_name: str) -> None:
        if field_name not in self.pii_fields(entity_type):
            raise FieldNotConfiguredError(entity_type, field_name)

    def encrypt_field(
        self, entity_type: str, field_name: str, plaintext: str | None
    ) -> bytes | None:
        """Encrypt one configured field. Returns None for an empty value."""
        self.require_ready()
        self._require_field(entity_type, field_name)
        return self.codec.encode_field(plaintext)

    def decrypt_field(
        self, entity_type: str, field_name: str, stored: StoredBytes | None
    ) -> str | None:
        """Strict decrypt; typed errors propagate to the caller."""
        self.require_ready()
        self._require_field(entity_type, field_name)
        return self.codec.decode_field(stored)

    def encrypt_entity(self, entity_type: str, plain_record: Mapping[str, Any]) -> dict[str, Any]:
        """
        Replace every non-empty PII field with its encrypted counterpart.
        Blank PII fields are dropped; everything else passes through.
        Any failure aborts the whole record.
        """
        self.require_ready()
        pii = self.pii_fields(entity_type)
        protected: dict[str, Any] = {}
        encrypted_count = 0

        for name, value in plain_record.items():
            if name not in pii:
                protected[name] = value
                continue
            stored = self.codec.encode_field(value)
            if stored is not None:
                protected[storage_name(name)] = stored
                encrypted_count += 1

        logger.debug("Encrypted %d PII fields on %s", encrypted_count, entity_type)
        return protected

    def erase_fields(self, entity_type: str, fields: Iterable[str] | None = None) -> dict[str, None]:
        """Column assignments that null the given PII fields (all by default)."""
        targets = tuple(fields) if fields is not None else self.pii_fields(entity_type)
        for name in targets:
            self._require_field(entity_type, name)
        return {storage_name(name): None for name in targets}
