"""
Decryption-on-read for stored entities.

Demonstrates:
- Per-field failure isolation (one corrupted envelope never hides the rest)
- Masked fallback for fields that cannot be decrypted
- Order-preserving parallel batch decryption
- Audit events for every decrypt attempt on sensitive fields
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from mediport.exceptions import DecryptionError, MalformedEnvelopeError
from mediport.services.audit import AuditEvent, AuditSink, emit
from mediport.services.envelope import Absent, Plaintext, read_field
from mediport.services.pii_protection import PIIProtectionService

logger = logging.getLogger(__name__)

ENCRYPTED_PLACEHOLDER = "[Encrypted]"

MALFORMED = "malformed"
TAMPERED = "decryption_failed"
UNREADABLE = "unreadable"


@dataclass
class DecryptedEntity:
    """Plaintext view of one stored entity."""

    entity_type: str
    entity_id: Any = None
    values: dict[str, str] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def masked(self, placeholder: str = ENCRYPTED_PLACEHOLDER) -> dict[str, str]:
        """Decrypted values with the placeholder substituted for failed fields."""
        view = dict(self.values)
        for name in self.failures:
            view[name] = placeholder
        return view


class PIIDecryptionService:
    """Rebuilds plaintext views of entities, degrading per field on failure."""

    def __init__(
        self,
        protection: PIIProtectionService,
        audit_sink: AuditSink | None = None,
        max_workers: int = 4,
    ):
        self.protection = protection
        self.audit_sink = audit_sink
        self.max_workers = max_workers

    def with_sink(self, audit_sink: AuditSink | None) -> PIIDecryptionService:
        """Same service, reporting to a different audit sink (e.g. per request)."""
        return PIIDecryptionService(self.protection, audit_sink, self.max_workers)

    def _decrypt(self, entity_type: str, stored: Mapping[str, Any]) -> DecryptedEntity:
        result = DecryptedEntity(entity_type=entity_type, entity_id=stored.get("id"))
        codec = self.protection.codec

        for name in self.protection.pii_fields(entity_type):
            value = read_field(stored, name)
            if isinstance(value, Absent):
                continue
            if isinstance(value, Plaintext):
                result.values[name] = value.value
                continue
            try:
                plaintext = codec.decode_field(value.stored)
            except MalformedEnvelopeError as exc:
                logger.warning(
                    "Malformed envelope for %s.%s (id=%s): %s",
                    entity_type, name, result.entity_id, exc,
                )
                result.failures[name] = MALFORMED
                continue
            except DecryptionError as exc:
                logger.warning(
                    "Failed to decrypt %s.%s (id=%s): %s",
                    entity_type, name, result.entity_id, exc,
                )
                result.failures[name] = TAMPERED
                continue
            if plaintext is not None:
                result.values[name] = plaintext

        return result

    def _fallback(self, entity_type: str, stored: Any) -> DecryptedEntity:
        """Every field that has any stored representation is reported as failed."""
        result = DecryptedEntity(entity_type=entity_type)
        if isinstance(stored, Mapping):
            result.entity_id = stored.get("id")
            for name in self.protection.pii_fields(entity_type):
                if not isinstance(read_field(stored, name), Absent):
                    result.failures[name] = UNREADABLE
        return result

    def _safe_decrypt(self, entity_type: str, stored: Any) -> DecryptedEntity:
        try:
            return self._decrypt(entity_type, stored)
        except Exception:
            logger.exception("Could not decrypt %s entity; using masked fallback", entity_type)
            return self._fallback(entity_type, stored)

    def _audit(self, result: DecryptedEntity, actor: str | None) -> None:
        attempted = sorted([*result.values, *result.failures])
        if not attempted:
            return
        emit(
            self.audit_sink,
            AuditEvent(
                actor=actor or "system",
                action="PII_DECRYPT",
                success=result.ok,
                resource_type=result.entity_type,
                resource_id=result.entity_id,
                metadata={
                    "fields": attempted,
                    "failures": dict(result.failures),
                    "security_relevant": TAMPERED in result.failures.values(),
                },
            ),
        )

    def decrypt_entity(
        self, entity_type: str, stored: Mapping[str, Any], actor: str | None = None
    ) -> DecryptedEntity:
        self.protection.require_ready()
        result = self._decrypt(entity_type, stored)
        self._audit(result, actor)
        return result

    def decrypt_user_pii(self, stored_user: Mapping[str, Any], actor: str | None = None) -> dict[str, str]:
        """Successfully decrypted user fields; failed fields are omitted."""
        return self.decrypt_entity("user", stored_user, actor).values

    def decrypt_patient_pii(
        self, stored_patient: Mapping[str, Any], actor: str | None = None
    ) -> dict[str, str]:
        return self.decrypt_entity("patient", stored_patient, actor).values

    def decrypt_entity_batch(
        self, entity_type: str, entities: Sequence[Any], actor: str | None = None
    ) -> list[DecryptedEntity]:
        """
        Decrypt many entities in parallel.
        results[i] always corresponds to entities[i]; failed entities come
        back as masked fallbacks rather than being dropped.
        """
        if not entities:
            return []
        self.protection.require_ready()
        self.protection.pii_fields(entity_type)
        workers = max(1, min(self.max_workers, len(entities)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(
                pool.map(lambda stored: self._safe_decrypt(entity_type, stored), entities)
            )

        for result in results:
            self._audit(result, actor)
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "Decrypted %d %s entities (%d with failures)", len(results), entity_type, failed
        )
        return results
