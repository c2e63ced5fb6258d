"""
Process-wide PII services, built once at startup.

The context is attached to the FastAPI application and handed to request
handlers through a dependency, instead of living in module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Request

from mediport.config import Settings
from mediport.services.audit import AuditSink, logging_sink
from mediport.services.encryption import KeyManager
from mediport.services.envelope import FieldCodec
from mediport.services.pii_decryption import PIIDecryptionService
from mediport.services.pii_protection import PIIProtectionService

logger = logging.getLogger(__name__)


@dataclass
class PIIContext:
    protection: PIIProtectionService
    decryption: PIIDecryptionService
    # Decodes client-side encrypted request payloads; None when no boundary key is set.
    payload_codec: FieldCodec | None = None


def build_pii_context(
    key_hex: str,
    client_key_hex: str | None = None,
    audit_sink: AuditSink | None = logging_sink,
    max_workers: int = 4,
) -> PIIContext:
    """Fails with ConfigurationError when either key is malformed."""
    protection = PIIProtectionService()
    protection.initialize(key_hex)
    decryption = PIIDecryptionService(protection, audit_sink=audit_sink, max_workers=max_workers)

    payload_codec = None
    if client_key_hex:
        payload_codec = FieldCodec(KeyManager(client_key_hex))
    else:
        logger.warning("CLIENT_ENCRYPTION_KEY not set; encrypted profile updates are disabled")

    return PIIContext(protection=protection, decryption=decryption, payload_codec=payload_codec)


def context_from_settings(settings: Settings) -> PIIContext:
    return build_pii_context(
        settings.PII_ENCRYPTION_KEY,
        settings.CLIENT_ENCRYPTION_KEY or None,
        max_workers=settings.PII_DECRYPT_WORKERS,
    )


def get_pii_context(request: Request) -> PIIContext:
    """FastAPI dependency returning the context created at startup."""
    return request.app.state.pii
