"""Error taxonomy for PII protection."""


class PIIError(Exception):
    """Base class for every PII protection failure."""


class ConfigurationError(PIIError):
    """Encryption key missing, malformed, or the service was used before initialization."""


class MalformedEnvelopeError(PIIError):
    """Stored bytes are not a valid envelope (legacy rows, garbage, missing members)."""


class DecryptionError(PIIError):
    """Envelope is well-formed but failed authentication."""


class FieldNotConfiguredError(PIIError):
    """Encryption requested for a field that is not configured as PII."""

    def __init__(self, entity_type: str, field_name: str):
        self.entity_type = entity_type
        self.field_name = field_name
        super().__init__(f"'{field_name}' is not a PII field of '{entity_type}'")


class AccessDeniedError(PIIError):
    """The calling principal may not decrypt this entity."""
