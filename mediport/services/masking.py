"""Display masking for PII values returned to less-privileged views."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from mediport.services.envelope import ENCRYPTED_SUFFIX


def _mask_name(value: str) -> str:
    return value[0] + "*" * (len(value) - 1)


def _mask_email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep:
        return _mask_default(value)
    return f"{local[:1]}***@{domain}"


def _mask_tail(value: str, visible: int = 4) -> str:
    digits = [c for c in value if c.isalnum()]
    if len(digits) <= visible:
        return "*" * len(digits)
    return "*" * (len(digits) - visible) + "".join(digits[-visible:])


def _mask_default(value: str) -> str:
    if len(value) <= 2:
        return "*" * len(value)
    return value[0] + "*" * (len(value) - 2) + value[-1]


_MASKERS = {
    "name": _mask_name,
    "email": _mask_email,
    "phone": _mask_tail,
    "license": _mask_tail,
}

# Which masking rule applies to each user PII field.
FIELD_KINDS = {
    "first_name": "name",
    "last_name": "name",
    "email": "email",
    "phone": "phone",
    "medical_license_number": "license",
}


def mask_pii(value: str, kind: str = "default") -> str:
    if not value:
        return value
    return _MASKERS.get(kind, _mask_default)(value)


def prepare_for_response(
    record: Mapping[str, Any],
    pii_fields: tuple[str, ...],
    masked: bool = False,
    keep: Iterable[str] = (),
) -> dict[str, Any]:
    """
    Strip stored envelopes from a record. PII fields are either masked or
    removed entirely; names in ``keep`` (e.g. "[Encrypted]" placeholders)
    are returned as they are.
    """
    keep = frozenset(keep)
    response: dict[str, Any] = {}
    for name, value in record.items():
        if name.endswith(ENCRYPTED_SUFFIX):
            continue
        if name in pii_fields and name not in keep:
            if masked and isinstance(value, str):
                response[name] = mask_pii(value, FIELD_KINDS.get(name, "default"))
            continue
        response[name] = value
    return response
