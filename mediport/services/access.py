"""
Who may decrypt which entity.

The authenticated principal is produced upstream (JWT verification happens
at the gateway); this module only decides access for an already-known
identity and role.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID

from mediport.exceptions import AccessDeniedError

SUPER_ADMIN = "SUPER_ADMIN"
ADMIN = "ADMIN"
DOCTOR = "DOCTOR"
PATIENT = "PATIENT"

ROLES = (SUPER_ADMIN, ADMIN, DOCTOR, PATIENT)
ADMIN_ROLES = (SUPER_ADMIN, ADMIN)


@dataclass(frozen=True)
class Principal:
    user_id: UUID
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def _owns_patient(principal: Principal, patient: Mapping[str, Any]) -> bool:
    if patient.get("user_id") == principal.user_id:
        return True
    return principal.role == DOCTOR and patient.get("assigned_provider_id") == principal.user_id


def can_decrypt(
    principal: Principal,
    entity_type: str,
    entity: Mapping[str, Any],
    patient: Mapping[str, Any] | None = None,
) -> bool:
    """
    *patient* is the owning patient row for medical records and
    consultations.
    """
    if principal.is_admin:
        return True

    if entity_type == "user":
        return entity.get("id") == principal.user_id

    if entity_type == "patient":
        return _owns_patient(principal, entity)

    if entity_type == "medical_record":
        if principal.role == DOCTOR and entity.get("author_id") == principal.user_id:
            return True
        return patient is not None and _owns_patient(principal, patient)

    if entity_type == "consultation":
        if entity.get("provider_id") == principal.user_id:
            return True
        return patient is not None and patient.get("user_id") == principal.user_id

    return False


def require_decrypt_access(
    principal: Principal,
    entity_type: str,
    entity: Mapping[str, Any],
    patient: Mapping[str, Any] | None = None,
) -> None:
    if not can_decrypt(principal, entity_type, entity, patient):
        raise AccessDeniedError(f"{principal.role} may not decrypt this {entity_type}")
