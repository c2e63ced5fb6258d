"""
FastAPI routes – the PII-aware API surface.

Demonstrates:
- Encrypting PII before it reaches the database, decrypting on read
- Accepting client-side encrypted profile updates
- Access checks and audit logging around every decrypt
- Masked fallback ("[Encrypted]") instead of errors for corrupted fields
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from mediport.config import settings
from mediport.exceptions import (
    AccessDeniedError,
    DecryptionError,
    FieldNotConfiguredError,
    MalformedEnvelopeError,
)
from mediport.models.database import get_db, row_to_dict
from mediport.models.entities import Consultation, MedicalRecord, Patient, User
from mediport.schemas.api import (
    DecryptFieldRequest,
    DecryptFieldResponse,
    EncryptedProfileUpdate,
    ErasureRequest,
    ErasureResponse,
    HealthResponse,
    MedicalRecordCreate,
    MedicalRecordResponse,
    PatientCreate,
    PatientResponse,
    UserCreate,
    UserProfileResponse,
)
from mediport.services.access import (
    ADMIN_ROLES,
    DOCTOR,
    ROLES,
    Principal,
    require_decrypt_access,
)
from mediport.services.audit import database_sink, log_action
from mediport.services.context import PIIContext, get_pii_context
from mediport.services.envelope import storage_name
from mediport.services.masking import prepare_for_response
from mediport.services.pii_decryption import DecryptedEntity, PIIDecryptionService
from mediport.services.validation import validate_profile_update

logger = logging.getLogger(__name__)

router = APIRouter()

ENTITY_MODELS = {
    "user": User,
    "patient": Patient,
    "medical_record": MedicalRecord,
    "consultation": Consultation,
}

# Plaintext columns left over from before field encryption
LEGACY_MIRRORS = {"user": ("first_name", "last_name")}


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Principal:
    """
    Authenticated caller, as forwarded by the gateway after token
    verification.
    """
    if not x_user_id or x_user_role not in ROLES:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Authentication required") from None
    return Principal(user_id=user_id, role=x_user_role)


def _decryptor(pii: PIIContext, db: Session) -> PIIDecryptionService:
    return pii.decryption.with_sink(database_sink(db))


def _get_or_404(db: Session, model, entity_id: UUID):
    row = db.get(model, entity_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"{model.__name__} not found")
    return row


def _check_access(principal: Principal, entity_type: str, entity: dict, patient: dict | None = None):
    try:
        require_decrypt_access(principal, entity_type, entity, patient)
    except AccessDeniedError:
        logger.warning(
            "Decrypt denied: %s %s on %s/%s",
            principal.role, principal.user_id, entity_type, entity.get("id"),
        )
        raise HTTPException(
            status_code=403, detail="You do not have permission to decrypt this data"
        ) from None


def _apply(row, values: dict[str, Any]) -> None:
    for name, value in values.items():
        setattr(row, name, value)


def _pii_view(result: DecryptedEntity) -> tuple[dict[str, str], list[str]]:
    return result.masked(), sorted(result.failures)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(request: Request, db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity and key loading."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        db_status = "disconnected"
    pii = getattr(request.app.state, "pii", None)
    initialized = pii is not None and pii.protection.key_manager.is_initialized
    return HealthResponse(
        status="healthy" if initialized else "degraded",
        environment=settings.ENVIRONMENT,
        database=db_status,
        encryption="initialized" if initialized else "unavailable",
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@router.post("/users", response_model=UserProfileResponse, status_code=201)
def create_user(
    request: UserCreate,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
):
    """Register a user. PII fields are encrypted before the row is written."""
    plain = request.model_dump()
    protected = pii.protection.encrypt_entity("user", plain)

    user = User(**protected)
    db.add(user)
    db.flush()

    log_action(
        db,
        actor=str(user.id),
        action="USER_CREATED",
        resource_type="user",
        resource_id=user.id,
        detail={"encrypted_fields": sorted(k for k in protected if k.endswith("_encrypted"))},
    )
    db.commit()

    provided = {
        name: value
        for name, value in plain.items()
        if name in pii.protection.pii_fields("user") and value
    }
    return UserProfileResponse(
        id=user.id, role=user.role, created_at=user.created_at, pii=provided
    )


@router.get("/users/{user_id}/profile", response_model=UserProfileResponse)
def get_user_profile(
    user_id: UUID,
    masked: bool = False,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    """Decrypted profile. Fields that cannot be decrypted read "[Encrypted]"."""
    user = _get_or_404(db, User, user_id)
    stored = row_to_dict(user)
    _check_access(principal, "user", stored)

    result = _decryptor(pii, db).decrypt_entity("user", stored, actor=str(principal.user_id))
    db.commit()

    values, failed = _pii_view(result)
    if masked:
        values = prepare_for_response(
            values, pii.protection.pii_fields("user"), masked=True, keep=result.failures
        )
    return UserProfileResponse(
        id=user.id, role=user.role, created_at=user.created_at, pii=values, failed_fields=failed
    )


@router.put("/users/{user_id}/profile", response_model=UserProfileResponse)
def update_user_profile(
    user_id: UUID,
    request: EncryptedProfileUpdate,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    """
    Accept a profile update encrypted on the client with the boundary key.
    The payload is decoded, validated, and re-encrypted under the master key;
    each changed field gets a new envelope.
    """
    if pii.payload_codec is None:
        raise HTTPException(status_code=503, detail="Encrypted updates are not available")

    user = _get_or_404(db, User, user_id)
    if principal.user_id != user.id and principal.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="You may only update your own profile")

    stored_payload = request.payload.model_dump_json().encode("utf-8")
    try:
        changes = pii.payload_codec.decode_json(stored_payload)
    except (MalformedEnvelopeError, DecryptionError) as exc:
        logger.warning("Rejected encrypted profile update for %s: %s", user_id, exc)
        raise HTTPException(status_code=400, detail="Invalid encrypted payload") from None

    errors = validate_profile_update(changes)
    if errors:
        raise HTTPException(status_code=422, detail=errors)

    protected = pii.protection.encrypt_entity("user", changes)
    _apply(user, protected)
    for name in LEGACY_MIRRORS["user"]:
        if name in changes:
            setattr(user, name, None)

    log_action(
        db,
        actor=str(principal.user_id),
        action="USER_UPDATED",
        resource_type="user",
        resource_id=user.id,
        detail={"fields": sorted(changes)},
    )
    db.flush()

    result = _decryptor(pii, db).decrypt_entity(
        "user", row_to_dict(user), actor=str(principal.user_id)
    )
    db.commit()
    values, failed = _pii_view(result)
    return UserProfileResponse(
        id=user.id, role=user.role, created_at=user.created_at, pii=values, failed_fields=failed
    )


@router.delete("/users/{user_id}/pii", response_model=ErasureResponse)
def erase_user_pii(
    user_id: UUID,
    request: ErasureRequest | None = None,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    """Right to erasure: null the stored envelopes (and any legacy mirrors)."""
    user = _get_or_404(db, User, user_id)
    if principal.user_id != user.id and principal.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="You may only erase your own data")

    fields = request.fields if request is not None else None
    try:
        assignments = pii.protection.erase_fields("user", fields)
    except FieldNotConfiguredError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None

    erased = [name for name in pii.protection.pii_fields("user") if storage_name(name) in assignments]
    _apply(user, assignments)
    for name in LEGACY_MIRRORS["user"]:
        if name in erased:
            setattr(user, name, None)

    log_action(
        db,
        actor=str(principal.user_id),
        action="DATA_DELETED",
        resource_type="user",
        resource_id=user.id,
        detail={"erased_fields": erased},
    )
    db.commit()
    return ErasureResponse(id=user.id, erased_fields=erased)


# ---------------------------------------------------------------------------
# Patients
# ---------------------------------------------------------------------------

@router.post("/patients", response_model=PatientResponse, status_code=201)
def create_patient(
    request: PatientCreate,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    if principal.role not in (*ADMIN_ROLES, DOCTOR) and principal.user_id != request.user_id:
        raise HTTPException(status_code=403, detail="Not allowed to create this patient")
    _get_or_404(db, User, request.user_id)

    plain = request.model_dump()
    protected = pii.protection.encrypt_entity("patient", plain)
    patient = Patient(**protected)
    db.add(patient)
    db.flush()

    log_action(
        db,
        actor=str(principal.user_id),
        action="DATA_CREATED",
        resource_type="patient",
        resource_id=patient.id,
        detail={"mrn": patient.mrn},
    )
    db.commit()

    provided = {
        name: value
        for name, value in plain.items()
        if name in pii.protection.pii_fields("patient") and value
    }
    return PatientResponse(
        id=patient.id,
        mrn=patient.mrn,
        user_id=patient.user_id,
        assigned_provider_id=patient.assigned_provider_id,
        pii=provided,
    )


@router.get("/patients", response_model=list[PatientResponse])
def list_patients(
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    """
    Patients visible to the caller, decrypted as one batch. One corrupted
    row shows "[Encrypted]" placeholders; it never hides the others.
    """
    query = db.query(Patient).order_by(Patient.created_at, Patient.mrn)
    if principal.role == DOCTOR:
        query = query.filter(Patient.assigned_provider_id == principal.user_id)
    elif principal.role not in ADMIN_ROLES:
        query = query.filter(Patient.user_id == principal.user_id)
    patients = query.all()

    stored = [row_to_dict(p) for p in patients]
    results = _decryptor(pii, db).decrypt_entity_batch(
        "patient", stored, actor=str(principal.user_id)
    )
    db.commit()

    response = []
    for patient, result in zip(patients, results):
        values, failed = _pii_view(result)
        response.append(
            PatientResponse(
                id=patient.id,
                mrn=patient.mrn,
                user_id=patient.user_id,
                assigned_provider_id=patient.assigned_provider_id,
                pii=values,
                failed_fields=failed,
            )
        )
    return response


# ---------------------------------------------------------------------------
# Medical records
# ---------------------------------------------------------------------------

@router.post("/medical-records", response_model=MedicalRecordResponse, status_code=201)
def create_medical_record(
    request: MedicalRecordCreate,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    if principal.role not in (*ADMIN_ROLES, DOCTOR):
        raise HTTPException(status_code=403, detail="Only clinicians may create medical records")
    _get_or_404(db, Patient, request.patient_id)

    plain = request.model_dump()
    protected = pii.protection.encrypt_entity("medical_record", plain)
    record = MedicalRecord(author_id=principal.user_id, **protected)
    db.add(record)
    db.flush()

    log_action(
        db,
        actor=str(principal.user_id),
        action="DATA_CREATED",
        resource_type="medical_record",
        resource_id=record.id,
        detail={"patient_id": str(record.patient_id)},
    )
    db.commit()

    provided = {
        name: value
        for name, value in plain.items()
        if name in pii.protection.pii_fields("medical_record") and value
    }
    return MedicalRecordResponse(
        id=record.id,
        patient_id=record.patient_id,
        author_id=record.author_id,
        title=record.title,
        record_type=record.record_type,
        pii=provided,
    )


@router.get("/medical-records/{record_id}", response_model=MedicalRecordResponse)
def get_medical_record(
    record_id: UUID,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    record = _get_or_404(db, MedicalRecord, record_id)
    stored = row_to_dict(record)
    patient = row_to_dict(_get_or_404(db, Patient, record.patient_id))
    _check_access(principal, "medical_record", stored, patient)

    result = _decryptor(pii, db).decrypt_entity(
        "medical_record", stored, actor=str(principal.user_id)
    )
    db.commit()
    values, failed = _pii_view(result)
    return MedicalRecordResponse(
        id=record.id,
        patient_id=record.patient_id,
        author_id=record.author_id,
        title=record.title,
        record_type=record.record_type,
        pii=values,
        failed_fields=failed,
    )


# ---------------------------------------------------------------------------
# Field-level decryption
# ---------------------------------------------------------------------------

@router.post("/decrypt-field", response_model=DecryptFieldResponse)
def decrypt_fields(
    request: DecryptFieldRequest,
    db: Session = Depends(get_db),
    pii: PIIContext = Depends(get_pii_context),
    principal: Principal = Depends(get_principal),
):
    """Decrypt selected PII fields of one entity for display."""
    model = ENTITY_MODELS.get(request.entity_type)
    if model is None:
        raise HTTPException(status_code=400, detail="Invalid entity type")

    configured = pii.protection.pii_fields(request.entity_type)
    unknown = [name for name in request.fields if name not in configured]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Not PII fields: {', '.join(unknown)}")

    entity = row_to_dict(_get_or_404(db, model, request.entity_id))
    patient = None
    if request.entity_type in ("medical_record", "consultation"):
        patient = row_to_dict(_get_or_404(db, Patient, entity["patient_id"]))

    try:
        require_decrypt_access(principal, request.entity_type, entity, patient)
    except AccessDeniedError:
        log_action(
            db,
            actor=str(principal.user_id),
            action="PERMISSION_DENIED",
            resource_type=f"{request.entity_type}_decryption",
            resource_id=request.entity_id,
            success=False,
            detail={"fields": request.fields},
        )
        db.commit()
        raise HTTPException(
            status_code=403, detail="You do not have permission to decrypt this data"
        ) from None

    # Only the requested columns are handed to the decryptor.
    subset: dict[str, Any] = {"id": entity["id"]}
    for name in request.fields:
        subset[storage_name(name)] = entity.get(storage_name(name))
        if name in LEGACY_MIRRORS.get(request.entity_type, ()):
            subset[name] = entity.get(name)

    result = _decryptor(pii, db).decrypt_entity(
        request.entity_type, subset, actor=str(principal.user_id)
    )
    db.commit()

    values, failed = _pii_view(result)
    return DecryptFieldResponse(
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        data={name: values.get(name) for name in request.fields},
        failed_fields=failed,
    )
