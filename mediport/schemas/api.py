"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Envelope (client-side encrypted payloads)
# ---------------------------------------------------------------------------

class EnvelopePayload(BaseModel):
    """Envelope produced by ClientSideEncryption – base64 members."""
    ciphertext: str
    iv: str
    tag: str


class EncryptedProfileUpdate(BaseModel):
    payload: EnvelopePayload


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserCreate(BaseModel):
    role: str = Field("PATIENT", pattern="^(SUPER_ADMIN|ADMIN|DOCTOR|PATIENT)$")
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    specialty: str | None = None
    medical_license_number: str | None = None


class UserProfileResponse(BaseModel):
    id: UUID
    role: str
    created_at: datetime
    pii: dict[str, str]
    failed_fields: list[str] = []


class ErasureRequest(BaseModel):
    fields: list[str] | None = None


class ErasureResponse(BaseModel):
    id: UUID
    erased_fields: list[str]


# ---------------------------------------------------------------------------
# Patients / medical records
# ---------------------------------------------------------------------------

class PatientCreate(BaseModel):
    user_id: UUID
    mrn: str = Field(..., min_length=1, max_length=64)
    assigned_provider_id: UUID | None = None
    phone: str | None = None
    address_street: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    address_zip: str | None = None
    address_country: str | None = None
    emergency_name: str | None = None
    emergency_relationship: str | None = None
    emergency_phone: str | None = None


class PatientResponse(BaseModel):
    id: UUID
    mrn: str
    user_id: UUID
    assigned_provider_id: UUID | None
    pii: dict[str, str]
    failed_fields: list[str] = []


class MedicalRecordCreate(BaseModel):
    patient_id: UUID
    title: str = Field(..., min_length=1, max_length=256)
    record_type: str = "general"
    description: str | None = None
    findings: str | None = None
    recommendations: str | None = None


class MedicalRecordResponse(BaseModel):
    id: UUID
    patient_id: UUID
    author_id: UUID
    title: str
    record_type: str | None
    pii: dict[str, str]
    failed_fields: list[str] = []


# ---------------------------------------------------------------------------
# Field decryption
# ---------------------------------------------------------------------------

class DecryptFieldRequest(BaseModel):
    entity_type: str
    entity_id: UUID
    fields: list[str] = Field(..., min_length=1)


class DecryptFieldResponse(BaseModel):
    entity_type: str
    entity_id: UUID
    data: dict[str, str | None]
    failed_fields: list[str] = []


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
    encryption: str = "initialized"
