"""
Data models for the PII-bearing healthcare domain.

Demonstrates:
- Encrypted PII columns (opaque envelope bytes) alongside non-sensitive fields
- Legacy plaintext mirror columns, nullable, kept for pre-encryption rows
- Audit trail for compliance
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    String,
    Uuid,
)

from mediport.models.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# User – account identity (contains PII)
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    role = Column(String(32), nullable=False, default="PATIENT")

    # PII – envelope JSON bytes, see mediport.schemas.envelope
    first_name_encrypted = Column(LargeBinary, nullable=True)
    last_name_encrypted = Column(LargeBinary, nullable=True)
    email_encrypted = Column(LargeBinary, nullable=True)
    phone_encrypted = Column(LargeBinary, nullable=True)
    specialty_encrypted = Column(LargeBinary, nullable=True)
    medical_license_number_encrypted = Column(LargeBinary, nullable=True)

    # Legacy plaintext mirrors from before field encryption; never written now
    first_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


# ---------------------------------------------------------------------------
# Patient – clinical profile linked to a user
# ---------------------------------------------------------------------------
class Patient(Base):
    __tablename__ = "patients"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    assigned_provider_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    mrn = Column(String(64), unique=True, nullable=False, comment="Medical Record Number")

    phone_encrypted = Column(LargeBinary, nullable=True)
    address_street_encrypted = Column(LargeBinary, nullable=True)
    address_city_encrypted = Column(LargeBinary, nullable=True)
    address_state_encrypted = Column(LargeBinary, nullable=True)
    address_zip_encrypted = Column(LargeBinary, nullable=True)
    address_country_encrypted = Column(LargeBinary, nullable=True)
    emergency_name_encrypted = Column(LargeBinary, nullable=True)
    emergency_relationship_encrypted = Column(LargeBinary, nullable=True)
    emergency_phone_encrypted = Column(LargeBinary, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_patients_user", "user_id"),)


# ---------------------------------------------------------------------------
# Medical Record – clinician-authored notes about a patient
# ---------------------------------------------------------------------------
class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id"), nullable=False)
    author_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    title = Column(String(256), nullable=False)
    record_type = Column(String(64), default="general")

    description_encrypted = Column(LargeBinary, nullable=True)
    findings_encrypted = Column(LargeBinary, nullable=True)
    recommendations_encrypted = Column(LargeBinary, nullable=True)

    recorded_at = Column(DateTime, default=_utcnow)

    __table_args__ = (Index("ix_medical_record_patient", "patient_id"),)


# ---------------------------------------------------------------------------
# Consultation – visit notes between a provider and a patient
# ---------------------------------------------------------------------------
class Consultation(Base):
    __tablename__ = "consultations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patients.id"), nullable=False)
    provider_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    chief_complaint_encrypted = Column(LargeBinary, nullable=True)
    symptoms_encrypted = Column(LargeBinary, nullable=True)
    diagnosis_encrypted = Column(LargeBinary, nullable=True)
    treatment_plan_encrypted = Column(LargeBinary, nullable=True)
    follow_up_instructions_encrypted = Column(LargeBinary, nullable=True)

    consulted_at = Column(DateTime, default=_utcnow)


# ---------------------------------------------------------------------------
# Audit Log – immutable compliance trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(64), nullable=False)
    resource_type = Column(String(64), nullable=False)
    resource_id = Column(Uuid, nullable=True)
    success = Column(Boolean, default=True, nullable=False)
    detail = Column(JSON, comment="Fields touched and failure reasons; never plaintext")
    timestamp = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_timestamp", "timestamp"),)
