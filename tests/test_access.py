"""Tests for decrypt access rules and response masking."""

import uuid

import pytest

from mediport.exceptions import AccessDeniedError
from mediport.services.access import Principal, can_decrypt, require_decrypt_access
from mediport.services.masking import mask_pii, prepare_for_response

PATIENT_USER = uuid.uuid4()
DOCTOR_ID = uuid.uuid4()
OTHER_DOCTOR = uuid.uuid4()


def _patient():
    return {"id": uuid.uuid4(), "user_id": PATIENT_USER, "assigned_provider_id": DOCTOR_ID}


def test_users_decrypt_only_themselves_unless_admin():
    me = Principal(PATIENT_USER, "PATIENT")
    assert can_decrypt(me, "user", {"id": PATIENT_USER})
    assert not can_decrypt(me, "user", {"id": DOCTOR_ID})
    assert can_decrypt(Principal(uuid.uuid4(), "ADMIN"), "user", {"id": DOCTOR_ID})


def test_patient_access():
    patient = _patient()
    assert can_decrypt(Principal(PATIENT_USER, "PATIENT"), "patient", patient)
    assert can_decrypt(Principal(DOCTOR_ID, "DOCTOR"), "patient", patient)
    assert not can_decrypt(Principal(OTHER_DOCTOR, "DOCTOR"), "patient", patient)
    assert can_decrypt(Principal(uuid.uuid4(), "SUPER_ADMIN"), "patient", patient)


def test_medical_record_follows_owning_patient():
    patient = _patient()
    record = {"id": uuid.uuid4(), "patient_id": patient["id"], "author_id": OTHER_DOCTOR}

    assert can_decrypt(Principal(OTHER_DOCTOR, "DOCTOR"), "medical_record", record, patient)
    assert can_decrypt(Principal(PATIENT_USER, "PATIENT"), "medical_record", record, patient)
    assert not can_decrypt(Principal(uuid.uuid4(), "DOCTOR"), "medical_record", record, patient)
    assert not can_decrypt(Principal(PATIENT_USER, "PATIENT"), "medical_record", record)


def test_consultation_access():
    patient = _patient()
    consultation = {"id": uuid.uuid4(), "provider_id": OTHER_DOCTOR}
    assert can_decrypt(Principal(OTHER_DOCTOR, "DOCTOR"), "consultation", consultation, patient)
    assert can_decrypt(Principal(PATIENT_USER, "PATIENT"), "consultation", consultation, patient)
    assert not can_decrypt(Principal(DOCTOR_ID, "DOCTOR"), "consultation", consultation, patient)


def test_unknown_entity_type_denied():
    with pytest.raises(AccessDeniedError):
        require_decrypt_access(Principal(PATIENT_USER, "PATIENT"), "invoice", {"id": 1})


def test_mask_pii():
    assert mask_pii("Jane", "name") == "J***"
    assert mask_pii("jane@example.com", "email") == "j***@example.com"
    assert mask_pii("+1 555 010 1234", "phone") == "*******1234"
    assert mask_pii("MD-98765", "license") == "***8765"
    assert mask_pii("secret", "other") == "s****t"
    assert mask_pii("", "name") == ""


def test_prepare_for_response_strips_envelopes():
    record = {
        "id": 1,
        "role": "DOCTOR",
        "first_name": "Jane",
        "email": "jane@example.com",
        "first_name_encrypted": b"{}",
    }
    fields = ("first_name", "email")

    assert prepare_for_response(record, fields) == {"id": 1, "role": "DOCTOR"}
    assert prepare_for_response(record, fields, masked=True) == {
        "id": 1,
        "role": "DOCTOR",
        "first_name": "J***",
        "email": "j***@example.com",
    }


def test_prepare_for_response_keeps_placeholders():
    values = {"first_name": "[Encrypted]", "email": "jane@example.com"}

    assert prepare_for_response(
        values, ("first_name", "email"), masked=True, keep={"first_name"}
    ) == {"first_name": "[Encrypted]", "email": "j***@example.com"}
