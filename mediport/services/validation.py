"""
JSON Schema validation for PII payloads.

Collects every error rather than stopping at the first, so a client gets
one complete answer per rejected update.
"""

from typing import Any

import jsonschema

from mediport.schemas.pii import PROFILE_UPDATE_SCHEMA


def validate_against_schema(data: Any, schema: dict[str, Any]) -> list[str]:
    """
    Validate data against a JSON schema.
    Returns a list of error messages (empty list = valid).
    """
    validator = jsonschema.Draft7Validator(schema)
    return [_describe(error) for error in validator.iter_errors(data)]


def _describe(error: jsonschema.ValidationError) -> str:
    # Messages for pattern failures quote the offending value; PII must not
    # be echoed back, so report only the field name.
    field_path = ".".join(str(p) for p in error.absolute_path)
    if error.validator == "pattern":
        return f"{field_path}: invalid format"
    if field_path and error.validator in ("minLength", "maxLength", "type"):
        return f"{field_path}: {error.validator} violation"
    return error.message


def validate_profile_update(data: Any) -> list[str]:
    return validate_against_schema(data, PROFILE_UPDATE_SCHEMA)
