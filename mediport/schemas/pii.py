"""
JSON schemas for PII payloads.

Applied to decrypted profile updates before their fields are re-encrypted
for storage. Field formats follow the checks the registration forms apply.
"""

EMAIL_PATTERN = "^[^\\s@]+@[^\\s@]+\\.[^\\s@]+$"

# Optional leading +, then up to 16 digits; spaces, dashes and brackets allowed.
PHONE_PATTERN = "^\\+?[\\s\\-()]*[1-9]([\\s\\-()]*\\d){0,15}[\\s\\-()]*$"

# Blank and whitespace-only values are rejected.
_TEXT = {"type": "string", "pattern": "\\S", "maxLength": 256}

PROFILE_UPDATE_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "User profile update",
    "description": "PII fields a user may change on their own profile.",
    "type": "object",
    "minProperties": 1,
    "properties": {
        "first_name": _TEXT,
        "last_name": _TEXT,
        "email": {"type": "string", "pattern": EMAIL_PATTERN, "maxLength": 320},
        "phone": {"type": "string", "pattern": PHONE_PATTERN},
        "specialty": _TEXT,
        "medical_license_number": {"type": "string", "minLength": 3, "maxLength": 64},
    },
    "additionalProperties": False,
}
