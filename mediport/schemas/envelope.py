"""
Wire contract for an encrypted field.

Both the server-side FieldCodec and the boundary-side ClientSideEncryption
implement this contract independently; the constants and the JSON Schema
below are the only thing they share.

Serialized form (UTF-8 JSON):

    {"ciphertext": "<base64>", "iv": "<base64>", "tag": "<base64>"}
"""

ALGORITHM = "aes-256-gcm"
KEY_LENGTH = 32  # 256 bits
IV_LENGTH = 16  # 128 bits
TAG_LENGTH = 16  # 128 bits

# Bound into every encrypt/decrypt call. Changing it invalidates every stored
# envelope, so a new value must carry a new version suffix.
ASSOCIATED_DATA = b"mediport-pii"

ENVELOPE_FIELDS = ("ciphertext", "iv", "tag")

_BASE64 = "^[A-Za-z0-9+/]*={0,2}$"

ENVELOPE_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Encrypted field envelope",
    "type": "object",
    "required": list(ENVELOPE_FIELDS),
    "properties": {
        "ciphertext": {"type": "string", "pattern": _BASE64, "maxLength": 1_048_576},
        "iv": {"type": "string", "pattern": _BASE64, "maxLength": 64},
        "tag": {"type": "string", "pattern": _BASE64, "maxLength": 64},
    },
    "additionalProperties": False,
}
