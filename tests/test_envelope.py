"""Tests for the stored envelope format and FieldCodec."""

import base64
import json

import pytest

from mediport.exceptions import DecryptionError, MalformedEnvelopeError
from mediport.services.envelope import (
    Absent,
    Encrypted,
    Envelope,
    FieldCodec,
    Plaintext,
    read_field,
    storage_name,
)


def _tamper(stored: bytes, member: str) -> bytes:
    data = json.loads(stored)
    raw = bytearray(base64.b64decode(data[member]))
    raw[0] ^= 0xFF
    data[member] = base64.b64encode(bytes(raw)).decode()
    return json.dumps(data).encode()


def test_jane_scenario(codec):
    """Key "00"*32: "Jane" becomes a three-member envelope and decodes back."""
    stored = codec.encode_field("Jane")

    data = json.loads(stored)
    assert set(data) == {"ciphertext", "iv", "tag"}
    assert len(base64.b64decode(data["iv"])) == 16
    assert len(base64.b64decode(data["tag"])) == 16
    assert b"Jane" not in stored

    assert codec.decode_field(stored) == "Jane"


def test_roundtrip_unicode_and_long_values(codec):
    for value in ["Zoë Ångström", "李小龙", "x" * 10_000, "line\nbreak"]:
        assert codec.decode_field(codec.encode_field(value)) == value


def test_accepts_all_storage_representations(codec):
    stored = codec.encode_field("Jane")
    assert codec.decode_field(stored.decode()) == "Jane"
    assert codec.decode_field(bytearray(stored)) == "Jane"
    assert codec.decode_field(memoryview(stored)) == "Jane"


def test_empty_values_are_never_encoded(codec):
    assert codec.encode_field("") is None
    assert codec.encode_field(None) is None


def test_absent_field_decodes_to_no_value(codec):
    assert codec.decode_field(None) is None
    assert codec.decode_field(b"") is None


def test_corrupted_tag_raises_decryption_error(codec):
    stored = codec.encode_field("Jane")
    with pytest.raises(DecryptionError):
        codec.decode_field(_tamper(stored, "tag"))


@pytest.mark.parametrize("member", ["ciphertext", "iv"])
def test_corrupted_members_raise_decryption_error(codec, member):
    stored = codec.encode_field("Jane")
    with pytest.raises(DecryptionError):
        codec.decode_field(_tamper(stored, member))


def test_legacy_comma_separated_byte_dump_is_malformed(codec):
    """The historical "12,34,56,..." serialization bug."""
    stored = codec.encode_field("Jane")
    legacy = ",".join(str(b) for b in stored).encode()

    with pytest.raises(MalformedEnvelopeError):
        codec.decode_field(legacy)


@pytest.mark.parametrize(
    "stored",
    [
        b"not json at all",
        b"\xff\xfe\x00garbage",
        b"42",
        b'"just a string"',
        b"[1, 2, 3]",
        b'{"ciphertext": "AAAA", "iv": "AAAA"}',
        b'{"encryptedData": "AAAA", "iv": "AAAA", "tag": "AAAA"}',
        b'{"ciphertext": "AAAA", "iv": "AAAA", "tag": "AAAA", "extra": 1}',
        b'{"ciphertext": 12, "iv": "AAAA", "tag": "AAAA"}',
        b'{"ciphertext": "%%%%", "iv": "AAAA", "tag": "AAAA"}',
        b'{"ciphertext": "AAA", "iv": "AAAA", "tag": "AAAA"}',
    ],
)
def test_structurally_invalid_values_are_malformed(codec, stored):
    with pytest.raises(MalformedEnvelopeError):
        codec.decode_field(stored)


def test_wrong_iv_length_is_decryption_error(codec):
    data = json.loads(codec.encode_field("Jane"))
    data["iv"] = base64.b64encode(b"\0" * 12).decode()
    with pytest.raises(DecryptionError):
        codec.decode_field(json.dumps(data))


def test_deeply_nested_json_is_malformed(codec):
    with pytest.raises(MalformedEnvelopeError):
        codec.decode_field(b"[" * 100_000)

    nested = codec.serialize(codec.seal(b"[" * 100_000))
    with pytest.raises(MalformedEnvelopeError):
        codec.decode_json(nested)


def test_serialize_parse_are_inverse(codec):
    envelope = Envelope(ciphertext=b"\x01\x02", iv=b"\x03" * 16, tag=b"\x04" * 16)
    assert FieldCodec.parse(FieldCodec.serialize(envelope)) == envelope


def test_decode_json_payload(codec):
    stored = codec.encode_field(json.dumps({"first_name": "Jane"}))
    assert codec.decode_json(stored) == {"first_name": "Jane"}

    with pytest.raises(MalformedEnvelopeError):
        codec.decode_json(codec.encode_field("not json"))


def test_encode_rejects_non_string_values(codec):
    with pytest.raises(TypeError):
        codec.encode_field(12345)


def test_read_field_variants():
    record = {
        "first_name": "Legacy",
        "first_name_encrypted": b"{...}",
        "last_name": "Doe",
        "last_name_encrypted": None,
        "email_encrypted": b"",
    }
    assert storage_name("first_name") == "first_name_encrypted"
    assert read_field(record, "first_name") == Encrypted(b"{...}")
    assert read_field(record, "last_name") == Plaintext("Doe")
    assert read_field(record, "email") == Absent()
    assert read_field(record, "phone") == Absent()
