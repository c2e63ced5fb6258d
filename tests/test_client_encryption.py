"""The boundary-side payload encryption must interoperate with FieldCodec."""

import json

import jsonschema
import pytest

from mediport.exceptions import ConfigurationError, DecryptionError
from mediport.schemas.envelope import ENVELOPE_SCHEMA
from mediport.services.client_encryption import ClientSideEncryption, canonical_json
from mediport.services.encryption import KeyManager
from mediport.services.envelope import FieldCodec

from conftest import CLIENT_KEY_HEX, KEY_HEX

PROFILE = {"first_name": "Jane", "last_name": "Doe", "phone": "+1 555 0100"}


def test_payload_envelope_matches_shared_schema():
    envelope = ClientSideEncryption(CLIENT_KEY_HEX).encrypt_payload(PROFILE)
    jsonschema.validate(envelope, ENVELOPE_SCHEMA)
    assert "Jane" not in json.dumps(envelope)


def test_server_codec_decodes_client_payload():
    client = ClientSideEncryption(CLIENT_KEY_HEX)
    server = FieldCodec(KeyManager(CLIENT_KEY_HEX))

    assert server.decode_json(client.encrypt_payload_bytes(PROFILE)) == PROFILE
    assert server.decode_json(json.dumps(client.encrypt_payload(PROFILE))) == PROFILE


def test_server_key_cannot_open_boundary_payload():
    payload = ClientSideEncryption(CLIENT_KEY_HEX).encrypt_payload_bytes(PROFILE)
    with pytest.raises(DecryptionError):
        FieldCodec(KeyManager(KEY_HEX)).decode_json(payload)


def test_payloads_are_not_deterministic():
    client = ClientSideEncryption(CLIENT_KEY_HEX)
    first, second = client.encrypt_payload(PROFILE), client.encrypt_payload(PROFILE)
    assert first["iv"] != second["iv"]
    assert first["ciphertext"] != second["ciphertext"]


def test_canonical_json_is_key_order_independent():
    assert canonical_json({"b": 1, "a": "é"}) == canonical_json({"a": "é", "b": 1})
    assert canonical_json({"a": "é"}) == '{"a":"é"}'.encode("utf-8")


@pytest.mark.parametrize("bad_key", ["", "00" * 16, "not-hex"])
def test_boundary_key_is_validated(bad_key):
    with pytest.raises(ConfigurationError):
        ClientSideEncryption(bad_key)
