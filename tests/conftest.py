"""Shared fixtures: deterministic test keys and initialized PII services."""

import pytest

from mediport.services.context import build_pii_context
from mediport.services.encryption import KeyManager
from mediport.services.envelope import FieldCodec
from mediport.services.pii_protection import PIIProtectionService

# 32 zero bytes – the documented test vector key
KEY_HEX = "00" * 32
CLIENT_KEY_HEX = "11" * 32
OTHER_KEY_HEX = "ab" * 32


@pytest.fixture
def key_manager():
    return KeyManager(KEY_HEX)


@pytest.fixture
def codec(key_manager):
    return FieldCodec(key_manager)


@pytest.fixture
def protection():
    svc = PIIProtectionService()
    svc.initialize(KEY_HEX)
    return svc


@pytest.fixture
def pii_context():
    return build_pii_context(KEY_HEX, CLIENT_KEY_HEX, audit_sink=None)
