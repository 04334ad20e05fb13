"""Tests for encrypted JSON envelopes."""

import base64
import json

import pytest

from passkeyflow.errors import EnvelopeError, EnvelopeStale
from passkeyflow.security import decrypt_envelope, encrypt_envelope, load_private_key, load_public_key


def _protected_header(envelope: str) -> dict:
    segment = envelope.split(".")[0]
    return json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))


@pytest.mark.parametrize(
    "document",
    [
        {"server_state": "ST123", "authorization_details": [{"type": "x", "amount": "10.00"}]},
        ["a", 1, None, True, {"nested": {"deep": []}}],
        {"payee": "Café Zürich", "emoji": "🔑"},
        "plain string",
    ],
)
def test_envelope_round_trip(encryption_key, document):
    envelope = encrypt_envelope(document, encryption_key.public_key(), "mle-kid")
    assert decrypt_envelope(envelope, encryption_key) == document


def test_envelope_header_carries_algorithms_kid_and_millisecond_iat(encryption_key):
    envelope = encrypt_envelope({"a": 1}, encryption_key.public_key(), "mle-kid", clock=lambda: 1_700_000_000_123)

    assert envelope.count(".") == 4
    header = _protected_header(envelope)
    assert header["alg"] == "RSA-OAEP-256"
    assert header["enc"] == "A128GCM"
    assert header["typ"] == "JOSE"
    assert header["kid"] == "mle-kid"
    assert header["iat"] == 1_700_000_000_123


def test_envelope_with_keys_loaded_from_pem(key_files):
    public_key = load_public_key(str(key_files.encryption_cert))
    private_key = load_private_key(str(key_files.encryption_private))

    envelope = encrypt_envelope({"hello": "world"}, public_key, "mle-kid")

    assert decrypt_envelope(envelope, private_key) == {"hello": "world"}


def test_decrypt_with_wrong_key_fails(encryption_key, signing_key):
    envelope = encrypt_envelope({"a": 1}, encryption_key.public_key(), "mle-kid")

    with pytest.raises(EnvelopeError):
        decrypt_envelope(envelope, signing_key)


def test_decrypt_rejects_non_compact_input(encryption_key):
    with pytest.raises(EnvelopeError):
        decrypt_envelope("a.b.c", encryption_key)


def test_decrypt_rejects_tampered_ciphertext(encryption_key):
    envelope = encrypt_envelope({"amount": "10.00"}, encryption_key.public_key(), "mle-kid")
    parts = envelope.split(".")
    ciphertext = parts[3]
    parts[3] = ("A" if ciphertext[0] != "A" else "B") + ciphertext[1:]

    with pytest.raises(EnvelopeError):
        decrypt_envelope(".".join(parts), encryption_key)


def test_stale_envelope_is_rejected(encryption_key):
    issued = 1_700_000_000_000
    envelope = encrypt_envelope({"a": 1}, encryption_key.public_key(), "mle-kid", clock=lambda: issued)

    assert decrypt_envelope(envelope, encryption_key, max_age=60, clock=lambda: issued + 30_000) == {"a": 1}
    with pytest.raises(EnvelopeStale):
        decrypt_envelope(envelope, encryption_key, max_age=60, clock=lambda: issued + 61_000)
