"""Encrypted JSON envelopes in JWE compact serialization."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional

from jwcrypto import jwe, jwk
from jwcrypto.common import JWException, json_encode

from ..constants import ENVELOPE_CONTENT_ALGORITHM, ENVELOPE_KEY_ALGORITHM
from ..errors import EnvelopeError, EnvelopeStale

logger = logging.getLogger(__name__)


def _now_millis() -> int:
    return int(time.time() * 1000)


def _as_jwk(key: Any) -> jwk.JWK:
    if isinstance(key, jwk.JWK):
        return key
    return jwk.JWK.from_pyca(key)


def encrypt_envelope(
    plaintext: Any,
    recipient_public_key: Any,
    key_id: str,
    clock: Callable[[], int] = _now_millis,
) -> str:
    """Encrypt ``plaintext`` JSON for the holder of ``recipient_public_key``.

    A fresh content-encryption key is wrapped with RSA-OAEP-256 and the
    payload sealed with AES-128-GCM. The protected header carries the
    algorithms, ``kid`` and an ``iat`` in epoch milliseconds so the
    recipient can pick its key and reject stale envelopes.
    """
    header = {
        "alg": ENVELOPE_KEY_ALGORITHM,
        "enc": ENVELOPE_CONTENT_ALGORITHM,
        "typ": "JOSE",
        "kid": key_id,
        "iat": clock(),
    }
    payload = json.dumps(plaintext, ensure_ascii=False, separators=(",", ":"))
    try:
        token = jwe.JWE(payload.encode("utf-8"), protected=json_encode(header))
        token.add_recipient(_as_jwk(recipient_public_key))
        envelope = token.serialize(compact=True)
    except (JWException, ValueError, TypeError) as e:
        raise EnvelopeError(f"Failed to encrypt payload: {e}") from e
    logger.debug(f"Encrypted {len(payload)} byte payload for kid={key_id}")
    return envelope


def decrypt_envelope(
    envelope: str,
    private_key: Any,
    max_age: Optional[float] = None,
    clock: Callable[[], int] = _now_millis,
) -> Any:
    """Open a compact envelope and return the decoded JSON payload.

    Args:
        envelope: Five-part compact JWE string.
        private_key: Recipient private key (pyca key or ``jwk.JWK``).
        max_age: Optional staleness window in seconds checked against the
            header ``iat``.
    """
    if envelope.count(".") != 4:
        raise EnvelopeError("Envelope must have five dot-separated parts")
    token = jwe.JWE()
    try:
        token.deserialize(envelope, key=_as_jwk(private_key))
    except (JWException, ValueError, TypeError) as e:
        raise EnvelopeError(f"Failed to decrypt envelope: {e}") from e

    if max_age is not None:
        issued_at = token.jose_header.get("iat")
        if not isinstance(issued_at, int):
            raise EnvelopeStale("Envelope header has no issued-at timestamp")
        age = (clock() - issued_at) / 1000
        if age > max_age:
            raise EnvelopeStale(f"Envelope issued {age:.0f}s ago exceeds {max_age}s window")

    try:
        return json.loads(token.payload.decode("utf-8"))
    except ValueError as e:
        raise EnvelopeError(f"Envelope payload is not JSON: {e}") from e
