"""Key material, envelopes, assertions and transport authentication."""

from .envelope import decrypt_envelope, encrypt_envelope
from .jws import AssertionSigner, sign_assertion, verify_assertion
from .keys import load_private_key, load_public_key, read_pem
from .transport import TransportSecurity, pay_token

__all__ = [
    "AssertionSigner",
    "TransportSecurity",
    "decrypt_envelope",
    "encrypt_envelope",
    "load_private_key",
    "load_public_key",
    "pay_token",
    "read_pem",
    "sign_assertion",
    "verify_assertion",
]
