"""Loading of PEM key material used for signing, encryption and mTLS."""

from __future__ import annotations

import logging
import os
import re
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from ..errors import KeyFormatInvalid, KeyNotFound

logger = logging.getLogger(__name__)

_PEM_HEADER = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----")


def read_pem(path: str) -> tuple[str, bytes]:
    """Read PEM material from ``path`` and return its label and bytes.

    Raises:
        KeyNotFound: If ``path`` is empty or does not exist.
        KeyFormatInvalid: If no ``-----BEGIN ...-----`` header is present.
    """
    if not path or not os.path.isfile(path):
        raise KeyNotFound(f"Key material not found at: {path}")
    with open(path, "rb") as f:
        data = f.read()
    match = _PEM_HEADER.search(data.decode("ascii", errors="ignore"))
    if match is None:
        raise KeyFormatInvalid(f"Invalid key format in {path}: missing BEGIN marker")
    return match.group(1), data


def load_private_key(path: str) -> Any:
    """Load an unencrypted PEM private key (PKCS#1 or PKCS#8)."""
    label, data = read_pem(path)
    if "PRIVATE KEY" not in label:
        raise KeyFormatInvalid(f"Expected a private key in {path}, found {label}")
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError) as e:
        raise KeyFormatInvalid(f"Unable to parse private key {path}: {e}") from e
    logger.debug(f"Loaded private key from {path}")
    return key


def load_public_key(path: str) -> Any:
    """Load a PEM public key, extracting it from a certificate if needed."""
    label, data = read_pem(path)
    try:
        if label == "CERTIFICATE":
            key = x509.load_pem_x509_certificate(data).public_key()
        elif "PUBLIC KEY" in label:
            key = serialization.load_pem_public_key(data)
        else:
            raise KeyFormatInvalid(f"Expected a certificate or public key in {path}, found {label}")
    except ValueError as e:
        raise KeyFormatInvalid(f"Unable to parse public key {path}: {e}") from e
    logger.debug(f"Loaded public key from {path}")
    return key
