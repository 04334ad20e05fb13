"""Shared fixtures: RSA key material on disk and a config pointing at it."""

import datetime
from types import SimpleNamespace

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from passkeyflow.config import PasskeyFlowConfig


def generate_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def write_private_key(path, key):
    path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return path


def write_certificate(path, key):
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "passkeyflow-test")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    return path


@pytest.fixture(scope="session")
def signing_key():
    return generate_key()


@pytest.fixture(scope="session")
def encryption_key():
    return generate_key()


@pytest.fixture
def key_files(tmp_path, signing_key, encryption_key):
    public_path = tmp_path / "signing_public.pem"
    public_path.write_bytes(
        signing_key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return SimpleNamespace(
        signing_private=write_private_key(tmp_path / "signing_private.pem", signing_key),
        signing_public=public_path,
        encryption_private=write_private_key(tmp_path / "mle_private.pem", encryption_key),
        encryption_cert=write_certificate(tmp_path / "mle_cert.pem", encryption_key),
    )


@pytest.fixture
def config(key_files):
    return PasskeyFlowConfig(
        assertion={"private_key_path": str(key_files.signing_private), "key_id": "test-kid"},
        merchant={
            "origin": "https://shop.example",
            "integrator_origin": "https://shop.example",
            "name": "Example Shop",
        },
    )
