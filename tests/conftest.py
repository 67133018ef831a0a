"""Shared test fixtures for aumai-provsign."""

from __future__ import annotations

import json
import stat
import sys
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from aumai_provsign.models import ManifestPath, SignOptions
from aumai_provsign.store import LocalStoreBackend

JPEG_BYTES = b"\xff\xd8\xff\xe0" + bytes(range(256)) + b"\xff\xd9"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(128))

# ---------------------------------------------------------------------------
# Key material, generated once per session
# ---------------------------------------------------------------------------


def _self_signed(private_key: Any, common_name: str, algorithm: Any) -> bytes:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(tz=UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.EMAIL_PROTECTION]),
            critical=False,
        )
        .sign(private_key, algorithm)
    )
    return cert.public_bytes(serialization.Encoding.PEM)


def _private_pem(private_key: Any) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def ec_credentials() -> tuple[bytes, bytes]:
    """(private_pem, cert_pem) for an ES256 signer."""
    key = ec.generate_private_key(ec.SECP256R1())
    return _private_pem(key), _self_signed(key, "provsign test signer", hashes.SHA256())


@pytest.fixture(scope="session")
def ed25519_credentials() -> tuple[bytes, bytes]:
    """(private_pem, cert_pem) for an Ed25519 signer."""
    key = Ed25519PrivateKey.generate()
    return _private_pem(key), _self_signed(key, "provsign ed25519 signer", None)


@pytest.fixture(scope="session")
def other_cert_pem() -> bytes:
    """A certificate unrelated to any signing key used in the tests."""
    key = ec.generate_private_key(ec.SECP256R1())
    return _self_signed(key, "someone else", hashes.SHA256())


# ---------------------------------------------------------------------------
# Workspace fixtures
# ---------------------------------------------------------------------------


def write_manifest(directory: Path, name: str = "manifest.json", **fields: Any) -> Path:
    """Write a manifest definition to *directory* and return its path."""
    definition: dict[str, Any] = {
        "alg": "es256",
        "private_key": "keys/private.pem",
        "sign_cert": "keys/cert.pem",
        "claim_generator": "my-app/1.0",
        "title": "Test asset",
        "assertions": [
            {"label": "c2pa.actions", "data": {"actions": [{"action": "c2pa.created"}]}}
        ],
    }
    definition.update(fields)
    path = directory / name
    path.write_text(json.dumps(definition), encoding="utf-8")
    return path


@pytest.fixture()
def workspace(tmp_path: Path, ec_credentials: tuple[bytes, bytes]) -> Path:
    """A directory holding keys, a manifest definition and a few assets.

    Structure:
        keys/private.pem, keys/cert.pem
        manifest.json
        photo.jpg, other.jpg, photo.png
    """
    private_pem, cert_pem = ec_credentials
    keys = tmp_path / "keys"
    keys.mkdir()
    (keys / "private.pem").write_bytes(private_pem)
    (keys / "cert.pem").write_bytes(cert_pem)
    write_manifest(tmp_path)
    (tmp_path / "photo.jpg").write_bytes(JPEG_BYTES)
    (tmp_path / "other.jpg").write_bytes(JPEG_BYTES[::-1])
    (tmp_path / "photo.png").write_bytes(PNG_BYTES)
    return tmp_path


@pytest.fixture()
def manifest_path(workspace: Path) -> Path:
    return workspace / "manifest.json"


@pytest.fixture()
def backend() -> LocalStoreBackend:
    return LocalStoreBackend()


@pytest.fixture()
def make_options(manifest_path: Path) -> Callable[..., SignOptions]:
    """Factory for :class:`SignOptions` reading the workspace manifest."""

    def _make(output: Path, **kwargs: Any) -> SignOptions:
        return SignOptions(
            output=output,
            manifest_source=ManifestPath(path=manifest_path),
            **kwargs,
        )

    return _make


# ---------------------------------------------------------------------------
# External signer executables
# ---------------------------------------------------------------------------


def write_executable(path: Path, body: str) -> Path:
    """Write a Python script to *path* that runs with the test interpreter."""
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture()
def external_signer(workspace: Path) -> Path:
    """Signs stdin with the workspace key and records its arguments."""
    key_path = workspace / "keys" / "private.pem"
    args_path = workspace / "signer-args.json"
    body = f"""
import json
import sys

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

with open({str(args_path)!r}, "w") as fh:
    json.dump(sys.argv[1:], fh)
with open({str(key_path)!r}, "rb") as fh:
    key = serialization.load_pem_private_key(fh.read(), password=None)
data = sys.stdin.buffer.read()
sys.stdout.buffer.write(key.sign(data, ec.ECDSA(hashes.SHA256())))
"""
    return write_executable(workspace / "signer.py", body)


@pytest.fixture()
def oversized_signer(tmp_path: Path) -> Path:
    """Returns far more bytes than the default reserve size allows."""
    body = """
import sys

sys.stdin.buffer.read()
sys.stdout.buffer.write(b"\\x00" * 30000)
"""
    return write_executable(tmp_path / "oversized-signer.py", body)


@pytest.fixture()
def failing_signer(tmp_path: Path) -> Path:
    """Exits non-zero with a message on stderr."""
    body = """
import sys

sys.stdin.buffer.read()
sys.stderr.write("hsm unavailable")
sys.exit(3)
"""
    return write_executable(tmp_path / "failing-signer.py", body)
