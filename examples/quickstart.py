"""aumai-provsign quickstart — working demonstrations of the signing workflow.

Run this file directly to verify your installation:

    python examples/quickstart.py

Each demo creates its own temporary directory with a throwaway key, a
self-signed certificate and a manifest definition, and cleans up afterwards.
"""

from __future__ import annotations

import json
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from aumai_provsign import (
    AssetSigner,
    LocalStoreBackend,
    PlanError,
    SignOptions,
    load_trust_settings,
)
from aumai_provsign.models import ManifestPath


def _prepare(tmp: Path) -> Path:
    """Write keys/, manifest.json and two JPEG-ish assets into *tmp*."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "quickstart signer")])
    now = datetime.now(tz=UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    keys = tmp / "keys"
    keys.mkdir()
    (keys / "private.pem").write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    (keys / "cert.pem").write_bytes(cert.public_bytes(serialization.Encoding.PEM))

    definition = {
        "alg": "es256",
        "private_key": "keys/private.pem",
        "sign_cert": "keys/cert.pem",
        "claim_generator": "quickstart/1.0",
        "title": "Quickstart photo",
        "assertions": [
            {"label": "c2pa.actions", "data": {"actions": [{"action": "c2pa.created"}]}}
        ],
    }
    manifest = tmp / "manifest.json"
    manifest.write_text(json.dumps(definition, indent=2), encoding="utf-8")

    (tmp / "sunset.jpg").write_bytes(b"\xff\xd8\xff\xe0" + b"\x10" * 512 + b"\xff\xd9")
    (tmp / "harbor.jpg").write_bytes(b"\xff\xd8\xff\xe0" + b"\x20" * 512 + b"\xff\xd9")
    return manifest


# ---------------------------------------------------------------------------
# Demo 1: embed a manifest into one asset
# ---------------------------------------------------------------------------

def demo_embed_single() -> None:
    print("\n=== Demo 1: Embedded manifest ===")

    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        manifest = _prepare(tmp)

        options = SignOptions(
            output=tmp / "sunset-signed.jpg",
            manifest_source=ManifestPath(path=manifest),
        )
        written = AssetSigner(options).execute([tmp / "sunset.jpg"])
        print(f"  Written: {[p.name for p in written]}")

        result = LocalStoreBackend().verify(written[0])
        print(f"  Valid: {result.valid}  generator: {result.claim_generator}")
        assert result.valid, result.error

        print("  Demo 1 passed.")


# ---------------------------------------------------------------------------
# Demo 2: sidecar manifests for several assets
# ---------------------------------------------------------------------------

def demo_sidecar_batch() -> None:
    print("\n=== Demo 2: Sidecar batch ===")

    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        manifest = _prepare(tmp)
        out = tmp / "out"

        options = SignOptions(
            output=out,
            manifest_source=ManifestPath(path=manifest),
            sidecar=True,
        )
        AssetSigner(options).execute([tmp / "sunset.jpg", tmp / "harbor.jpg"])
        produced = sorted(p.name for p in out.iterdir())
        print(f"  Produced: {produced}")
        assert produced == ["harbor.c2pa", "harbor.jpg", "sunset.c2pa", "sunset.jpg"]

        print("  Demo 2 passed.")


# ---------------------------------------------------------------------------
# Demo 3: re-signing chains the previous manifest as parent
# ---------------------------------------------------------------------------

def demo_resign_chain() -> None:
    print("\n=== Demo 3: Re-signing ===")

    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        manifest = _prepare(tmp)
        source = ManifestPath(path=manifest)

        first = tmp / "v1.jpg"
        AssetSigner(SignOptions(output=first, manifest_source=source)).execute(
            [tmp / "sunset.jpg"]
        )
        second = tmp / "v2.jpg"
        AssetSigner(SignOptions(output=second, manifest_source=source)).execute([first])

        result = LocalStoreBackend().verify(second)
        print(f"  Valid: {result.valid}  active: {result.active_manifest}")
        assert result.valid, result.error

        print("  Demo 3 passed.")


# ---------------------------------------------------------------------------
# Demo 4: trust anchors and planning errors
# ---------------------------------------------------------------------------

def demo_trust_and_plan_errors() -> None:
    print("\n=== Demo 4: Trust and planning ===")

    with tempfile.TemporaryDirectory() as tmpdir:
        tmp = Path(tmpdir)
        manifest = _prepare(tmp)

        signed = tmp / "signed.jpg"
        options = SignOptions(output=signed, manifest_source=ManifestPath(path=manifest))
        AssetSigner(options).execute([tmp / "sunset.jpg"])

        trust = load_trust_settings(trust_anchors=tmp / "keys" / "cert.pem")
        result = LocalStoreBackend().verify(signed, trust)
        print(f"  Trusted by its own certificate: {result.trusted}")
        assert result.trusted

        try:
            AssetSigner(options).execute([tmp / "sunset.jpg"])
        except PlanError as exc:
            print(f"  Refused to overwrite: {exc}")
        else:
            raise AssertionError("expected a PlanError")

        print("  Demo 4 passed.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    """Run all quickstart demos in sequence."""
    print("aumai-provsign quickstart demos")
    print("=" * 45)

    demo_embed_single()
    demo_sidecar_batch()
    demo_resign_chain()
    demo_trust_and_plan_errors()

    print("\n" + "=" * 45)
    print("All demos completed successfully.")


if __name__ == "__main__":
    main()
