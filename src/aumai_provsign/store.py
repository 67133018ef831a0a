"""Local manifest store backend.

The store is canonical JSON.  Embedded stores are appended to the asset bytes
and followed by a fixed trailer (big-endian store length + magic), so the
original asset bytes are always recoverable by stripping the trailer.
Sidecar stores live next to the asset with a ``.c2pa`` extension.  Asset
container internals are never parsed.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import mimetypes
import struct
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from cryptography import x509
from pydantic import BaseModel, ValidationError

from aumai_provsign.errors import EmbeddingError, ParseError, ResolutionError
from aumai_provsign.models import (
    ClaimRecord,
    Ingredient,
    Manifest,
    ManifestMode,
    ManifestStore,
    ResourceRef,
    SignatureBlock,
    SignedClaim,
    TrustSettings,
    VerificationResult,
)
from aumai_provsign.planner import sidecar_path
from aumai_provsign.signers import Signer, verify_signature
from aumai_provsign.trust import is_trusted

logger = logging.getLogger(__name__)

STORE_MAGIC = b"PVSTORE1"
_TRAILER = struct.Struct(">Q8s")


class ProvenanceBackend(Protocol):
    """The provenance library operations the signing pipeline relies on."""

    def ingredient_from_file(self, path: Path) -> Ingredient: ...

    def embed(
        self,
        manifest: Manifest,
        source: Path,
        dest: Path,
        signer: Signer,
        *,
        verify: bool = True,
        trust: TrustSettings | None = None,
    ) -> bytes: ...

    def verify(self, path: Path, trust: TrustSettings | None = None) -> VerificationResult: ...


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _canonical_bytes(model: BaseModel) -> bytes:
    """Deterministic JSON serialisation of *model* for signing."""
    data = model.model_dump(mode="json")
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _sha256_file(file_path: Path) -> str:
    """Return the hex-encoded SHA-256 digest of *file_path*."""
    hasher = hashlib.sha256()
    with file_path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def split_store(data: bytes) -> tuple[bytes, bytes | None]:
    """Split *data* into ``(asset_bytes, embedded_store_bytes)``."""
    if len(data) < _TRAILER.size:
        return data, None
    length, magic = _TRAILER.unpack(data[-_TRAILER.size :])
    if magic != STORE_MAGIC or length > len(data) - _TRAILER.size:
        return data, None
    end = len(data) - _TRAILER.size
    return data[: end - length], data[end - length : end]


def join_store(asset: bytes, store: bytes) -> bytes:
    return asset + store + _TRAILER.pack(len(store), STORE_MAGIC)


def parse_store(data: bytes, origin: Path | str) -> ManifestStore:
    try:
        return ManifestStore.model_validate_json(data)
    except ValidationError as exc:
        raise ParseError(f"Invalid manifest store in `{origin}`: {exc}") from exc


def read_store_bytes(path: Path) -> bytes | None:
    """Return the manifest store for *path*, embedded first, then sidecar."""
    try:
        _, embedded = split_store(path.read_bytes())
    except OSError as exc:
        raise ResolutionError(f"Failed to read `{path}`: {exc}") from exc
    if embedded is not None:
        return embedded
    side = sidecar_path(path)
    if side != path and side.is_file():
        return side.read_bytes()
    return None


def _subject(cert_der: bytes) -> str:
    return x509.load_der_x509_certificate(cert_der).subject.rfc4514_string()


# ---------------------------------------------------------------------------
# LocalStoreBackend
# ---------------------------------------------------------------------------


class LocalStoreBackend:
    """Embed, inspect and verify manifest stores on the local filesystem."""

    def ingredient_from_file(self, path: Path) -> Ingredient:
        """Describe the asset at *path* as an ingredient.

        Raises:
            ResolutionError: if the file does not exist or cannot be read.
        """
        if not path.is_file():
            raise ResolutionError(f"Ingredient file not found: {path}")
        store_bytes = read_store_bytes(path)
        active = None
        if store_bytes is not None:
            active = parse_store(store_bytes, path).active_manifest
        mime, _ = mimetypes.guess_type(path.name)
        return Ingredient(
            title=path.name,
            format=mime or path.suffix.lstrip(".").lower() or "application/octet-stream",
            active_manifest=active,
        ).with_manifest_data(store_bytes)

    def embed(
        self,
        manifest: Manifest,
        source: Path,
        dest: Path,
        signer: Signer,
        *,
        verify: bool = True,
        trust: TrustSettings | None = None,
    ) -> bytes:
        """Sign *manifest* for *source* and write the result to *dest*.

        Returns:
            The bytes of the written manifest store.

        Raises:
            ResolutionError: if the source or a referenced resource is missing.
            SignerError: if the signer fails.
            EmbeddingError: if the signature overflows the reserve size or the
                written output does not verify.
        """
        try:
            asset, _ = split_store(source.read_bytes())
        except OSError as exc:
            raise ResolutionError(f"Failed to read `{source}`: {exc}") from exc

        label = f"urn:uuid:{uuid.uuid4()}"
        claim = ClaimRecord(
            label=label,
            claim_generator=manifest.claim_generator,
            title=manifest.title or dest.name,
            format=manifest.format or mimetypes.guess_type(dest.name)[0],
            vendor=manifest.vendor,
            thumbnail=manifest.thumbnail,
            assertions=manifest.assertions,
            ingredients=manifest.ingredients,
            parent=manifest.parent,
            asset_hash=hashlib.sha256(asset).hexdigest(),
            resource_hashes=self._resource_hashes(manifest),
            remote_manifest_url=manifest.remote_url,
            created_at=datetime.now(tz=UTC),
        )

        signature = signer.sign(_canonical_bytes(claim))
        envelope = len(signature) + sum(len(cert) for cert in signer.certs)
        if envelope > signer.reserve_size:
            raise EmbeddingError(
                f"Signature envelope of {envelope} bytes exceeds the reserved "
                f"size of {signer.reserve_size} bytes"
            )

        store = ManifestStore(active_manifest=label)
        for ingredient in self._chained(manifest):
            store.manifests.update(
                parse_store(ingredient.manifest_data, ingredient.title).manifests
            )
        store.manifests[label] = SignedClaim(
            claim=claim,
            signature=SignatureBlock(
                alg=signer.alg,
                certs=[base64.b64encode(cert).decode("ascii") for cert in signer.certs],
                signature=base64.b64encode(signature).decode("ascii"),
                reserve_size=signer.reserve_size,
                tsa_url=signer.tsa_url,
            ),
        )
        store_bytes = store.model_dump_json().encode("utf-8")

        self._write(manifest.mode, asset, store_bytes, dest)
        logger.debug("Wrote %s manifest %s to %s", manifest.mode.value, label, dest)

        if verify:
            result = self.verify(dest, trust)
            if not result.valid:
                raise EmbeddingError(f"Verification after signing failed: {result.error}")
        return store_bytes

    def verify(self, path: Path, trust: TrustSettings | None = None) -> VerificationResult:
        """Verify the active manifest of the asset at *path*."""
        try:
            store_bytes = read_store_bytes(path)
            if store_bytes is None:
                return VerificationResult(valid=False, error=f"No manifest found in `{path}`")
            store = parse_store(store_bytes, path)
            asset, _ = split_store(path.read_bytes())
        except (ResolutionError, ParseError, OSError) as exc:
            return VerificationResult(valid=False, error=str(exc))

        signed = store.manifests.get(store.active_manifest)
        if signed is None:
            return VerificationResult(
                valid=False,
                active_manifest=store.active_manifest,
                error="Active manifest is missing from the store",
            )

        result = VerificationResult(
            valid=False,
            active_manifest=store.active_manifest,
            claim_generator=signed.claim.claim_generator,
        )
        block = signed.signature
        if not block.certs:
            result.error = "Signature carries no certificate"
            return result
        try:
            certs = [base64.b64decode(cert, validate=True) for cert in block.certs]
            signature = base64.b64decode(block.signature, validate=True)
        except binascii.Error as exc:
            result.error = f"Malformed signature block: {exc}"
            return result
        try:
            leaf = x509.load_der_x509_certificate(certs[0])
        except ValueError as exc:
            result.error = f"Invalid signing certificate: {exc}"
            return result
        result.signer = _subject(certs[0])

        if not verify_signature(
            block.alg,
            leaf.public_key(),
            _canonical_bytes(signed.claim),
            signature,
        ):
            result.error = "Signature verification failed"
            return result
        if hashlib.sha256(asset).hexdigest() != signed.claim.asset_hash:
            result.error = "Asset hash does not match the claim"
            return result

        result.valid = True
        if trust is not None:
            result.trusted = is_trusted(trust, certs)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _chained(self, manifest: Manifest) -> list[Ingredient]:
        ingredients = list(manifest.ingredients)
        if manifest.parent is not None:
            ingredients.append(manifest.parent)
        return [i for i in ingredients if i.manifest_data is not None]

    def _resource_hashes(self, manifest: Manifest) -> dict[str, str]:
        hashes: dict[str, str] = {}
        refs: list[tuple[ResourceRef, Path]] = []
        if manifest.thumbnail is not None:
            refs.append((manifest.thumbnail, manifest.resolve_resource(manifest.thumbnail)))
        ingredients = list(manifest.ingredients)
        if manifest.parent is not None:
            ingredients.append(manifest.parent)
        for ingredient in ingredients:
            refs.extend((ref, ingredient.resolve_resource(ref)) for ref in ingredient.resources())
        for ref, path in refs:
            try:
                hashes[ref.identifier] = _sha256_file(path)
            except OSError as exc:
                raise ResolutionError(f"Resource `{ref.identifier}` not found at {path}") from exc
        return hashes

    def _write(self, mode: ManifestMode, asset: bytes, store: bytes, dest: Path) -> None:
        try:
            if mode in (ManifestMode.sidecar, ManifestMode.remote):
                dest.write_bytes(asset)
                sidecar_path(dest).write_bytes(store)
            else:
                dest.write_bytes(join_store(asset, store))
        except OSError as exc:
            raise EmbeddingError(f"Failed to write `{dest}`: {exc}") from exc


__all__ = [
    "LocalStoreBackend",
    "ProvenanceBackend",
    "STORE_MAGIC",
    "join_store",
    "parse_store",
    "read_store_bytes",
    "split_store",
]
