"""Signers: the built-in key signer and the external-process callback signer."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.types import (
    PrivateKeyTypes,
    PublicKeyTypes,
)

from aumai_provsign.constants import DEFAULT_RESERVE_SIZE, SIGNATURE_ENVELOPE_OVERHEAD
from aumai_provsign.errors import SignerError
from aumai_provsign.models import (
    BuiltinSignerChoice,
    ExternalSignerChoice,
    SigningAlgorithm,
    SigningConfig,
)

logger = logging.getLogger(__name__)

_HASHES: dict[SigningAlgorithm, type[hashes.HashAlgorithm]] = {
    SigningAlgorithm.es256: hashes.SHA256,
    SigningAlgorithm.es384: hashes.SHA384,
    SigningAlgorithm.es512: hashes.SHA512,
    SigningAlgorithm.ps256: hashes.SHA256,
    SigningAlgorithm.ps384: hashes.SHA384,
    SigningAlgorithm.ps512: hashes.SHA512,
}


class Signer(Protocol):
    """What the provenance backend needs from a signer."""

    @property
    def alg(self) -> SigningAlgorithm: ...

    @property
    def certs(self) -> list[bytes]: ...

    @property
    def reserve_size(self) -> int: ...

    @property
    def tsa_url(self) -> str | None: ...

    def sign(self, data: bytes) -> bytes: ...


# ---------------------------------------------------------------------------
# Key helpers
# ---------------------------------------------------------------------------


def _is_ecdsa(alg: SigningAlgorithm) -> bool:
    return alg.value.startswith("es")


def _is_pss(alg: SigningAlgorithm) -> bool:
    return alg.value.startswith("ps")


def _pss(hash_cls: type[hashes.HashAlgorithm]) -> padding.PSS:
    return padding.PSS(mgf=padding.MGF1(hash_cls()), salt_length=hash_cls.digest_size)


def sign_with_key(alg: SigningAlgorithm, key: PrivateKeyTypes, data: bytes) -> bytes:
    """Sign *data* with *key* using *alg*.

    Raises:
        SignerError: if the key type does not match the algorithm.
    """
    if alg == SigningAlgorithm.ed25519 and isinstance(key, Ed25519PrivateKey):
        return key.sign(data)
    if _is_ecdsa(alg) and isinstance(key, ec.EllipticCurvePrivateKey):
        return key.sign(data, ec.ECDSA(_HASHES[alg]()))
    if _is_pss(alg) and isinstance(key, rsa.RSAPrivateKey):
        hash_cls = _HASHES[alg]
        return key.sign(data, _pss(hash_cls), hash_cls())
    raise SignerError(
        f"Private key type {type(key).__name__} does not match algorithm {alg.value}"
    )


def verify_signature(
    alg: SigningAlgorithm,
    public_key: PublicKeyTypes,
    data: bytes,
    signature: bytes,
) -> bool:
    """Return True if *signature* over *data* verifies with *public_key*."""
    try:
        if alg == SigningAlgorithm.ed25519 and isinstance(public_key, Ed25519PublicKey):
            public_key.verify(signature, data)
        elif _is_ecdsa(alg) and isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, data, ec.ECDSA(_HASHES[alg]()))
        elif _is_pss(alg) and isinstance(public_key, rsa.RSAPublicKey):
            hash_cls = _HASHES[alg]
            public_key.verify(signature, data, _pss(hash_cls), hash_cls())
        else:
            return False
    except InvalidSignature:
        return False
    return True


def load_cert_chain(path: Path) -> list[bytes]:
    """Read a PEM certificate chain and return DER bytes, leaf first."""
    try:
        pem = path.read_bytes()
    except OSError as exc:
        raise SignerError(f"Failed to read certificate `{path}`: {exc}") from exc
    try:
        certs = x509.load_pem_x509_certificates(pem)
    except ValueError as exc:
        raise SignerError(f"Invalid certificate chain `{path}`: {exc}") from exc
    return [cert.public_bytes(serialization.Encoding.DER) for cert in certs]


def _load_private_key(path: Path) -> PrivateKeyTypes:
    try:
        pem = path.read_bytes()
    except OSError as exc:
        raise SignerError(f"Failed to read private key `{path}`: {exc}") from exc
    try:
        return serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as exc:
        raise SignerError(f"Invalid private key `{path}`: {exc}") from exc


# ---------------------------------------------------------------------------
# Built-in signer
# ---------------------------------------------------------------------------


class BuiltinSigner:
    """Signs with a local PEM private key and certificate chain."""

    def __init__(
        self,
        alg: SigningAlgorithm,
        private_key: PrivateKeyTypes,
        certs: list[bytes],
        tsa_url: str | None = None,
    ) -> None:
        self._alg = alg
        self._private_key = private_key
        self._certs = certs
        self._tsa_url = tsa_url

    @classmethod
    def from_config(cls, config: SigningConfig) -> BuiltinSigner:
        """Load key material named by *config*, resolved against its base path.

        Raises:
            SignerError: if key or certificate is missing, unreadable or invalid.
        """
        if config.private_key is None or config.sign_cert is None:
            raise SignerError(
                "Both private_key and sign_cert must be specified in the manifest "
                "definition to use the built-in signer"
            )
        private_key = _load_private_key(config.resolve(config.private_key))
        certs = load_cert_chain(config.resolve(config.sign_cert))
        return cls(config.alg, private_key, certs, config.ta_url)

    @property
    def alg(self) -> SigningAlgorithm:
        return self._alg

    @property
    def certs(self) -> list[bytes]:
        return self._certs

    @property
    def reserve_size(self) -> int:
        return SIGNATURE_ENVELOPE_OVERHEAD + sum(len(cert) for cert in self._certs)

    @property
    def tsa_url(self) -> str | None:
        return self._tsa_url

    def sign(self, data: bytes) -> bytes:
        return sign_with_key(self._alg, self._private_key, data)


# ---------------------------------------------------------------------------
# External-process signer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallbackSignerConfig:
    """Signing parameters handed to an external signer process."""

    alg: SigningAlgorithm
    certs: list[bytes] = field(default_factory=list)
    reserve_size: int = DEFAULT_RESERVE_SIZE
    tsa_url: str | None = None

    @classmethod
    def from_sign_config(
        cls, config: SigningConfig, reserve_size: int
    ) -> CallbackSignerConfig:
        """Build the callback configuration for *config*.

        Raises:
            SignerError: if no signing certificate is configured.
        """
        if config.sign_cert is None:
            raise SignerError(
                "sign_cert must be specified in the manifest definition to use "
                "an external signer"
            )
        certs = load_cert_chain(config.resolve(config.sign_cert))
        return cls(
            alg=config.alg,
            certs=certs,
            reserve_size=reserve_size,
            tsa_url=config.ta_url,
        )


class ExternalProcessRunner:
    """Runs an executable that reads claim bytes on stdin and writes a signature.

    There is no framing: the claim is the whole of stdin and the signature is
    the whole of stdout.  One process is spawned per call and no timeout is
    applied.
    """

    def __init__(self, config: CallbackSignerConfig, signer_path: Path) -> None:
        self.config = config
        self.signer_path = signer_path

    def command(self) -> list[str]:
        return [
            str(self.signer_path),
            "--reserve-size",
            str(self.config.reserve_size),
            "--alg",
            self.config.alg.value,
        ]

    def run(self, data: bytes) -> bytes:
        """Send *data* to the signer process and return its stdout.

        Raises:
            SignerError: if the process cannot be spawned or exits non-zero.
        """
        logger.debug("Running external signer %s", self.signer_path)
        try:
            completed = subprocess.run(
                self.command(),
                input=data,
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise SignerError(
                f"Failed to run signer `{self.signer_path}`: {exc}"
            ) from exc
        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise SignerError(
                f"Signer `{self.signer_path}` exited with status "
                f"{completed.returncode}: {stderr}"
            )
        return completed.stdout


class CallbackSigner:
    """Signer whose signature is produced by an :class:`ExternalProcessRunner`."""

    def __init__(self, runner: ExternalProcessRunner, config: CallbackSignerConfig) -> None:
        self._runner = runner
        self._config = config

    @property
    def alg(self) -> SigningAlgorithm:
        return self._config.alg

    @property
    def certs(self) -> list[bytes]:
        return self._config.certs

    @property
    def reserve_size(self) -> int:
        return self._config.reserve_size

    @property
    def tsa_url(self) -> str | None:
        return self._config.tsa_url

    def sign(self, data: bytes) -> bytes:
        return self._runner.run(data)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def signer_choice(
    signer_path: Path | str | None,
    reserve_size: int = DEFAULT_RESERVE_SIZE,
) -> BuiltinSignerChoice | ExternalSignerChoice:
    """Turn optional command-line values into a signer choice."""
    if signer_path is None:
        return BuiltinSignerChoice()
    return ExternalSignerChoice(signer_path=Path(signer_path), reserve_size=reserve_size)


def select_signer(
    config: SigningConfig,
    choice: BuiltinSignerChoice | ExternalSignerChoice,
) -> Signer:
    """Construct the signer described by *choice*."""
    if isinstance(choice, ExternalSignerChoice):
        cb_config = CallbackSignerConfig.from_sign_config(config, choice.reserve_size)
        runner = ExternalProcessRunner(cb_config, choice.signer_path)
        return CallbackSigner(runner, cb_config)
    return BuiltinSigner.from_config(config)


__all__ = [
    "BuiltinSigner",
    "CallbackSigner",
    "CallbackSignerConfig",
    "ExternalProcessRunner",
    "Signer",
    "load_cert_chain",
    "select_signer",
    "sign_with_key",
    "signer_choice",
    "verify_signature",
]
