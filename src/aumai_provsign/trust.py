"""Trust settings for aumai-provsign.

Trust material is loaded once per run, before the first file is signed, and
passed explicitly to verification.  Only list membership is checked here:
a signing certificate is trusted when its SHA-256 fingerprint appears among
the trust anchors or the allowed list.  Certificate chains are not validated.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import ExtensionOID

from aumai_provsign.errors import ResolutionError
from aumai_provsign.models import TrustSettings
from aumai_provsign.sources import fetch_text

logger = logging.getLogger(__name__)


def load_trust_settings(
    trust_anchors: str | Path | None = None,
    allowed_list: str | Path | None = None,
    trust_config: str | Path | None = None,
) -> TrustSettings:
    """Read each configured location (path or URL) into a :class:`TrustSettings`.

    Raises:
        ResolutionError: if a location cannot be read or holds no certificates.
    """
    anchors = _load_pem(trust_anchors, "trust anchors")
    allowed = _load_pem(allowed_list, "allowed list")
    config = fetch_text(trust_config) if trust_config is not None else None
    settings = TrustSettings(
        trust_anchors=anchors, allowed_list=allowed, trust_config=config
    )
    if settings.is_configured:
        logger.debug(
            "Loaded trust settings: %d anchors, %d allowed certificates",
            len(_fingerprints(anchors)),
            len(_fingerprints(allowed)),
        )
    return settings


def allowed_ekus(settings: TrustSettings) -> set[str]:
    """Return the extended key usage OIDs listed in the trust config."""
    if not settings.trust_config:
        return set()
    oids: set[str] = set()
    for line in settings.trust_config.splitlines():
        line = line.strip()
        if line and not line.startswith("//") and not line.startswith("#"):
            oids.add(line)
    return oids


def is_trusted(settings: TrustSettings, certs: list[bytes]) -> bool | None:
    """Decide whether the chain *certs* (DER, leaf first) is trusted.

    Returns None when no trust material is configured.
    """
    if not settings.is_configured:
        return None
    if not certs:
        return False

    ekus = allowed_ekus(settings)
    if ekus and not ekus & _leaf_ekus(certs[0]):
        return False

    if not settings.trust_anchors and not settings.allowed_list:
        return True

    known = _fingerprints(settings.trust_anchors) | _fingerprints(settings.allowed_list)
    return any(hashlib.sha256(cert).hexdigest() in known for cert in certs)


def _load_pem(location: str | Path | None, what: str) -> str | None:
    if location is None:
        return None
    pem = fetch_text(location)
    if not _fingerprints(pem):
        raise ResolutionError(f"No certificates found in {what} `{location}`")
    return pem


def _fingerprints(pem: str | None) -> set[str]:
    if not pem:
        return set()
    try:
        certs = x509.load_pem_x509_certificates(pem.encode("utf-8"))
    except ValueError:
        return set()
    return {cert.fingerprint(hashes.SHA256()).hex() for cert in certs}


def _leaf_ekus(der: bytes) -> set[str]:
    cert = x509.load_der_x509_certificate(der)
    try:
        ext = cert.extensions.get_extension_for_oid(ExtensionOID.EXTENDED_KEY_USAGE)
    except x509.ExtensionNotFound:
        return set()
    return {oid.dotted_string for oid in ext.value}


__all__ = ["allowed_ekus", "is_trusted", "load_trust_settings"]
