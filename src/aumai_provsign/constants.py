"""Shared constants for aumai-provsign."""

from __future__ import annotations

TOOL_NAME = "aumai-provsign"
TOOL_VERSION = "0.1.0"
TOOL_GENERATOR = f"{TOOL_NAME}/{TOOL_VERSION}"

# Generators starting with this prefix are library defaults and get replaced.
RESERVED_GENERATOR_PREFIX = "c2pa/"
DEFAULT_CLAIM_GENERATOR = "c2pa/unspecified"

SIDECAR_EXTENSION = "c2pa"
DEFAULT_RESERVE_SIZE = 20_000
# Fixed envelope overhead added to the certificate bytes for built-in signers.
SIGNATURE_ENVELOPE_OVERHEAD = 1024

ENV_TRUST_ANCHORS = "PROVSIGN_TRUST_ANCHORS"
ENV_ALLOWED_LIST = "PROVSIGN_ALLOWED_LIST"
ENV_TRUST_CONFIG = "PROVSIGN_TRUST_CONFIG"

HTTP_TIMEOUT = 30  # seconds
