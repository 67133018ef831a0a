"""aumai-provsign: Embed signed provenance manifests into asset files."""

from aumai_provsign.assembler import ManifestAssembler, rewrite_generator
from aumai_provsign.constants import TOOL_GENERATOR, TOOL_VERSION
from aumai_provsign.core import AssetSigner
from aumai_provsign.errors import (
    EmbeddingError,
    ParseError,
    PlanError,
    ProvsignError,
    ResolutionError,
    SignerError,
    SignRunError,
)
from aumai_provsign.models import (
    Ingredient,
    Manifest,
    ManifestDefinition,
    ManifestMode,
    OutputLayout,
    SigningAlgorithm,
    SigningConfig,
    SignOptions,
    TrustSettings,
    VerificationResult,
)
from aumai_provsign.planner import normalize_extension, plan_output
from aumai_provsign.signers import BuiltinSigner, CallbackSigner, select_signer
from aumai_provsign.store import LocalStoreBackend
from aumai_provsign.trust import load_trust_settings

__version__ = TOOL_VERSION

__all__ = [
    "AssetSigner",
    "BuiltinSigner",
    "CallbackSigner",
    "EmbeddingError",
    "Ingredient",
    "LocalStoreBackend",
    "Manifest",
    "ManifestAssembler",
    "ManifestDefinition",
    "ManifestMode",
    "OutputLayout",
    "ParseError",
    "PlanError",
    "ProvsignError",
    "ResolutionError",
    "SignOptions",
    "SignRunError",
    "SignerError",
    "SigningAlgorithm",
    "SigningConfig",
    "TOOL_GENERATOR",
    "TrustSettings",
    "VerificationResult",
    "load_trust_settings",
    "normalize_extension",
    "plan_output",
    "rewrite_generator",
    "select_signer",
]
