"""Pydantic models for aumai-provsign."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
)

from aumai_provsign.constants import DEFAULT_CLAIM_GENERATOR, DEFAULT_RESERVE_SIZE
from aumai_provsign.errors import ParseError


class SigningAlgorithm(str, Enum):
    """Signature algorithms accepted in a signing configuration."""

    es256 = "es256"
    es384 = "es384"
    es512 = "es512"
    ps256 = "ps256"
    ps384 = "ps384"
    ps512 = "ps512"
    ed25519 = "ed25519"


class Relationship(str, Enum):
    """How an ingredient relates to the asset being signed."""

    parent_of = "parentOf"
    component_of = "componentOf"
    input_to = "inputTo"


class ManifestMode(str, Enum):
    """Where the signed manifest ends up relative to the output asset."""

    embedded = "embedded"
    sidecar = "sidecar"
    remote = "remote"
    embedded_with_remote_ref = "embedded_with_remote_ref"


# ---------------------------------------------------------------------------
# Manifest definition
# ---------------------------------------------------------------------------


class ResourceRef(BaseModel):
    """A binary resource (thumbnail, data) referenced by path."""

    format: str
    identifier: str


class Assertion(BaseModel):
    """A labelled assertion carried in the claim."""

    label: str
    data: dict[str, Any] = Field(default_factory=dict)


class Ingredient(BaseModel):
    """An asset that contributed to the one being signed.

    ``manifest_data`` holds the raw manifest store of the ingredient (if it
    carried one) and ``base_path`` is the directory relative resource
    identifiers are resolved against.  Both are private state set by the
    loader, never read from input documents and never serialised.
    """

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    format: str = "application/octet-stream"
    instance_id: str = Field(default_factory=lambda: f"xmp:iid:{uuid.uuid4()}")
    relationship: Relationship = Relationship.component_of
    thumbnail: ResourceRef | None = None
    data: ResourceRef | None = None
    active_manifest: str | None = None

    _manifest_data: bytes | None = PrivateAttr(default=None)
    _base_path: Path | None = PrivateAttr(default=None)

    @property
    def manifest_data(self) -> bytes | None:
        return self._manifest_data

    @property
    def base_path(self) -> Path | None:
        return self._base_path

    def with_manifest_data(self, data: bytes | None) -> Ingredient:
        self._manifest_data = data
        return self

    def with_base_path(self, base_path: Path) -> Ingredient:
        self._base_path = base_path
        return self

    def resources(self) -> list[ResourceRef]:
        return [ref for ref in (self.thumbnail, self.data) if ref is not None]

    def resolve_resource(self, ref: ResourceRef) -> Path:
        return _resolve(ref.identifier, self.base_path)


class InlineIngredient(BaseModel):
    """Ingredient described inline in the manifest definition."""

    kind: Literal["inline"] = "inline"
    ingredient: Ingredient


class IngredientPath(BaseModel):
    """Ingredient referenced by path (ingredient JSON or raw asset)."""

    kind: Literal["path"] = "path"
    path: Path


IngredientSource = InlineIngredient | IngredientPath


def ingredient_source(value: Any) -> IngredientSource:
    """Pick the ingredient source variant from the shape of a JSON value."""
    if isinstance(value, (InlineIngredient, IngredientPath)):
        return value
    if isinstance(value, dict):
        return InlineIngredient(ingredient=Ingredient.model_validate(value))
    if isinstance(value, str):
        return IngredientPath(path=Path(value))
    raise ValueError(
        f"ingredient must be an object or a path string, got {type(value).__name__}"
    )


class ManifestDefinition(BaseModel):
    """The declarative manifest document supplied by the operator."""

    model_config = ConfigDict(extra="ignore")

    claim_generator: str = DEFAULT_CLAIM_GENERATOR
    title: str | None = None
    format: str | None = None
    vendor: str | None = None
    thumbnail: ResourceRef | None = None
    assertions: list[Assertion] = Field(default_factory=list)
    ingredients: list[IngredientSource] | None = None

    @field_validator("ingredients", mode="before")
    @classmethod
    def _classify_ingredients(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, list):
            raise ValueError("ingredients must be a list")
        return [ingredient_source(item) for item in value]

    @classmethod
    def from_json(cls, text: str) -> ManifestDefinition:
        try:
            return cls.model_validate_json(text)
        except ValidationError as exc:
            raise ParseError(f"Invalid manifest definition: {exc}") from exc


class SigningConfig(BaseModel):
    """Signing fields read from the same document as the manifest definition."""

    model_config = ConfigDict(extra="ignore")

    alg: SigningAlgorithm = SigningAlgorithm.es256
    private_key: Path | None = None
    sign_cert: Path | None = None
    ta_url: str | None = None

    _base_path: Path | None = PrivateAttr(default=None)

    @field_validator("alg", mode="before")
    @classmethod
    def _lowercase_alg(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @classmethod
    def from_json(cls, text: str) -> SigningConfig:
        try:
            return cls.model_validate_json(text)
        except ValidationError as exc:
            raise ParseError(f"Invalid signing configuration: {exc}") from exc

    @property
    def base_path(self) -> Path | None:
        return self._base_path

    def set_base_path(self, base_path: Path) -> None:
        self._base_path = base_path

    def resolve(self, path: Path) -> Path:
        return _resolve(str(path), self.base_path)


class Manifest(BaseModel):
    """A manifest definition merged with its resolved ingredients and parent.

    Built fresh for every input file and consumed once by the backend.
    """

    claim_generator: str
    title: str | None = None
    format: str | None = None
    vendor: str | None = None
    thumbnail: ResourceRef | None = None
    assertions: list[Assertion] = Field(default_factory=list)
    ingredients: list[Ingredient] = Field(default_factory=list)
    parent: Ingredient | None = None
    mode: ManifestMode = ManifestMode.embedded
    remote_url: str | None = None
    base_path: Path | None = Field(default=None, exclude=True)

    @classmethod
    def from_definition(cls, definition: ManifestDefinition) -> Manifest:
        return cls(
            claim_generator=definition.claim_generator,
            title=definition.title,
            format=definition.format,
            vendor=definition.vendor,
            thumbnail=definition.thumbnail,
            assertions=list(definition.assertions),
        )

    def with_base_path(self, base_path: Path) -> Manifest:
        self.base_path = base_path
        return self

    def add_ingredient(self, ingredient: Ingredient) -> None:
        self.ingredients.append(ingredient)

    def set_parent(self, ingredient: Ingredient) -> None:
        self.parent = ingredient.model_copy(
            update={"relationship": Relationship.parent_of}
        )

    def set_sidecar_manifest(self) -> None:
        self.mode = ManifestMode.sidecar
        self.remote_url = None

    def set_remote_manifest(self, url: str) -> None:
        self.mode = ManifestMode.remote
        self.remote_url = url

    def set_embedded_manifest_with_remote_ref(self, url: str) -> None:
        self.mode = ManifestMode.embedded_with_remote_ref
        self.remote_url = url

    def resolve_resource(self, ref: ResourceRef) -> Path:
        return _resolve(ref.identifier, self.base_path)


# ---------------------------------------------------------------------------
# Sources, signer choice and run options
# ---------------------------------------------------------------------------


class ManifestPath(BaseModel):
    """Manifest definition read from a local file."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["path"] = "path"
    path: Path


class ManifestUrl(BaseModel):
    """Manifest definition fetched from an http(s) URL."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["url"] = "url"
    url: str

    @field_validator("url")
    @classmethod
    def _require_http(cls, value: str) -> str:
        if urlparse(value).scheme not in ("http", "https"):
            raise ValueError(f"manifest URL must be http(s): {value}")
        return value


class BuiltinSignerChoice(BaseModel):
    """Sign with the key material named in the signing configuration."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["builtin"] = "builtin"


class ExternalSignerChoice(BaseModel):
    """Delegate signature computation to an external executable."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["external"] = "external"
    signer_path: Path
    reserve_size: int = Field(default=DEFAULT_RESERVE_SIZE, gt=0)


class SignOptions(BaseModel):
    """Everything that stays constant across the inputs of one run."""

    output: Path
    manifest_source: ManifestPath | ManifestUrl
    sidecar: bool = False
    force: bool = False
    parent: Path | None = None
    signer: BuiltinSignerChoice | ExternalSignerChoice = Field(
        default_factory=BuiltinSignerChoice
    )
    verify: bool = True


class TrustSettings(BaseModel):
    """Trust material loaded once per run and passed to verification."""

    model_config = ConfigDict(frozen=True)

    trust_anchors: str | None = None  # PEM bundle
    allowed_list: str | None = None  # PEM bundle
    trust_config: str | None = None  # one EKU OID per line

    @property
    def is_configured(self) -> bool:
        return any((self.trust_anchors, self.allowed_list, self.trust_config))


# ---------------------------------------------------------------------------
# Output planning
# ---------------------------------------------------------------------------


class AssetInput(BaseModel):
    """An input path that is known to have a usable file name."""

    model_config = ConfigDict(frozen=True)

    path: Path

    @field_validator("path")
    @classmethod
    def _require_file_name(cls, value: Path) -> Path:
        if value.name in ("", ".", ".."):
            raise ValueError(f"input path has no file name: {value}")
        return value

    @property
    def file_name(self) -> str:
        return self.path.name


class OutputLayout(BaseModel):
    """Result of output planning: a single file or a directory of outputs."""

    model_config = ConfigDict(frozen=True)

    output: Path
    is_dir: bool

    def destination(self, asset: AssetInput) -> Path:
        if self.is_dir:
            return self.output / asset.file_name
        return self.output


# ---------------------------------------------------------------------------
# Manifest store records
# ---------------------------------------------------------------------------


class SignatureBlock(BaseModel):
    """Signature envelope stored next to a claim."""

    alg: SigningAlgorithm
    certs: list[str] = Field(default_factory=list)  # base64 DER, leaf first
    signature: str  # base64
    reserve_size: int = Field(ge=0)
    tsa_url: str | None = None


class ClaimRecord(BaseModel):
    """The signed portion of a manifest."""

    label: str
    claim_generator: str
    title: str | None = None
    format: str | None = None
    vendor: str | None = None
    thumbnail: ResourceRef | None = None
    assertions: list[Assertion] = Field(default_factory=list)
    ingredients: list[Ingredient] = Field(default_factory=list)
    parent: Ingredient | None = None
    asset_hash: str = Field(min_length=64, max_length=64)
    resource_hashes: dict[str, str] = Field(default_factory=dict)
    remote_manifest_url: str | None = None
    created_at: datetime


class SignedClaim(BaseModel):
    claim: ClaimRecord
    signature: SignatureBlock


class ManifestStore(BaseModel):
    """All manifests known for an asset, keyed by label."""

    active_manifest: str
    manifests: dict[str, SignedClaim] = Field(default_factory=dict)

    @property
    def active(self) -> SignedClaim:
        return self.manifests[self.active_manifest]


class VerificationResult(BaseModel):
    """Outcome of verifying the active manifest of an asset."""

    valid: bool
    active_manifest: str | None = None
    claim_generator: str | None = None
    signer: str | None = None
    trusted: bool | None = None
    error: str | None = None


def _resolve(identifier: str, base_path: Path | None) -> Path:
    path = Path(identifier)
    if path.is_absolute() or base_path is None:
        return path
    return base_path / path


__all__ = [
    "Assertion",
    "AssetInput",
    "BuiltinSignerChoice",
    "ClaimRecord",
    "ExternalSignerChoice",
    "Ingredient",
    "IngredientPath",
    "IngredientSource",
    "InlineIngredient",
    "Manifest",
    "ManifestDefinition",
    "ManifestMode",
    "ManifestPath",
    "ManifestStore",
    "ManifestUrl",
    "OutputLayout",
    "Relationship",
    "ResourceRef",
    "SignOptions",
    "SignatureBlock",
    "SignedClaim",
    "SigningAlgorithm",
    "SigningConfig",
    "TrustSettings",
    "VerificationResult",
    "ingredient_source",
]
