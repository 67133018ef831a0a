"""Assemble the manifest that gets signed into a single asset."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from aumai_provsign.constants import RESERVED_GENERATOR_PREFIX, TOOL_GENERATOR
from aumai_provsign.errors import ResolutionError
from aumai_provsign.ingredients import load_ingredient
from aumai_provsign.models import (
    IngredientPath,
    InlineIngredient,
    Manifest,
    ManifestDefinition,
    ManifestPath,
    ManifestUrl,
    SigningConfig,
)
from aumai_provsign.store import ProvenanceBackend

logger = logging.getLogger(__name__)


def rewrite_generator(generator: str, tool_generator: str = TOOL_GENERATOR) -> str:
    """Tag *generator* with this tool's identity.

    Library-default generators are replaced outright; anything else keeps its
    value and gets the tool tag appended.
    """
    if generator.startswith(RESERVED_GENERATOR_PREFIX):
        return tool_generator
    return f"{generator} {tool_generator}"


def compute_base_path(source: ManifestPath | ManifestUrl) -> Path:
    """Directory that relative paths in the manifest definition resolve against.

    Raises:
        ResolutionError: if the path cannot be canonicalised.
    """
    if isinstance(source, ManifestUrl):
        try:
            return Path(os.getcwd())
        except OSError as exc:
            raise ResolutionError(f"Cannot determine current directory: {exc}") from exc
    try:
        manifest_path = source.path.resolve(strict=True)
    except OSError as exc:
        raise ResolutionError(
            f"Cannot find manifest parent path for `{source.path}`: {exc}"
        ) from exc
    return manifest_path.parent


class ManifestAssembler:
    """Merge a manifest definition with ingredients, parent and embedding mode."""

    def __init__(
        self,
        backend: ProvenanceBackend,
        tool_generator: str = TOOL_GENERATOR,
    ) -> None:
        self._backend = backend
        self._tool_generator = tool_generator

    def assemble(
        self,
        definition_json: str,
        source: Path,
        *,
        manifest_source: ManifestPath | ManifestUrl,
        parent: Path | None = None,
        sidecar: bool = False,
    ) -> tuple[Manifest, SigningConfig]:
        """Build the manifest and signing configuration for *source*.

        Args:
            definition_json: Manifest definition text; it also carries the
                signing fields.
            source: The asset about to be signed.
            manifest_source: Where *definition_json* came from.
            parent: Optional explicit parent ingredient path.
            sidecar: Whether the manifest goes to a sidecar file.

        Returns:
            A tuple of ``(manifest, signing_config)``.

        Raises:
            ParseError: if the definition or an ingredient document is malformed.
            ResolutionError: if an ingredient, the parent or the base path
                cannot be resolved.
        """
        sign_config = SigningConfig.from_json(definition_json)
        definition = ManifestDefinition.from_json(definition_json)

        manifest = Manifest.from_definition(definition)
        manifest.claim_generator = rewrite_generator(
            definition.claim_generator, self._tool_generator
        )

        # Must precede ingredient loading: JSON ingredients carry their own base.
        base_path = compute_base_path(manifest_source)
        manifest.with_base_path(base_path)
        sign_config.set_base_path(base_path)

        for entry in definition.ingredients or []:
            if isinstance(entry, InlineIngredient):
                ingredient = entry.ingredient.model_copy()
                manifest.add_ingredient(ingredient.with_base_path(base_path))
            elif isinstance(entry, IngredientPath):
                path = entry.path if entry.path.is_absolute() else base_path / entry.path
                manifest.add_ingredient(load_ingredient(path, self._backend))

        if parent is not None:
            manifest.set_parent(load_ingredient(parent, self._backend))

        # An asset that already carries a manifest becomes its own parent.
        if manifest.parent is None:
            source_ingredient = self._backend.ingredient_from_file(source)
            if source_ingredient.manifest_data is not None:
                logger.debug("Using existing manifest in %s as parent", source)
                manifest.set_parent(source_ingredient)

        if isinstance(manifest_source, ManifestUrl):
            if sidecar:
                manifest.set_remote_manifest(manifest_source.url)
            else:
                manifest.set_embedded_manifest_with_remote_ref(manifest_source.url)
        elif sidecar:
            manifest.set_sidecar_manifest()

        return manifest, sign_config


__all__ = ["ManifestAssembler", "compute_base_path", "rewrite_generator"]
