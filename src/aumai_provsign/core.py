"""Sign one or more assets with a provenance manifest."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from aumai_provsign.assembler import ManifestAssembler
from aumai_provsign.errors import ProvsignError, SignRunError
from aumai_provsign.models import AssetInput, OutputLayout, SignOptions, TrustSettings
from aumai_provsign.planner import plan_output, validate_inputs
from aumai_provsign.signers import select_signer
from aumai_provsign.sources import resolve_manifest
from aumai_provsign.store import LocalStoreBackend, ProvenanceBackend

logger = logging.getLogger(__name__)


class AssetSigner:
    """Plan the outputs once, then sign every input independently.

    Inputs are processed sequentially in the order given.  A failure on one
    input is logged and recorded and the next input is still attempted;
    outputs already written are left in place.
    """

    def __init__(
        self,
        options: SignOptions,
        trust: TrustSettings | None = None,
        backend: ProvenanceBackend | None = None,
    ) -> None:
        self.options = options
        self.trust = trust if trust is not None else TrustSettings()
        self.backend = backend if backend is not None else LocalStoreBackend()
        self._assembler = ManifestAssembler(self.backend)

    def execute(self, paths: Sequence[Path | str]) -> list[Path]:
        """Plan the outputs for *paths*, then sign every input.

        Returns:
            The destination paths that were written, in input order.

        Raises:
            PlanError: if the inputs and output conflict; nothing is signed.
            SignRunError: if at least one input failed to sign.
        """
        inputs, layout = self.plan(paths)
        return self.sign_all(inputs, layout)

    def plan(self, paths: Sequence[Path | str]) -> tuple[list[AssetInput], OutputLayout]:
        """Validate *paths* and reconcile them with the configured output."""
        inputs = validate_inputs(paths)
        layout = plan_output(
            inputs,
            self.options.output,
            sidecar=self.options.sidecar,
            force=self.options.force,
        )
        return inputs, layout

    def sign_all(self, inputs: Sequence[AssetInput], layout: OutputLayout) -> list[Path]:
        """Sign each planned input; failures are collected, not fatal."""
        written: list[Path] = []
        failures: list[tuple[Path, Exception]] = []
        for asset in inputs:
            dest = layout.destination(asset)
            try:
                self.sign_file(asset.path, dest)
            except (ProvsignError, OSError) as exc:
                logger.error("Failed to sign asset at path `%s`, %s", asset.path, exc)
                failures.append((asset.path, exc))
            else:
                written.append(dest)

        if failures:
            raise SignRunError(failures, len(inputs))
        return written

    def sign_file(self, source: Path, dest: Path) -> bytes:
        """Assemble, sign and embed the manifest for a single asset."""
        definition_json = resolve_manifest(self.options.manifest_source)
        manifest, sign_config = self._assembler.assemble(
            definition_json,
            source,
            manifest_source=self.options.manifest_source,
            parent=self.options.parent,
            sidecar=self.options.sidecar,
        )
        signer = select_signer(sign_config, self.options.signer)
        logger.info("Signing %s -> %s", source, dest)
        return self.backend.embed(
            manifest,
            source,
            dest,
            signer,
            verify=self.options.verify,
            trust=self.trust,
        )


__all__ = ["AssetSigner"]
