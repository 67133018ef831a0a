"""Output planning: decide whether the output is a file or a directory.

Planning runs once per invocation, before any input is touched, and refuses
every layout that would silently overwrite an existing file.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from pydantic import ValidationError

from aumai_provsign.constants import SIDECAR_EXTENSION
from aumai_provsign.errors import PlanError
from aumai_provsign.models import AssetInput, OutputLayout

logger = logging.getLogger(__name__)

_EXTENSION_ALIASES = {"jpeg": "jpg", "tiff": "tif"}


def normalize_extension(path: Path | str) -> str:
    """Return the lower-cased extension of *path* with common aliases folded."""
    ext = Path(path).suffix.lstrip(".").lower()
    return _EXTENSION_ALIASES.get(ext, ext)


def sidecar_path(path: Path) -> Path:
    """Return the sidecar manifest path that belongs to *path*."""
    return path.with_suffix(f".{SIDECAR_EXTENSION}")


def validate_inputs(paths: Sequence[Path | str]) -> list[AssetInput]:
    """Check that every input path has a file name.

    Raises:
        PlanError: if any path has no usable file name.
    """
    inputs: list[AssetInput] = []
    for path in paths:
        try:
            inputs.append(AssetInput(path=Path(path)))
        except ValidationError as exc:
            raise PlanError(f"Invalid input path `{path}`: no file name") from exc
    return inputs


def plan_output(
    inputs: Sequence[AssetInput],
    output: Path,
    *,
    sidecar: bool,
    force: bool,
) -> OutputLayout:
    """Reconcile *inputs* against *output* and return the output layout.

    A single output may be a file or a directory; several outputs (more than
    one input, or one input plus its sidecar) require a directory, which is
    created when it does not exist yet.

    Raises:
        PlanError: on any conflict between inputs and output.
    """
    num_outputs = len(inputs) * 2 if sidecar else len(inputs)
    exists = output.exists()
    is_dir = output.is_dir()

    if num_outputs == 0:
        raise PlanError("No input path found")

    if exists and not is_dir and num_outputs >= 2:
        raise PlanError("Output path must be a folder if multiple inputs are specified")

    if exists and is_dir and num_outputs >= 2:
        if not force:
            existing = _count_existing(inputs, output, sidecar=sidecar)
            if existing > 0:
                raise PlanError(
                    f"{existing}/{num_outputs} paths already exist, "
                    "use --verbose for more info or --force to overwrite"
                )
        return OutputLayout(output=output, is_dir=True)

    if exists and not is_dir:
        if not force:
            raise PlanError("Output path already exists, use --force to overwrite")
        return OutputLayout(output=output, is_dir=False)

    if exists and is_dir:
        if not force:
            destination = output / inputs[0].file_name
            if destination.exists():
                raise PlanError(
                    f"Output path `{destination}` already exists, "
                    "use --force to overwrite"
                )
        return OutputLayout(output=output, is_dir=True)

    if is_dir:
        raise AssertionError(f"output `{output}` is a directory but does not exist")

    if num_outputs >= 2:
        # Several outputs and nothing there yet: treat the output as a folder.
        logger.debug("Creating output directory %s", output)
        output.mkdir(parents=True, exist_ok=True)
        return OutputLayout(output=output, is_dir=True)

    if not sidecar:
        input_ext = normalize_extension(inputs[0].path)
        output_ext = normalize_extension(output)
        if input_ext != output_ext:
            raise PlanError(
                "Manifest cannot be embedded if extensions do not match "
                f"{input_ext} != {output_ext}, specify --sidecar to sidecar the manifest"
            )
    return OutputLayout(output=output, is_dir=False)


def _count_existing(inputs: Sequence[AssetInput], output: Path, *, sidecar: bool) -> int:
    existing = 0
    for asset in inputs:
        destination = output / asset.file_name
        if destination.exists():
            existing += 1
            logger.warning("Output path `%s` already exists", destination)
        if sidecar:
            side = sidecar_path(destination)
            if side.exists():
                existing += 1
                logger.warning("Sidecar output path `%s` already exists", side)
    return existing


__all__ = ["normalize_extension", "plan_output", "sidecar_path", "validate_inputs"]
