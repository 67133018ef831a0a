"""CLI entry point for aumai-provsign."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path

import click

from aumai_provsign.constants import (
    DEFAULT_RESERVE_SIZE,
    ENV_ALLOWED_LIST,
    ENV_TRUST_ANCHORS,
    ENV_TRUST_CONFIG,
    TOOL_NAME,
    TOOL_VERSION,
)
from aumai_provsign.core import AssetSigner
from aumai_provsign.errors import ProvsignError, SignRunError
from aumai_provsign.models import SignOptions
from aumai_provsign.signers import signer_choice
from aumai_provsign.sources import manifest_source
from aumai_provsign.store import LocalStoreBackend, parse_store, read_store_bytes
from aumai_provsign.trust import load_trust_settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _trust_options(func: Callable[..., None]) -> Callable[..., None]:
    func = click.option(
        "--trust-config",
        envvar=ENV_TRUST_CONFIG,
        metavar="PATH|URL",
        help=f"Allowed extended key usages, one OID per line (env: {ENV_TRUST_CONFIG}).",
    )(func)
    func = click.option(
        "--allowed-list",
        envvar=ENV_ALLOWED_LIST,
        metavar="PATH|URL",
        help=f"PEM bundle of individually trusted certificates (env: {ENV_ALLOWED_LIST}).",
    )(func)
    func = click.option(
        "--trust-anchors",
        envvar=ENV_TRUST_ANCHORS,
        metavar="PATH|URL",
        help=f"PEM bundle of trust anchors (env: {ENV_TRUST_ANCHORS}).",
    )(func)
    return func


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=TOOL_VERSION, prog_name=TOOL_NAME)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool) -> None:
    """AumAI ProvSign — embed signed provenance manifests into assets."""
    _configure_logging(verbose)


@main.command("sign")
@click.argument("paths", nargs=-1, type=click.Path(path_type=Path))
@click.option(
    "-o",
    "--output",
    required=True,
    type=click.Path(path_type=Path),
    help="Output file, or folder when several outputs are produced.",
)
@click.option(
    "-m",
    "--manifest",
    "manifest_path",
    default=None,
    type=click.Path(path_type=Path),
    help="Path to the manifest definition JSON.",
)
@click.option("--manifest-url", default=None, metavar="URL", help="URL of the manifest definition JSON.")
@click.option("-s", "--sidecar", is_flag=True, help="Write a .c2pa sidecar next to the output instead of embedding.")
@click.option("-f", "--force", is_flag=True, help="Overwrite existing output files.")
@click.option(
    "-p",
    "--parent",
    default=None,
    type=click.Path(path_type=Path),
    help="Parent ingredient (ingredient .json or asset).",
)
@click.option(
    "--signer-path",
    default=None,
    type=click.Path(path_type=Path),
    help="Executable that signs claim bytes read from stdin.",
)
@click.option(
    "--reserve-size",
    type=click.IntRange(min=1),
    default=DEFAULT_RESERVE_SIZE,
    show_default=True,
    help="Bytes reserved for the signature envelope of an external signer.",
)
@click.option("--no-verify", is_flag=True, help="Skip verification after signing.")
@_trust_options
def sign_command(
    paths: tuple[Path, ...],
    output: Path,
    manifest_path: Path | None,
    manifest_url: str | None,
    sidecar: bool,
    force: bool,
    parent: Path | None,
    signer_path: Path | None,
    reserve_size: int,
    no_verify: bool,
    trust_anchors: str | None,
    allowed_list: str | None,
    trust_config: str | None,
) -> None:
    """Sign PATHS and write the results to --output."""
    try:
        options = SignOptions(
            output=output,
            manifest_source=manifest_source(manifest_path, manifest_url),
            sidecar=sidecar,
            force=force,
            parent=parent,
            signer=signer_choice(signer_path, reserve_size),
            verify=not no_verify,
        )
        signer = AssetSigner(options)
        inputs, layout = signer.plan(paths)
        signer.trust = load_trust_settings(trust_anchors, allowed_list, trust_config)
        written = signer.sign_all(inputs, layout)
    except SignRunError as exc:
        for path, err in exc.failures:
            click.echo(f"  {path}: {err}", err=True)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except ProvsignError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    for dest in written:
        click.echo(f"Signed: {dest}")


@main.command("inspect")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json-output", is_flag=True, help="Emit the raw manifest store JSON.")
@_trust_options
def inspect_command(
    path: Path,
    json_output: bool,
    trust_anchors: str | None,
    allowed_list: str | None,
    trust_config: str | None,
) -> None:
    """Display and verify the manifest store of an asset."""
    try:
        store_bytes = read_store_bytes(path)
        if store_bytes is None:
            click.echo(f"No manifest found in {path}", err=True)
            sys.exit(1)
        store = parse_store(store_bytes, path)
        trust = load_trust_settings(trust_anchors, allowed_list, trust_config)
    except ProvsignError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(json.loads(store_bytes), indent=2))
        return

    result = LocalStoreBackend().verify(path, trust)
    if store.active_manifest not in store.manifests:
        click.echo(f"Signature: INVALID — {result.error}")
        sys.exit(2)
    claim = store.active.claim
    click.echo(f"Active manifest: {store.active_manifest}")
    click.echo(f"  Generator : {claim.claim_generator}")
    click.echo(f"  Title     : {claim.title}")
    click.echo(f"  Created   : {claim.created_at.isoformat()}")
    if claim.parent is not None:
        click.echo(f"  Parent    : {claim.parent.title} ({claim.parent.active_manifest})")
    for ingredient in claim.ingredients:
        click.echo(f"  Ingredient: {ingredient.title}")
    click.echo(f"  Manifests : {len(store.manifests)}")
    if result.valid:
        click.echo(f"Signature: VALID ({result.signer})")
        if result.trusted is not None:
            click.echo(f"Trusted  : {'yes' if result.trusted else 'no'}")
    else:
        click.echo(f"Signature: INVALID — {result.error}")
        sys.exit(2)


if __name__ == "__main__":
    main()
