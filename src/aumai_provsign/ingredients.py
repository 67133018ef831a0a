"""Load ingredients from ingredient JSON documents or raw asset files."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from aumai_provsign.errors import ParseError, ResolutionError
from aumai_provsign.models import Ingredient
from aumai_provsign.store import ProvenanceBackend

logger = logging.getLogger(__name__)


def load_ingredient(path: Path, backend: ProvenanceBackend) -> Ingredient:
    """Load the ingredient at *path*.

    A ``.json`` file is parsed as an ingredient description whose relative
    resources resolve against the file's directory; anything else is treated
    as an asset and inspected by *backend*.

    Raises:
        ResolutionError: if the file does not exist or cannot be read.
        ParseError: if an ingredient JSON document is malformed.
    """
    if path.suffix != ".json":
        return backend.ingredient_from_file(path)

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Invalid ingredient JSON `{path}`: not valid UTF-8") from exc
    except OSError as exc:
        raise ResolutionError(f"Failed to read ingredient `{path}`: {exc}") from exc
    try:
        ingredient = Ingredient.model_validate_json(text)
    except ValidationError as exc:
        raise ParseError(f"Invalid ingredient JSON `{path}`: {exc}") from exc

    logger.debug("Loaded ingredient %s from %s", ingredient.title, path)
    return ingredient.with_base_path(path.parent)


__all__ = ["load_ingredient"]
