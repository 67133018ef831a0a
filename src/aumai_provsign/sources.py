"""Resolve manifest definitions and other documents from paths or URLs."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlparse

import requests
from pydantic import ValidationError

from aumai_provsign.constants import HTTP_TIMEOUT
from aumai_provsign.errors import ParseError, PlanError, ResolutionError
from aumai_provsign.models import ManifestPath, ManifestUrl

logger = logging.getLogger(__name__)


def is_url(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https")


def fetch_text(location: str | Path) -> str:
    """Return the text at *location*, a local path or an http(s) URL.

    Raises:
        ResolutionError: if the file cannot be read or the request fails.
        ParseError: if a local file is not valid UTF-8.
    """
    location = str(location)
    if is_url(location):
        logger.debug("Fetching %s", location)
        try:
            response = requests.get(location, timeout=HTTP_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ResolutionError(f"Failed to fetch `{location}`: {exc}") from exc
        return response.text
    try:
        return Path(location).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"`{location}` is not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise ResolutionError(f"Failed to read `{location}`: {exc}") from exc


def manifest_source(
    path: Path | str | None = None,
    url: str | None = None,
) -> ManifestPath | ManifestUrl:
    """Build the manifest source from exactly one of *path* and *url*.

    Raises:
        PlanError: if both or neither are given, or the URL is not http(s).
    """
    if (path is None) == (url is None):
        raise PlanError("Exactly one of a manifest path or a manifest URL is required")
    if path is not None:
        return ManifestPath(path=Path(path))
    try:
        return ManifestUrl(url=url)
    except ValidationError as exc:
        raise PlanError(f"Invalid manifest URL `{url}`") from exc


def resolve_manifest(source: ManifestPath | ManifestUrl) -> str:
    """Return the manifest definition JSON text for *source*."""
    if isinstance(source, ManifestPath):
        return fetch_text(source.path)
    return fetch_text(source.url)


__all__ = ["fetch_text", "is_url", "manifest_source", "resolve_manifest"]
