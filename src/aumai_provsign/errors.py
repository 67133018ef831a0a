"""Exception hierarchy for aumai-provsign."""

from __future__ import annotations

from pathlib import Path


class ProvsignError(Exception):
    """Base class for every error raised by aumai-provsign."""


class PlanError(ProvsignError):
    """Input/output layout conflict; fatal for the whole run."""


class ParseError(ProvsignError):
    """A manifest definition or ingredient document is malformed."""


class ResolutionError(ProvsignError):
    """A referenced file, URL or base path could not be resolved."""


class SignerError(ProvsignError):
    """Signer construction or signing failed."""


class EmbeddingError(ProvsignError):
    """The provenance backend rejected the assembled manifest."""


class SignRunError(ProvsignError):
    """One or more inputs failed to sign."""

    def __init__(self, failures: list[tuple[Path, Exception]], total: int) -> None:
        self.failures = failures
        self.total = total
        super().__init__(f"Failed to sign {len(failures)}/{total} assets")


__all__ = [
    "EmbeddingError",
    "ParseError",
    "PlanError",
    "ProvsignError",
    "ResolutionError",
    "SignRunError",
    "SignerError",
]
