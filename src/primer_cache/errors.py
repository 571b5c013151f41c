from __future__ import annotations

from typing import Optional


class PrimerError(Exception):
    """Base class for errors raised by the primer cache."""


class ContentNotFoundError(PrimerError):
    """A dotted path could not be resolved against the local mirror."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Primer not found: {path}")
        self.path = path


class FetchError(PrimerError):
    """A request against the remote source failed or returned an unexpected status."""

    def __init__(self, url: str, *, status: Optional[int] = None) -> None:
        detail = f" status={status}" if status is not None else ""
        super().__init__(f"Failed to fetch: {url}{detail}")
        self.url = url
        self.status = status


class RegistryError(PrimerError):
    """The registry document failed schema validation."""

    def __init__(self, message: str = "Failed to load manifest") -> None:
        super().__init__(message)


ManifestError = RegistryError


__all__ = [
    "ContentNotFoundError",
    "FetchError",
    "ManifestError",
    "PrimerError",
    "RegistryError",
]
