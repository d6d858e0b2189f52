"""
Engine exceptions.

Only infrastructure failures are raised.  Unsatisfied dependencies are
normal outcomes and live in ``DependencyReport``, never here.
"""

from __future__ import annotations

from pathlib import Path


class BootbuildError(Exception):
    """Base class for all engine errors."""


class ConfigError(BootbuildError):
    """Raised when engine configuration is invalid."""


class ManifestError(BootbuildError):
    """Raised when the manifest cannot be read or parsed."""


class ManifestNotFoundError(ManifestError):
    """Raised when the manifest source file does not exist."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(
            f"Manifest file not found: {path}\n"
            "Generate it with the manifest generator, or set BOOTBUILD_MANIFEST."
        )


class CacheDirectoryError(BootbuildError):
    """Raised when neither the cache directory nor its fallback is usable."""


class InstallError(BootbuildError):
    """Raised for rejected install inputs (e.g. unsafe package names)."""
