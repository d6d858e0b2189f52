"""
Session cache — short-lived named entries (menu scans, detection runs).

Lighter than the manifest cache: one file per entry under
``<cache_dir>/session/``, freshness judged by the entry file's own mtime.
An entry is stale when it is missing, older than the TTL (default 300s),
or older than its source file (default: the manifest).
"""

from __future__ import annotations

import logging
import os
import re
import time
from collections.abc import Callable
from pathlib import Path

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.persistence.manifest_cache import write_atomic

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class SessionCache:
    """Named-entry cache with TTL and source-newer invalidation."""

    def __init__(
        self,
        config: EngineConfig,
        *,
        ttl: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = config.cache_dir / "session"
        self.ttl = config.session_cache_ttl if ttl is None else ttl
        self.default_source = config.manifest_file
        self._clock = clock

    def path(self, name: str) -> Path:
        """Path of a cache entry.

        Raises:
            ValueError: If the name could escape the cache directory.
        """
        if not _SAFE_NAME.match(name) or ".." in name:
            raise ValueError(f"Invalid cache entry name: {name!r}")
        return self.directory / name

    def exists(self, name: str) -> bool:
        return self.path(name).is_file()

    def is_stale(self, name: str, source: Path | None = None) -> bool:
        entry = self.path(name)
        try:
            entry_mtime = entry.stat().st_mtime
        except FileNotFoundError:
            return True

        source = self.default_source if source is None else source
        try:
            if source.stat().st_mtime > entry_mtime:
                return True
        except FileNotFoundError:
            pass

        return self._clock() - entry_mtime > self.ttl

    def read(self, name: str) -> str | None:
        """Entry content, or None when absent.  Staleness is the caller's check."""
        try:
            return self.path(name).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def read_fresh(self, name: str, source: Path | None = None) -> str | None:
        if self.is_stale(name, source):
            return None
        return self.read(name)

    def write(self, name: str, content: str) -> Path:
        entry = self.path(name)
        self.directory.mkdir(parents=True, exist_ok=True)
        write_atomic(entry, content, prefix=".session_")
        logger.debug("Session cache entry written: %s", name)
        return entry

    def clear(self, name: str) -> bool:
        entry = self.path(name)
        if entry.is_file():
            entry.unlink()
            return True
        return False

    def clear_all(self) -> int:
        if not self.directory.is_dir():
            return 0
        removed = 0
        for entry in self.directory.iterdir():
            if entry.is_file():
                entry.unlink()
                removed += 1
        return removed

    def cleanup_stale(self) -> list[str]:
        """Remove stale entries, returning their names."""
        if not self.directory.is_dir():
            return []
        removed = []
        for entry in sorted(self.directory.iterdir()):
            if entry.is_file() and not entry.name.startswith(".") and self.is_stale(entry.name):
                entry.unlink()
                removed.append(entry.name)
        if removed:
            logger.info("Removed %d stale session cache entries", len(removed))
        return removed

    def size_bytes(self) -> int:
        if not self.directory.is_dir():
            return 0
        return sum(os.path.getsize(p) for p in self.directory.iterdir() if p.is_file())
