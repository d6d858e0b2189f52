"""
Manifest cache — on-disk cache of bootstrap-manifest.json.

The cache is a file pair in the cache directory:

    manifest-cache.json        parsed manifest content
    manifest-cache.meta.json   {timestamp, mtime, ttl, source, schema_version}

A record is valid iff the manifest's current mtime equals the recorded
mtime AND ``now - timestamp <= ttl``.  Writes are atomic (temp file in
the same directory, then ``os.replace``) so a reader never sees a
half-written cache.  There is no cross-process lock: concurrent writers
race and the last one wins, which is fine for a derived artifact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.errors import CacheDirectoryError, ManifestError, ManifestNotFoundError

logger = logging.getLogger(__name__)

CACHE_FILE = "manifest-cache.json"
META_FILE = "manifest-cache.meta.json"
CACHE_SCHEMA_VERSION = 1


@dataclass
class CacheStatus:
    """Snapshot of the cache state (for ``bootbuild manifest status``)."""

    cache_dir: str
    manifest_file: str
    ttl: int
    exists: bool = False
    valid: bool = False
    reason: str = ""
    age_seconds: float | None = None
    manifest_mtime: int | None = None
    size_bytes: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def write_atomic(path: Path, content: str, prefix: str = ".cache_") -> None:
    """Write ``content`` to ``path`` via temp-file-then-rename.

    Raises:
        OSError: If the directory is not writable.
    """
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def parse_manifest_text(raw: str, source: Path) -> dict[str, Any]:
    """Parse manifest text (JSON, or YAML for .yml/.yaml sources).

    Raises:
        ManifestError: If the text is not a mapping in the expected format.
    """
    try:
        if source.suffix.lower() in (".yml", ".yaml"):
            data = yaml.safe_load(raw)
        else:
            data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON in {source}: {e}") from e
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in {source}: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"Expected a mapping in {source}, got {type(data).__name__}")
    return data


class ManifestCache:
    """Staleness-aware manifest cache owned by one engine instance.

    Besides the on-disk record, the instance keeps the last parsed
    document in memory while the record stays valid, so repeated
    queries within one run skip the cache file entirely.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        ttl: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.manifest_file = config.manifest_file
        self.ttl = config.manifest_cache_ttl if ttl is None else ttl
        self._preferred_dir = config.cache_dir
        self._cache_dir: Path | None = None
        self._clock = clock

        self._memory: dict[str, Any] | None = None
        self._memory_key: tuple[int, float] | None = None

        self.hits = 0
        self.misses = 0

    # ── Paths ───────────────────────────────────────────────────

    @property
    def cache_dir(self) -> Path:
        """The usable cache directory (created, or the temp fallback)."""
        if self._cache_dir is None:
            self._cache_dir = self._init_cache_dir()
        return self._cache_dir

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / CACHE_FILE

    @property
    def meta_file(self) -> Path:
        return self.cache_dir / META_FILE

    def _init_cache_dir(self) -> Path:
        try:
            self._preferred_dir.mkdir(parents=True, exist_ok=True)
            if os.access(self._preferred_dir, os.W_OK):
                return self._preferred_dir
            logger.warning("Cache directory not writable: %s", self._preferred_dir)
        except OSError as e:
            logger.warning("Cannot create cache directory %s: %s", self._preferred_dir, e)

        fallback = Path(tempfile.gettempdir()) / f"bootbuild-cache-{os.getpid()}"
        try:
            fallback.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheDirectoryError(
                f"Failed to create cache directory {self._preferred_dir} "
                f"or fallback {fallback}: {e}"
            ) from e
        logger.info("Using fallback cache directory %s", fallback)
        return fallback

    # ── Source ──────────────────────────────────────────────────

    def source_mtime(self) -> int:
        """Current manifest mtime in nanoseconds.

        Raises:
            ManifestNotFoundError: If the manifest does not exist.
        """
        try:
            return os.stat(self.manifest_file).st_mtime_ns
        except FileNotFoundError as e:
            raise ManifestNotFoundError(self.manifest_file) from e
        except OSError as e:
            raise ManifestError(f"Cannot stat {self.manifest_file}: {e}") from e

    def _read_source(self) -> dict[str, Any]:
        try:
            raw = self.manifest_file.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ManifestNotFoundError(self.manifest_file) from e
        except OSError as e:
            raise ManifestError(f"Cannot read {self.manifest_file}: {e}") from e
        return parse_manifest_text(raw, self.manifest_file)

    # ── Record ──────────────────────────────────────────────────

    def _read_meta(self) -> dict[str, Any] | None:
        if not self.meta_file.is_file():
            return None
        try:
            meta = json.loads(self.meta_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Corrupt cache metadata %s: %s — ignoring", self.meta_file, e)
            return None
        return meta if isinstance(meta, dict) else None

    def _check_record(self, meta: dict[str, Any] | None, mtime: int) -> str:
        """Return "" if the record is valid, else the reason it is not."""
        if meta is None or not self.cache_file.is_file():
            return "no cache record"
        if meta.get("schema_version") != CACHE_SCHEMA_VERSION:
            return "cache schema changed"
        if meta.get("source") != str(self.manifest_file):
            return "cache belongs to another manifest"
        if meta.get("mtime") != mtime:
            return "manifest modified"
        try:
            age = self._clock() - float(meta.get("timestamp", 0))
        except (TypeError, ValueError):
            return "bad cache timestamp"
        if age > self.ttl:
            return f"expired ({int(age)}s > {self.ttl}s)"
        return ""

    def _save(self, document: dict[str, Any], mtime: int, timestamp: float) -> None:
        meta = {
            "schema_version": CACHE_SCHEMA_VERSION,
            "timestamp": timestamp,
            "mtime": mtime,
            "ttl": self.ttl,
            "source": str(self.manifest_file),
        }
        try:
            write_atomic(self.cache_file, json.dumps(document, ensure_ascii=False))
            write_atomic(self.meta_file, json.dumps(meta, indent=2) + "\n")
            logger.debug("Manifest cached to %s", self.cache_file)
        except OSError as e:
            # Derived artifact: next call re-reads the source
            logger.warning("Failed to write manifest cache %s: %s", self.cache_file, e)

    # ── Public API ──────────────────────────────────────────────

    def get_manifest(self) -> dict[str, Any]:
        """Return the manifest document, from cache when valid.

        Raises:
            ManifestNotFoundError: If the manifest source is missing.
            ManifestError: If the manifest cannot be parsed.
            CacheDirectoryError: If no cache directory is usable.
        """
        mtime = self.source_mtime()
        meta = self._read_meta()
        reason = self._check_record(meta, mtime)

        if not reason and meta is not None:
            key = (mtime, float(meta["timestamp"]))
            if self._memory is not None and self._memory_key == key:
                self.hits += 1
                return self._memory
            try:
                document = json.loads(self.cache_file.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Corrupt manifest cache %s: %s — rebuilding", self.cache_file, e)
                reason = "corrupt cache"
            else:
                if isinstance(document, dict):
                    self.hits += 1
                    self._memory, self._memory_key = document, key
                    return document
                reason = "corrupt cache"

        logger.debug("Manifest cache miss (%s)", reason)
        self.misses += 1
        document = self._read_source()
        timestamp = self._clock()
        self._save(document, mtime, timestamp)
        self._memory, self._memory_key = document, (mtime, timestamp)
        return document

    def invalidate(self) -> None:
        """Drop the cache record, e.g. after editing the manifest out of band."""
        self._memory = None
        self._memory_key = None
        for path in (self.cache_file, self.meta_file):
            path.unlink(missing_ok=True)
        logger.info("Manifest cache invalidated")

    def is_valid(self) -> bool:
        try:
            return not self._check_record(self._read_meta(), self.source_mtime())
        except ManifestError:
            return False

    def status(self) -> CacheStatus:
        """Describe the current cache record without reading the manifest."""
        status = CacheStatus(
            cache_dir=str(self.cache_dir),
            manifest_file=str(self.manifest_file),
            ttl=self.ttl,
            exists=self.cache_file.is_file(),
        )
        meta = self._read_meta()
        if status.exists:
            status.size_bytes = self.cache_file.stat().st_size
        if meta is not None:
            status.manifest_mtime = meta.get("mtime")
            try:
                status.age_seconds = round(self._clock() - float(meta.get("timestamp", 0)), 1)
            except (TypeError, ValueError):
                status.age_seconds = None

        try:
            status.reason = self._check_record(meta, self.source_mtime())
        except ManifestNotFoundError:
            status.reason = "manifest missing"
        status.valid = not status.reason
        return status

    def stats(self) -> dict[str, int]:
        """Section counts of the (cached) manifest."""
        document = self.get_manifest()
        return {
            name: len(document.get(name) or {})
            for name in ("scripts", "phases", "profiles", "paths", "tools")
        }

    def validate_cache(self) -> tuple[bool, str]:
        """Check that the cached content file is intact JSON."""
        if not self.cache_file.is_file():
            return False, "No cache file"
        try:
            json.loads(self.cache_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            return False, f"Cache JSON is corrupted: {e}"
        return True, "Cache JSON is valid"
