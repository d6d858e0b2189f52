"""
Configuration loader — builds the EngineConfig once at startup.

Precedence (lowest → highest):
    built-in defaults  <  bootbuild.yml  <  BOOTBUILD_* env vars  <  explicit args

The resulting ``EngineConfig`` is passed down to every component.
Nothing else in the engine reads environment variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from bootbuild.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Default locations (relative to the bootstrap directory)
MANIFEST_RELPATH = Path("config") / "bootstrap-manifest.json"
SETTINGS_FILE = "bootbuild.yml"

DEFAULT_MANIFEST_CACHE_TTL = 3600
DEFAULT_SESSION_CACHE_TTL = 300
DEFAULT_DEPENDENCY_CHECK_TIMEOUT = 10.0
DEFAULT_AUTO_INSTALL_TIMEOUT = 300.0

# env var → EngineConfig field
_ENV_FIELDS: dict[str, str] = {
    "BOOTBUILD_PROJECT_ROOT": "project_root",
    "BOOTBUILD_MANIFEST": "manifest_file",
    "BOOTBUILD_CACHE_DIR": "cache_dir",
    "BOOTBUILD_LOGS_DIR": "logs_dir",
    "BOOTBUILD_MANIFEST_CACHE_TTL": "manifest_cache_ttl",
    "BOOTBUILD_SESSION_CACHE_TTL": "session_cache_ttl",
    "BOOTBUILD_DEPENDENCY_CHECK_TIMEOUT": "dependency_check_timeout",
    "BOOTBUILD_AUTO_INSTALL_TIMEOUT": "auto_install_timeout",
    "BOOTBUILD_ASSUME_YES": "assume_yes",
}


class EngineConfig(BaseModel):
    """Explicit engine configuration.

    Constructed once (see ``load_config``) and handed to the cache,
    registry, resolver and orchestrator.  Tests build their own
    instances with ``EngineConfig.for_directory(tmp_path)``.
    """

    bootstrap_dir: Path
    project_root: Path
    manifest_file: Path
    cache_dir: Path
    logs_dir: Path
    scripts_dir: Path

    manifest_cache_ttl: int = Field(default=DEFAULT_MANIFEST_CACHE_TTL, ge=0)
    session_cache_ttl: int = Field(default=DEFAULT_SESSION_CACHE_TTL, ge=0)
    dependency_check_timeout: float = Field(default=DEFAULT_DEPENDENCY_CHECK_TIMEOUT, gt=0)
    auto_install_timeout: float = Field(default=DEFAULT_AUTO_INSTALL_TIMEOUT, gt=0)
    assume_yes: bool = False

    @classmethod
    def for_directory(cls, bootstrap_dir: Path, **overrides: Any) -> EngineConfig:
        """Build a config with every path derived from ``bootstrap_dir``."""
        bootstrap_dir = Path(bootstrap_dir)
        data: dict[str, Any] = {
            "bootstrap_dir": bootstrap_dir,
            "project_root": bootstrap_dir.parent,
            "manifest_file": bootstrap_dir / MANIFEST_RELPATH,
            "cache_dir": bootstrap_dir / ".cache",
            "logs_dir": bootstrap_dir / "logs",
            "scripts_dir": bootstrap_dir / "templates" / "scripts",
        }
        data.update(overrides)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid engine configuration: {e}") from e


def find_bootstrap_dir(start_dir: Path | None = None) -> Path | None:
    """Search for a directory holding ``config/bootstrap-manifest.json``.

    Walks up from ``start_dir`` (default: cwd) and also looks inside a
    ``__bootbuild`` child at every level, which is where the toolkit
    lives inside a target project.

    Returns:
        The bootstrap directory, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        for candidate in (current, current / "__bootbuild"):
            if (candidate / MANIFEST_RELPATH).is_file():
                return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _read_settings_file(path: Path) -> dict[str, Any]:
    """Read bootbuild.yml, returning an empty mapping when absent."""
    if not path.is_file():
        return {}

    logger.debug("Loading engine settings from %s", path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _env_truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for var, field in _ENV_FIELDS.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        overrides[field] = _env_truthy(value) if field == "assume_yes" else value

    # Unattended execution answers "yes" to install prompts
    if "assume_yes" not in overrides and env.get("CI"):
        overrides["assume_yes"] = _env_truthy(env["CI"])
    return overrides


def load_config(
    bootstrap_dir: Path | None = None,
    config_file: Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> EngineConfig:
    """Load the engine configuration.

    Args:
        bootstrap_dir: Toolkit installation root.  Defaults to
            ``BOOTBUILD_DIR``, then an upward search from cwd, then cwd.
        config_file: Explicit settings file (default: ``<bootstrap_dir>/bootbuild.yml``).
        env: Environment mapping (default: ``os.environ``).
        **overrides: Field values that win over everything else.

    Raises:
        ConfigError: If the settings file or any value is invalid.
    """
    env = os.environ if env is None else env

    if bootstrap_dir is None:
        if env.get("BOOTBUILD_DIR"):
            bootstrap_dir = Path(env["BOOTBUILD_DIR"])
        else:
            bootstrap_dir = find_bootstrap_dir() or Path.cwd()
    bootstrap_dir = Path(bootstrap_dir).resolve()

    settings = _read_settings_file(config_file or bootstrap_dir / SETTINGS_FILE)
    unknown = sorted(set(settings) - set(EngineConfig.model_fields))
    if unknown:
        logger.warning("Ignoring unknown settings in %s: %s", SETTINGS_FILE, ", ".join(unknown))
        for key in unknown:
            settings.pop(key)
    settings.pop("bootstrap_dir", None)

    merged: dict[str, Any] = {}
    merged.update(settings)
    merged.update(_env_overrides(env))
    merged.update(overrides)

    # Relative paths in settings/env are anchored at the bootstrap dir
    for key in ("project_root", "manifest_file", "cache_dir", "logs_dir", "scripts_dir"):
        if key in merged and not Path(merged[key]).is_absolute():
            merged[key] = bootstrap_dir / merged[key]

    config = EngineConfig.for_directory(bootstrap_dir, **merged)
    logger.info("Engine configured for %s (manifest: %s)", config.bootstrap_dir, config.manifest_file)
    return config
