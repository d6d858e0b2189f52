"""
Shared test fixtures and configuration.
"""

import json
import logging
import threading
import time
from pathlib import Path

import pytest

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.services.tool_probe import VersionProbe

SAMPLE_MANIFEST = {
    "version": "1.0",
    "generator": "test",
    "scripts": {
        "git": {
            "file": "bootstrap-git.sh",
            "phase": 1,
            "category": "core",
            "short": "Git repository setup",
            "requires": {"tools": ["git"]},
        },
        "packages": {
            "file": "bootstrap-packages.sh",
            "phase": 1,
            "category": "core",
            "short": "Node packages",
            "depends": ["git"],
            "requires": {"tools": ["node"], "optional": ["pnpm"]},
        },
        "linting": {
            "file": "bootstrap-linting.sh",
            "phase": 2,
            "category": "quality",
            "short": "Linters",
            "safe": "yes",
            "depends": ["packages"],
            "requires": ["tool:node", "optional:jq"],
        },
        "secrets": {
            "file": "bootstrap-secrets.sh",
            "phase": 2,
            "hidden": True,
        },
        "docker": {
            "file": "bootstrap-docker.sh",
            "phase": 3,
            "category": "infra",
            "short": "Docker setup",
            "depends": ["git"],
            "requires": {"tools": ["docker:20.10.0:min", "git"], "optional": ["jq"]},
        },
    },
    "phases": {"1": ["git", "packages"], "2": ["linting"], "3": ["docker"]},
    "profiles": {
        "minimal": ["git", "packages"],
        "full": {"description": "Everything", "scripts": ["git", "packages", "linting", "docker"]},
    },
    "paths": {"scripts_dir": "templates/scripts"},
    "tools": {
        "node": {"min_version": "18.0.0", "install_hint": "Use nvm: nvm install --lts"},
        "docker": {"command": "docker"},
    },
}


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """CLI tests reconfigure the root logger; put it back afterwards."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        # pytest's own capture handlers are subclasses; leave those alone
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def bootstrap_dir(tmp_path: Path) -> Path:
    """A toolkit directory with a manifest and some script files."""
    root = tmp_path / "project" / "__bootbuild"
    (root / "config").mkdir(parents=True)
    (root / "config" / "bootstrap-manifest.json").write_text(json.dumps(SAMPLE_MANIFEST, indent=2))

    scripts_dir = root / "templates" / "scripts"
    scripts_dir.mkdir(parents=True)
    for name in ("git", "packages", "docker", "extra"):
        (scripts_dir / f"bootstrap-{name}.sh").write_text("#!/bin/bash\n")
    return root


@pytest.fixture
def config(bootstrap_dir: Path) -> EngineConfig:
    return EngineConfig.for_directory(bootstrap_dir, dependency_check_timeout=2.0)


class FakeProbe:
    """Stand-in for ToolProbe.

    ``installed`` maps tool → version (``None`` for present without a
    known version).  Tracks how many version checks overlap.
    """

    def __init__(self, installed=None, delay=0.0, timed_out=(), crash=()):
        self.installed = dict(installed or {})
        self.delay = delay
        self.timed_out = set(timed_out)
        self.crash = set(crash)
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def which(self, tool, command=None):
        with self._lock:
            self.calls.append(("which", tool, command))
        if tool in self.crash:
            raise RuntimeError(f"probe exploded for {tool}")
        return f"/usr/bin/{command or tool}" if tool in self.installed else None

    def version(self, tool, timeout, command=None):
        with self._lock:
            self.calls.append(("version", tool, command))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            if tool in self.timed_out:
                return VersionProbe(timed_out=True, error=f"timed out after {timeout}s")
            found = self.installed.get(tool)
            if found is None:
                return VersionProbe(error="version not found in output")
            return VersionProbe(version=found)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def make_probe():
    """Factory for FakeProbe instances."""
    return FakeProbe
