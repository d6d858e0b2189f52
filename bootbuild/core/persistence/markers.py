"""
Completion markers — proof that a setup script finished successfully.

One empty file per script:

    <logs_dir>/.bootstrap-<script-id>.completed

Presence is the whole contract.  Markers are created by the script on
success, never rewritten, and only ever checked for existence.  They
persist until a rollback removes them explicitly.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

SCRIPT_PREFIX = "bootstrap-"
MARKER_SUFFIX = ".completed"

_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def normalize_script_id(script_id: str) -> str:
    """``"bootstrap-git"``, ``"bootstrap-git.sh"`` and ``"git"`` all name ``"git"``."""
    name = script_id.strip()
    if name.endswith(".sh"):
        name = name[:-3]
    if name.startswith(SCRIPT_PREFIX):
        name = name[len(SCRIPT_PREFIX):]
    return name


class CompletionMarkers:
    """Marker store rooted at the project's logs directory."""

    def __init__(self, logs_dir: Path) -> None:
        self.logs_dir = logs_dir

    def path(self, script_id: str) -> Path:
        """Marker path for a script.

        Raises:
            ValueError: If the id could escape the logs directory.
        """
        name = normalize_script_id(script_id)
        if not _SAFE_ID.match(name) or ".." in name:
            raise ValueError(f"Invalid script id: {script_id!r}")
        return self.logs_dir / f".{SCRIPT_PREFIX}{name}{MARKER_SUFFIX}"

    def is_complete(self, script_id: str) -> bool:
        try:
            return self.path(script_id).is_file()
        except ValueError:
            logger.warning("Ignoring marker check for invalid script id %r", script_id)
            return False

    def mark_complete(self, script_id: str) -> Path:
        """Create the marker.  An existing marker is left untouched."""
        marker = self.path(script_id)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        try:
            marker.touch(exist_ok=False)
            logger.debug("Created completion marker: %s", marker.name)
        except FileExistsError:
            pass
        return marker

    def completed(self) -> list[str]:
        """Ids of every script with a marker, sorted."""
        if not self.logs_dir.is_dir():
            return []
        pattern = f".{SCRIPT_PREFIX}*{MARKER_SUFFIX}"
        return sorted(
            p.name[len(SCRIPT_PREFIX) + 1:-len(MARKER_SUFFIX)]
            for p in self.logs_dir.glob(pattern)
            if p.is_file()
        )

    def clear(self, script_id: str) -> bool:
        """Remove one marker (rollback).  Returns whether it existed."""
        marker = self.path(script_id)
        if marker.is_file():
            marker.unlink()
            logger.info("Removed completion marker for %s", normalize_script_id(script_id))
            return True
        return False

    def clear_all(self) -> int:
        removed = 0
        for script_id in self.completed():
            if self.clear(script_id):
                removed += 1
        return removed
