"""
Tool probing — presence on PATH and installed version.

Read-only probes: ``shutil.which`` plus each tool's own ``--version``
command, parsed with a per-tool regex.  Every subprocess is bounded by
a timeout; ``subprocess.run`` kills the child when it expires and the
probe reports "version unknown" instead of hanging.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# tool → (version command, regex capturing the numeric version)
VERSION_COMMANDS: dict[str, tuple[list[str], str]] = {
    "node":      (["node", "--version"],                     r"v?(\d+\.\d+\.\d+)"),
    "npm":       (["npm", "--version"],                      r"(\d+\.\d+\.\d+)"),
    "pnpm":      (["pnpm", "--version"],                     r"(\d+\.\d+\.\d+)"),
    "yarn":      (["yarn", "--version"],                     r"(\d+\.\d+\.\d+)"),
    "python3":   (["python3", "--version"],                  r"Python\s+(\d+\.\d+(?:\.\d+)?)"),
    "pip3":      (["pip3", "--version"],                     r"pip\s+(\d+\.\d+(?:\.\d+)?)"),
    "docker":    (["docker", "--version"],                   r"Docker version\s+(\d+\.\d+\.\d+)"),
    "git":       (["git", "--version"],                      r"git version\s+(\d+\.\d+\.\d+)"),
    "kubectl":   (["kubectl", "version", "--client", "-o", "json"],
                                                             r'"gitVersion":\s*"v(\d+\.\d+\.\d+)'),
    "helm":      (["helm", "version", "--short"],            r"v(\d+\.\d+\.\d+)"),
    "jq":        (["jq", "--version"],                       r"jq-(\d+\.\d+(?:\.\d+)?)"),
    "curl":      (["curl", "--version"],                     r"curl\s+(\d+\.\d+\.\d+)"),
    "go":        (["go", "version"],                         r"go(\d+\.\d+(?:\.\d+)?)"),
    "cargo":     (["cargo", "--version"],                    r"cargo\s+(\d+\.\d+\.\d+)"),
    "rustc":     (["rustc", "--version"],                    r"rustc\s+(\d+\.\d+\.\d+)"),
    "terraform": (["terraform", "version"],                  r"Terraform\s+v(\d+\.\d+\.\d+)"),
    "psql":      (["psql", "--version"],                     r"psql \(PostgreSQL\)\s+(\d+(?:\.\d+)*)"),
}


@dataclass
class VersionProbe:
    """Result of one version probe."""

    version: str | None = None
    timed_out: bool = False
    error: str | None = None


class ToolProbe:
    """Presence and version probes.

    ``command`` overrides the executable name (from the manifest's
    ``tools.<id>.command``); it defaults to the tool id.  Probes are
    safe to call from worker threads.
    """

    def which(self, tool: str, command: str | None = None) -> str | None:
        """Absolute path of the tool's executable, or None."""
        return shutil.which(command or tool)

    def version(self, tool: str, timeout: float, command: str | None = None) -> VersionProbe:
        """Run the tool's version command and parse its output.

        Tools without a known version command report no version,
        which callers treat as "unknown" rather than a failure.
        """
        entry = VERSION_COMMANDS.get(tool)
        if entry is None:
            return VersionProbe(error="no version command known")

        cmd, pattern = entry
        cmd = [command or cmd[0]] + cmd[1:]

        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Version check timed out for %s (%ss)", tool, timeout)
            return VersionProbe(timed_out=True, error=f"timed out after {timeout}s")
        except OSError as e:
            return VersionProbe(error=str(e))

        # Some tools print their version on stderr
        output = (result.stdout or "") + (result.stderr or "")
        match = re.search(pattern, output)
        if match:
            return VersionProbe(version=match.group(1))
        return VersionProbe(error="version not found in output")
