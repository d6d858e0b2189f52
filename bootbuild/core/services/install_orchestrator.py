"""
Install orchestrator — bounded remedy for missing tools.

Only tools in ``AUTO_INSTALL_ALLOWLIST`` are ever handed to an install
routine.  Everything else gets manual guidance.  Installation needs an
explicit yes (interactive confirmation, or ``assume_yes`` in
unattended/CI runs), every command runs through the subprocess runner
with the install timeout, and presence is re-checked afterwards.
"""

from __future__ import annotations

import getpass
import logging
import os
import re
import shutil
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.errors import InstallError
from bootbuild.core.models.dependency import DependencyReport
from bootbuild.core.models.install import InstallOutcome, ToolInstallResult
from bootbuild.core.services.install_guidance import suggest_install
from bootbuild.core.services.subprocess_runner import run_command
from bootbuild.core.services.tool_probe import ToolProbe
from bootbuild.core.services.version_compare import parse_version

logger = logging.getLogger(__name__)

AUTO_INSTALL_ALLOWLIST: frozenset[str] = frozenset({
    "node", "npm", "pnpm", "yarn",
    "docker",
    "python3", "pip3",
    "git", "jq", "curl",
})

# Detection order: first one on PATH wins
PACKAGE_MANAGERS = ("apt-get", "brew", "dnf", "yum")

# tool → routine; tools sharing a routine are installed once
_ROUTINES: dict[str, str] = {
    "node": "node", "npm": "node",
    "pnpm": "pnpm",
    "yarn": "yarn",
    "docker": "docker",
    "python3": "python", "pip3": "python",
    "git": "git", "jq": "jq", "curl": "curl",
}

_SHELL_METACHARS = re.compile(r"[;|&$`<>]")
_PACKAGE_NAME = re.compile(r"^[A-Za-z0-9._+][A-Za-z0-9._+-]*$")

Runner = Callable[..., dict[str, Any]]
Confirm = Callable[[list[str]], bool]


def can_auto_install(tool: str) -> bool:
    return tool in AUTO_INSTALL_ALLOWLIST


def validate_package_names(packages: list[str]) -> list[str]:
    """Reject package names that could smuggle shell syntax or options.

    Raises:
        InstallError: On shell metacharacters or a malformed name.
    """
    if not packages:
        raise InstallError("No package names given")
    for name in packages:
        if _SHELL_METACHARS.search(name):
            raise InstallError(f"Invalid characters in package name: {name!r}")
        if not _PACKAGE_NAME.match(name):
            raise InstallError(f"Invalid package name format: {name!r}")
    return packages


def detect_package_manager(which: Callable[[str], str | None] = shutil.which) -> str | None:
    for pm in PACKAGE_MANAGERS:
        if which(pm):
            return pm
    return None


def build_package_commands(pm: str, packages: list[str]) -> list[tuple[list[str], bool]]:
    """Commands installing ``packages`` with ``pm``, as ``(argv, needs_sudo)``."""
    packages = validate_package_names(packages)
    if pm == "apt-get":
        return [
            (["apt-get", "update"], True),
            (["apt-get", "install", "-y"] + packages, True),
        ]
    if pm == "brew":
        return [(["brew", "install"] + packages, False)]
    if pm in ("dnf", "yum"):
        return [([pm, "install", "-y"] + packages, True)]
    raise InstallError(f"No install command for package manager: {pm}")


def _in_docker_group() -> bool:
    try:
        import grp
        docker_gid = grp.getgrnam("docker").gr_gid
    except (ImportError, KeyError):
        return False
    return docker_gid in os.getgroups()


class InstallOrchestrator:
    """Offer, confirm and run allow-listed installs for a report.

    Args:
        config: Engine configuration (install timeout, ``assume_yes``).
        probe: Presence probe used for re-verification.
        runner: Command runner; ``run_command`` by default.
        confirm: Called with the installable tools; returns the
            user's answer.  Without one, only ``assume_yes`` proceeds.
        which: PATH lookup for package managers and helpers.
        hints: Manifest install hint per tool, used in manual guidance.
        commands: Manifest executable override per tool, used when
            re-checking presence after an install.
    """

    def __init__(
        self,
        config: EngineConfig,
        probe: ToolProbe | None = None,
        runner: Runner | None = None,
        confirm: Confirm | None = None,
        which: Callable[[str], str | None] | None = None,
        hints: Callable[[str], str | None] | None = None,
        commands: Callable[[str], str | None] | None = None,
    ) -> None:
        self.config = config
        self.probe = probe or ToolProbe()
        self.runner = runner or run_command
        self.confirm = confirm
        self.which = which or shutil.which
        self.hints = hints
        self.commands = commands
        self.timeout = config.auto_install_timeout
        self.last_outcome: InstallOutcome | None = None

    # ── Public API ──────────────────────────────────────────────

    def offer_install(self, report: DependencyReport) -> bool:
        """Try to remedy the report's missing tools.

        Returns:
            True when nothing was missing, or every allow-listed tool
            that was attempted is now present.  False when nothing is
            installable, the user declined, or a tool is still missing.
        """
        outcome = InstallOutcome()
        self.last_outcome = outcome
        missing = list(report.missing_tools)

        if not missing:
            outcome.ok = True
            outcome.message = "No missing tools"
            return True

        outcome.offered = [t for t in missing if can_auto_install(t)]
        outcome.manual = [t for t in missing if not can_auto_install(t)]

        for tool in outcome.manual:
            lines = suggest_install(tool, self._hint_for(tool))
            outcome.guidance[tool] = lines
            logger.warning("%s must be installed manually:", tool)
            for line in lines:
                logger.warning("    %s", line)

        if not outcome.offered:
            outcome.message = (
                "No tools can be auto-installed. "
                "Please install manually using the instructions above."
            )
            logger.error(outcome.message)
            return False

        outcome.confirmed = self._confirmed(outcome.offered)
        if not outcome.confirmed:
            outcome.message = "Cannot proceed without required dependencies."
            logger.error(outcome.message)
            return False

        done: dict[str, ToolInstallResult] = {}
        for tool in outcome.offered:
            routine = _ROUTINES[tool]
            if routine in done:
                outcome.results.append(done[routine].model_copy(update={"tool": tool}))
                continue
            result = self.install_tool(tool)
            done[routine] = result
            outcome.results.append(result)

        outcome.still_missing = [
            t for t in outcome.offered if not self.probe.which(t, self._command_for(t))
        ]
        if outcome.still_missing:
            outcome.message = f"Installation failed for: {', '.join(outcome.still_missing)}"
            logger.error(outcome.message)
            return False

        outcome.ok = True
        outcome.message = "All dependencies installed successfully"
        logger.info(outcome.message)
        return True

    def install_tool(self, tool: str) -> ToolInstallResult:
        """Run the install routine for one allow-listed tool.

        Never raises; refusals and failures come back as results.
        """
        if not can_auto_install(tool):
            logger.error("Tool not in auto-install allow-list: %s", tool)
            return ToolInstallResult(
                tool=tool, status="skipped", error="not in auto-install allow-list",
            )

        logger.info("Installing %s (timeout: %ss)...", tool, self.timeout)
        start = time.monotonic()
        try:
            method, steps = self._plan(tool)
        except InstallError as e:
            logger.error("Cannot install %s: %s", tool, e)
            return ToolInstallResult(tool=tool, status="failed", error=str(e))

        result = ToolInstallResult(tool=tool, method=method)
        for cmd, needs_sudo, env in steps:
            result.commands.append(cmd)
            outcome = self.runner(cmd, needs_sudo=needs_sudo, timeout=self.timeout, env_overrides=env)
            if not outcome.get("ok"):
                result.status = "failed"
                result.error = outcome.get("error", "command failed")
                break

        if result.ok and method == "nvm":
            self._activate_nvm_node()

        if result.ok and tool == "docker" and method != "brew" and not _in_docker_group():
            user = getpass.getuser()
            cmd = ["usermod", "-aG", "docker", user]
            result.commands.append(cmd)
            if self.runner(cmd, needs_sudo=True, timeout=self.timeout).get("ok"):
                logger.warning(
                    "Added %s to docker group. You may need to log out and back in.", user,
                )

        result.elapsed_ms = int((time.monotonic() - start) * 1000)
        return result

    # ── Internals ───────────────────────────────────────────────

    def _confirmed(self, tools: list[str]) -> bool:
        if self.config.assume_yes:
            logger.info("Auto-installing without prompt: %s", ", ".join(tools))
            return True
        if self.confirm is None:
            logger.info("No confirmation available; not installing %s", ", ".join(tools))
            return False
        return bool(self.confirm(tools))

    def _hint_for(self, tool: str) -> str | None:
        if self.hints is None:
            return None
        return self.hints(tool)

    def _command_for(self, tool: str) -> str | None:
        if self.commands is None:
            return None
        return self.commands(tool)

    def _nvm_dir(self) -> Path:
        return Path(os.environ.get("NVM_DIR") or Path.home() / ".nvm")

    def _nvm_script(self) -> Path | None:
        script = self._nvm_dir() / "nvm.sh"
        return script if script.is_file() else None

    def _activate_nvm_node(self) -> Path | None:
        """Put the newest nvm-installed node on this process's PATH.

        ``nvm install`` runs in a child shell, so its PATH change never
        reaches us; later presence checks need the bin directory.
        """
        candidates = [
            (parse_version(d.name) or (), d / "bin")
            for d in (self._nvm_dir() / "versions" / "node").glob("v*")
            if (d / "bin" / "node").is_file()
        ]
        if not candidates:
            logger.warning("nvm reported success but no node found under %s", self._nvm_dir())
            return None
        bin_dir = max(candidates)[1]
        path = os.environ.get("PATH", "")
        if str(bin_dir) not in path.split(os.pathsep):
            os.environ["PATH"] = os.pathsep.join(p for p in (str(bin_dir), path) if p)
            logger.info("Added %s to PATH", bin_dir)
        return bin_dir

    def _plan(self, tool: str) -> tuple[str, list[tuple[list[str], bool, dict[str, str] | None]]]:
        """Pick the method and commands for ``tool``.

        Raises:
            InstallError: No usable method on this system.
        """
        routine = _ROUTINES[tool]

        if routine == "node":
            nvm_script = self._nvm_script()
            if nvm_script is not None:
                cmd = ["bash", "-c", 'source "$NVM_SH" && nvm install --lts']
                return "nvm", [(cmd, False, {"NVM_SH": str(nvm_script)})]
            return self._package_plan(["nodejs", "npm"])

        if routine in ("pnpm", "yarn"):
            if self.which("npm"):
                return "npm", [(["npm", "install", "-g", routine], False, None)]
            if routine == "yarn":
                return self._package_plan(["yarn"])
            raise InstallError("npm required to install pnpm")

        if routine == "docker":
            return self._package_plan(["docker.io", "docker-compose"])
        if routine == "python":
            return self._package_plan(["python3", "python3-pip"])
        return self._package_plan([routine])

    def _package_plan(
        self, packages: list[str],
    ) -> tuple[str, list[tuple[list[str], bool, dict[str, str] | None]]]:
        pm = detect_package_manager(self.which)
        if pm is None:
            raise InstallError("No supported package manager found (apt-get, brew, dnf, yum)")
        steps = [(cmd, sudo, None) for cmd, sudo in build_package_commands(pm, packages)]
        return pm, steps
