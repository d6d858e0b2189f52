"""
Subprocess runner — the single place install commands are executed.

Every install step goes through ``run_command``: timeout enforcement,
sudo prefixing, output capture and logging live here and nowhere else.
Version probes are read-only and live in ``tool_probe``.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 2000


def _is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def run_command(
    cmd: list[str],
    *,
    needs_sudo: bool = False,
    timeout: float = 300,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run one install command.

    Sudo is prefixed only when the step needs root and the process is
    not already root.  ``sudo`` prompts on the controlling terminal, so
    captured output does not interfere with the password prompt.

    A timeout is a hard failure: ``subprocess.run`` kills the child and
    the step is reported as failed.

    Args:
        cmd: Argument vector; never passed through a shell.
        needs_sudo: Whether the command requires root.
        timeout: Seconds before the child is killed.
        env_overrides: Extra environment variables.
        cwd: Working directory for the command.

    Returns:
        ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
        ``{"ok": False, "error": "...", ...}`` on failure.
    """
    if needs_sudo and not _is_root():
        cmd = ["sudo"] + cmd

    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    logger.info("Running: %s", " ".join(cmd))
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        logger.error("Command timed out after %ss: %s", timeout, " ".join(cmd))
        return {"ok": False, "timed_out": True, "error": f"Command timed out ({timeout}s)"}
    except OSError as e:
        logger.error("Could not run %s: %s", cmd[0], e)
        return {"ok": False, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout[-_OUTPUT_TAIL:] if result.stdout else ""

    if result.returncode == 0:
        return {"ok": True, "stdout": stdout, "elapsed_ms": elapsed_ms}

    stderr = result.stderr[-_OUTPUT_TAIL:] if result.stderr else ""
    logger.warning("Command failed (exit %d): %s", result.returncode, " ".join(cmd))
    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "stderr": stderr,
        "stdout": stdout,
        "elapsed_ms": elapsed_ms,
    }
