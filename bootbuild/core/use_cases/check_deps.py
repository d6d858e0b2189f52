"""
Dependency check use case — resolve, optionally remedy, decide.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.errors import CacheDirectoryError, ManifestError
from bootbuild.core.models.dependency import DependencyDeclaration, DependencyReport
from bootbuild.core.models.install import InstallOutcome
from bootbuild.core.services.dependency_resolver import DependencyResolver
from bootbuild.core.services.install_orchestrator import Confirm, InstallOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class DependencyCheckResult:
    """Outcome of one dependency check."""

    report: DependencyReport | None = None
    install: InstallOutcome | None = None
    install_attempted: bool = False
    install_ok: bool = False
    proceed: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        if self.error:
            return {"error": self.error, "proceed": False}

        result: dict = {
            "proceed": self.proceed,
            "report": self.report.to_dict() if self.report else None,
        }
        if self.install_attempted:
            result["install"] = {
                "ok": self.install_ok,
                **(self.install.to_dict() if self.install else {}),
            }
        return result


def check_dependencies(
    config: EngineConfig,
    script_id: str | None = None,
    declaration: DependencyDeclaration | None = None,
    offer_install: bool = False,
    confirm: Confirm | None = None,
    resolver: DependencyResolver | None = None,
    orchestrator: InstallOrchestrator | None = None,
) -> DependencyCheckResult:
    """Check a script's (or an explicit declaration's) dependencies.

    When ``offer_install`` is set and tools are missing, the install
    orchestrator is offered the report; a successful install is
    followed by a fresh resolution so ``proceed`` reflects the system
    as it is now.

    Manifest and cache-directory failures become ``error``; nothing
    else is raised.
    """
    resolver = resolver or DependencyResolver(config)

    def resolve() -> DependencyReport:
        if declaration is not None:
            return resolver.resolve(declaration)
        return resolver.resolve_for_script(script_id or "")

    try:
        report = resolve()
    except (ManifestError, CacheDirectoryError) as e:
        logger.error("Dependency check aborted: %s", e)
        return DependencyCheckResult(error=str(e))

    result = DependencyCheckResult(report=report, proceed=report.ok)
    if report.ok or not offer_install or not report.missing_tools:
        return result

    if orchestrator is None:
        orchestrator = InstallOrchestrator(
            config,
            confirm=confirm,
            hints=_hint_lookup(resolver),
            commands=resolver.command_for,
        )

    result.install_attempted = True
    result.install_ok = orchestrator.offer_install(report)
    result.install = orchestrator.last_outcome

    if result.install_ok:
        try:
            result.report = resolve()
        except (ManifestError, CacheDirectoryError) as e:
            result.error = str(e)
            return result
        result.proceed = result.report.ok

    return result


def _hint_lookup(resolver: DependencyResolver):
    def lookup(tool: str) -> str | None:
        try:
            info = resolver.registry.tool_info(tool)
        except ManifestError:
            return None
        return info.install_hint if info is not None else None

    return lookup
