"""
Dependency resolver — validates a script's tools, versions and prior scripts.

Tool checks run in parallel, one worker per declared tool, and are
joined before the report is built, so wall-clock time is bounded by
the slowest single check rather than the sum.  Each version command is
bounded by ``dependency_check_timeout``; a check that runs out of time
reports "version unknown", which is not a failure.

Prior-script checks are sequential, in declared order.  The report is
always assembled in declaration order, whichever check finished first.

``resolve`` never raises for unsatisfied conditions; only manifest
infrastructure errors escape ``resolve_for_script``.
"""

from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.errors import ManifestError
from bootbuild.core.models.dependency import (
    DependencyDeclaration,
    DependencyReport,
    ToolCheck,
    VersionFailure,
)
from bootbuild.core.models.manifest import ToolRequirement
from bootbuild.core.persistence.markers import CompletionMarkers, normalize_script_id
from bootbuild.core.services.registry import ScriptRegistry
from bootbuild.core.services.tool_probe import ToolProbe
from bootbuild.core.services.version_compare import satisfies

logger = logging.getLogger(__name__)

# Extra time allowed on top of the per-check timeout before a worker
# is given up on at join time (PATH lookup + process spawn/kill).
_JOIN_GRACE_SECONDS = 5.0


@dataclass
class _PlannedCheck:
    requirement: ToolRequirement
    command: str | None


class DependencyResolver:
    """Resolve dependency declarations into reports.

    Args:
        config: Engine configuration (timeouts, logs directory).
        registry: Manifest queries; built from ``config`` when omitted.
        markers: Completion marker store; defaults to ``config.logs_dir``.
        probe: Tool presence/version probe (tests inject fakes).
    """

    def __init__(
        self,
        config: EngineConfig,
        registry: ScriptRegistry | None = None,
        markers: CompletionMarkers | None = None,
        probe: ToolProbe | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or ScriptRegistry(config)
        self.markers = markers or CompletionMarkers(config.logs_dir)
        self.probe = probe or ToolProbe()
        self.timeout = config.dependency_check_timeout
        self._declarations: dict[tuple[str, int], DependencyDeclaration] = {}

    # ── Manifest-driven mode ────────────────────────────────────

    def declaration_for_script(self, script_id: str) -> DependencyDeclaration:
        """Build the declaration for a manifest script.

        Uses ``requires.tools``, ``requires.optional`` and ``depends``;
        a tool without an explicit bound inherits the manifest's
        ``tools.<id>.min_version``.  Required specs that do not parse
        are carried in ``invalid`` and fail the resolution.  Memoised
        per manifest mtime.

        Raises:
            ManifestError: If the manifest cannot be loaded.
        """
        key = (script_id, self.registry.cache.source_mtime())
        cached = self._declarations.get(key)
        if cached is not None:
            return cached

        tools = [self._with_default_bound(r) for r in self.registry.script_requires_tools(script_id)]
        optional = [
            self._with_default_bound(r) for r in self.registry.script_optional_tools(script_id)
        ]
        declaration = DependencyDeclaration(
            tools=tools,
            scripts=self.registry.script_depends(script_id),
            optional=optional,
            invalid=self.registry.script_requirement_errors(script_id),
            invalid_optional=self.registry.script_requirement_errors(script_id, optional=True),
        )
        self._declarations[key] = declaration
        return declaration

    def resolve_for_script(self, script_id: str) -> DependencyReport:
        """Resolve the dependencies the manifest declares for ``script_id``.

        Raises:
            ManifestError: If the manifest cannot be loaded.
        """
        script_id = normalize_script_id(script_id)
        declaration = self.declaration_for_script(script_id)
        report = self.resolve(declaration)
        report.script = script_id
        if not self.registry.script_exists(script_id):
            report.notes.insert(0, f"Script '{script_id}' is not declared in the manifest")
        return report

    def clear_cache(self) -> None:
        self._declarations.clear()

    def _with_default_bound(self, requirement: ToolRequirement) -> ToolRequirement:
        if requirement.version:
            return requirement
        info = self.registry.tool_info(requirement.name)
        if info is not None and info.min_version:
            return requirement.model_copy(update={"version": info.min_version, "mode": "min"})
        return requirement

    def command_for(self, tool: str) -> str | None:
        """The manifest's ``tools.<id>.command`` override, if any."""
        try:
            info = self.registry.tool_info(tool)
        except ManifestError:
            # Standalone mode: no manifest, no overrides
            return None
        return info.command if info is not None and info.command else None

    # ── Resolution ──────────────────────────────────────────────

    def resolve(self, declaration: DependencyDeclaration) -> DependencyReport:
        """Check every declared tool, prior script and optional tool.

        Never raises for unsatisfied or failing checks; all failure
        classes are collected so the caller sees the complete picture.
        A tool declared more than once is probed once and must meet
        every bound declared for it.
        """
        start = time.monotonic()
        report = DependencyReport()

        required = _group(declaration.tools)
        required_names = {bounds[0].name for bounds in required}
        optional = [b for b in _group(declaration.optional) if b[0].name not in required_names]

        planned = [
            _PlannedCheck(_representative(bounds), self.command_for(bounds[0].name))
            for bounds in required + optional
        ]
        checks = self._run_checks(planned)
        required_checks = checks[: len(required)]
        optional_checks = checks[len(required):]

        # ── Required tools (declaration order) ──
        for bounds, check in zip(required, required_checks):
            name = bounds[0].name
            report.checks[name] = check
            if check.error:
                report.notes.append(f"{name}: check failed ({check.error})")
            failures = _unmet_bounds(bounds, check)
            if not check.present:
                report.missing_tools.append(name)
            elif failures:
                report.version_failures.extend(failures)
            else:
                report.satisfied_tools.append(name)
                versioned = [b for b in bounds if b.version]
                if versioned and not check.version_checked:
                    report.unknown_versions.append(name)
                    reason = "timed out" if check.timed_out else "could not be determined"
                    wanted = ", ".join(f"{b.mode} {b.version}" for b in versioned)
                    report.notes.append(
                        f"{name}: version {reason}; assuming it meets {wanted}"
                    )

        # ── Requirements that could not be parsed ──
        for problem in declaration.invalid:
            report.invalid_requirements.append(problem)
            report.notes.append(f"Invalid requirement: {problem}")
            logger.error("Invalid requirement: %s", problem)

        # ── Prior scripts (sequential, declared order) ──
        for script in declaration.scripts:
            script_id = normalize_script_id(script)
            if self.markers.is_complete(script_id):
                report.satisfied_scripts.append(script_id)
            else:
                report.missing_scripts.append(script_id)

        # ── Optional tools (informational only) ──
        for bounds, check in zip(optional, optional_checks):
            name = bounds[0].name
            report.checks[name] = check
            if not check.present:
                report.missing_optional.append(name)
                report.notes.append(f"Optional tool not installed: {name}")
                continue
            for failure in _unmet_bounds(bounds, check):
                report.optional_version_failures.append(failure)
                report.notes.append(f"Optional tool version not met: {failure}")
                logger.warning("Optional tool version not met: %s", failure)

        for problem in declaration.invalid_optional:
            report.notes.append(f"Ignored invalid optional requirement: {problem}")
            logger.warning("Ignored invalid optional requirement: %s", problem)

        report.elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Resolved %d tools, %d scripts in %dms: %d missing, %d version failures, "
            "%d scripts not run",
            len(required), len(declaration.scripts), report.elapsed_ms,
            len(report.missing_tools), len(report.version_failures),
            len(report.missing_scripts),
        )
        return report

    def _run_checks(self, planned: list[_PlannedCheck]) -> list[ToolCheck]:
        """Run one background check per tool and join them all.

        Results come back aligned with ``planned``.
        """
        if not planned:
            return []

        results: list[ToolCheck | None] = [None] * len(planned)
        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(planned), thread_name_prefix="depcheck",
        )
        abandoned = False
        try:
            futures = {
                pool.submit(self._check_tool, p.requirement, p.command): i
                for i, p in enumerate(planned)
            }
            try:
                for future in concurrent.futures.as_completed(
                    futures, timeout=self.timeout + _JOIN_GRACE_SECONDS,
                ):
                    i = futures[future]
                    try:
                        results[i] = future.result()
                    except Exception as exc:
                        logger.exception("Dependency check crashed for %s", planned[i].requirement.name)
                        results[i] = ToolCheck(
                            tool=planned[i].requirement.name, present=True, error=str(exc),
                        )
            except concurrent.futures.TimeoutError:
                abandoned = True
                logger.warning("Some dependency checks did not finish in time")
        finally:
            pool.shutdown(wait=not abandoned, cancel_futures=True)

        return [
            result if result is not None
            else ToolCheck(tool=planned[i].requirement.name, present=True, timed_out=True)
            for i, result in enumerate(results)
        ]

    def _check_tool(self, requirement: ToolRequirement, command: str | None) -> ToolCheck:
        """Presence + version check for one tool (runs on a worker thread)."""
        check = ToolCheck(tool=requirement.name)
        check.path = self.probe.which(requirement.name, command)
        if not check.path:
            return check
        check.present = True

        if not requirement.version:
            check.satisfied = True
            return check

        probe = self.probe.version(requirement.name, self.timeout, command)
        check.timed_out = probe.timed_out
        if probe.version is None:
            # Unknown version is not a failure
            check.satisfied = True
            return check

        check.version = probe.version
        check.version_checked = True
        check.satisfied = satisfies(probe.version, requirement.version, requirement.mode)
        return check


def _group(requirements: list[ToolRequirement]) -> list[list[ToolRequirement]]:
    """Bounds per tool, tools in first-declared order."""
    groups: dict[str, list[ToolRequirement]] = {}
    for requirement in requirements:
        groups.setdefault(requirement.name, []).append(requirement)
    return list(groups.values())


def _representative(bounds: list[ToolRequirement]) -> ToolRequirement:
    # Any versioned bound makes the worker fetch the version
    return next((b for b in bounds if b.version), bounds[0])


def _unmet_bounds(bounds: list[ToolRequirement], check: ToolCheck) -> list[VersionFailure]:
    if not check.present or not check.version_checked or check.version is None:
        return []
    return [
        _version_failure(b, check)
        for b in bounds
        if b.version and not satisfies(check.version, b.version, b.mode)
    ]


def _version_failure(requirement: ToolRequirement, check: ToolCheck) -> VersionFailure:
    return VersionFailure(
        tool=requirement.name,
        required=requirement.version or "",
        mode=requirement.mode,
        observed=check.version or "unknown",
    )
