"""
Script registry — typed read-only queries over the cached manifest.

Every query tolerates a manifest with missing optional fields: absent
data yields an empty list or ``None``, never an exception.  Only an
unreadable manifest (``ManifestError``) propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.models.manifest import Profile, ScriptEntry, ToolInfo, ToolRequirement
from bootbuild.core.persistence.manifest_cache import ManifestCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

PHASE_NAMES: dict[int, str] = {
    1: "Foundation",
    2: "Development Environment",
    3: "Infrastructure & Databases",
    4: "Services & Deployment",
    5: "Advanced Services",
}

SCRIPT_GLOB = "bootstrap-*.sh"


def _str_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [v for v in value.replace(",", " ").split() if v]
    if isinstance(value, list):
        return [str(v) for v in value if v not in (None, "")]
    return []


def _spec_list(value: Any) -> list[Any]:
    """Requirement specs from a list, a single mapping or a spec string."""
    if not value:
        return []
    if isinstance(value, str):
        return _str_list(value)
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [v for v in value if v not in (None, "")]
    return []


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ScriptRegistry:
    """Queries over the manifest, owned per engine instance.

    Derived results (phase lists, menu numbering) are memoised until the
    cache hands back a different document, i.e. until the manifest
    changes or the cache is invalidated.
    """

    def __init__(self, config: EngineConfig, cache: ManifestCache | None = None) -> None:
        self.config = config
        self.cache = cache or ManifestCache(config)
        self._query_doc: dict[str, Any] | None = None
        self._query_cache: dict[tuple, Any] = {}

    # ── Internal helpers ────────────────────────────────────────

    def _doc(self) -> dict[str, Any]:
        doc = self.cache.get_manifest()
        if doc is not self._query_doc:
            self._query_cache.clear()
            self._query_doc = doc
        return doc

    def _memo(self, key: tuple, compute: Callable[[], T]) -> T:
        self._doc()
        if key not in self._query_cache:
            self._query_cache[key] = compute()
        return self._query_cache[key]

    def clear_query_cache(self) -> None:
        self._query_cache.clear()
        self._query_doc = None

    def _section(self, name: str) -> dict[str, Any]:
        section = self._doc().get(name)
        return section if isinstance(section, dict) else {}

    def _raw(self, script_id: str) -> dict[str, Any] | None:
        entry = self._section("scripts").get(script_id)
        return entry if isinstance(entry, dict) else None

    # ── Scripts ─────────────────────────────────────────────────

    def all_scripts(self) -> list[str]:
        return list(self._section("scripts"))

    def visible_scripts(self) -> list[str]:
        return [
            sid for sid, raw in self._section("scripts").items()
            if not (isinstance(raw, dict) and raw.get("hidden") is True)
        ]

    def script_exists(self, script_id: str) -> bool:
        return script_id in self._section("scripts")

    def script(self, script_id: str) -> ScriptEntry | None:
        """Typed view of a script entry, or None if it is not declared."""
        raw = self._raw(script_id)
        if raw is None:
            return None
        try:
            return ScriptEntry.model_validate({**raw, "id": script_id})
        except ValidationError as e:
            logger.warning("Malformed manifest entry for %s: %s", script_id, e)
            return ScriptEntry(id=script_id)

    def script_field(self, script_id: str, field: str) -> Any:
        raw = self._raw(script_id)
        return None if raw is None else raw.get(field)

    def script_depends(self, script_id: str) -> list[str]:
        return _str_list(self.script_field(script_id, "depends"))

    def _requires(
        self, script_id: str,
    ) -> tuple[list[ToolRequirement], list[ToolRequirement], list[str], list[str]]:
        """Split ``requires`` into required and optional tool requirements.

        Accepts the mapping form ``{"tools": [...], "optional": [...]}``
        (each value a list, a single mapping, or a space/comma separated
        string) and the flat header form ``["tool:git", "optional:jq"]``.

        Returns ``(required, optional, required_errors, optional_errors)``;
        a spec that does not parse is reported in the errors list rather
        than dropped.
        """
        raw = self.script_field(script_id, "requires")
        required_specs: list[Any] = []
        optional_specs: list[Any] = []

        if isinstance(raw, dict):
            required_specs = _spec_list(raw.get("tools"))
            optional_specs = _spec_list(raw.get("optional"))
        elif isinstance(raw, (list, str)):
            for item in _str_list(raw) if isinstance(raw, str) else raw:
                if isinstance(item, str) and item.startswith("optional:"):
                    optional_specs.append(item[len("optional:"):])
                elif isinstance(item, str) and item.startswith("tool:"):
                    required_specs.append(item[len("tool:"):])
                else:
                    required_specs.append(item)

        def parse_all(specs: list[Any]) -> tuple[list[ToolRequirement], list[str]]:
            parsed, errors = [], []
            for spec in specs:
                try:
                    parsed.append(ToolRequirement.parse(spec))
                except ValueError as e:
                    logger.warning("Bad requirement in script %s: %s", script_id, e)
                    errors.append(f"{script_id}: {e}")
            return parsed, errors

        required, required_errors = parse_all(required_specs)
        optional, optional_errors = parse_all(optional_specs)
        return required, optional, required_errors, optional_errors

    def script_requires_tools(self, script_id: str) -> list[ToolRequirement]:
        return self._requires(script_id)[0]

    def script_optional_tools(self, script_id: str) -> list[ToolRequirement]:
        return self._requires(script_id)[1]

    def script_requirement_errors(self, script_id: str, optional: bool = False) -> list[str]:
        """Messages for requirement specs of ``script_id`` that do not parse."""
        return self._requires(script_id)[3 if optional else 2]

    def category_scripts(self, category: str) -> list[str]:
        return [
            sid for sid in self.visible_scripts()
            if self.script_field(sid, "category") == category
        ]

    # ── Phases ──────────────────────────────────────────────────

    def phases(self) -> list[int]:
        def compute() -> list[int]:
            numbers = {_as_int(key) for key in self._section("phases")}
            numbers.update(
                _as_int(self.script_field(sid, "phase")) for sid in self.visible_scripts()
            )
            numbers.discard(None)
            return sorted(numbers)  # type: ignore[arg-type]

        return self._memo(("phases",), compute)

    def phase_name(self, phase: int) -> str:
        return PHASE_NAMES.get(phase, f"Phase {phase}")

    def scripts_in_phase(self, phase: int) -> list[str]:
        """Visible scripts whose ``phase`` field equals ``phase``, in manifest order."""
        return self._memo(
            ("phase", phase),
            lambda: [
                sid for sid in self.visible_scripts()
                if _as_int(self.script_field(sid, "phase")) == phase
            ],
        )

    # ── Profiles ────────────────────────────────────────────────

    def profiles(self) -> list[str]:
        return list(self._section("profiles"))

    def profile(self, name: str) -> Profile | None:
        profiles = self._section("profiles")
        if name not in profiles:
            return None
        return Profile.from_manifest(name, profiles[name])

    def profile_exists(self, name: str) -> bool:
        return name in self._section("profiles")

    def profile_scripts(self, name: str) -> list[str]:
        profile = self.profile(name)
        return profile.scripts if profile else []

    # ── Tools & paths ───────────────────────────────────────────

    def tool_info(self, tool: str) -> ToolInfo | None:
        raw = self._section("tools").get(tool)
        if not isinstance(raw, dict):
            return None
        try:
            return ToolInfo.model_validate(raw)
        except ValidationError as e:
            logger.warning("Malformed tools entry for %s: %s", tool, e)
            return None

    def paths(self) -> dict[str, str]:
        return {str(k): str(v) for k, v in self._section("paths").items()}

    def path_constant(self, name: str) -> Path | None:
        value = self.paths().get(name)
        return Path(value) if value else None

    # ── Files on disk ───────────────────────────────────────────

    def resolve_script_file(self, file: str) -> Path:
        """Resolve a manifest ``file`` value to a script path.

        Candidates, first existing wins:
            1. the path itself, if absolute
            2. relative to the project root
            3. relative to the bootstrap (toolkit) directory
            4. inside the canonical scripts directory, as given and by basename

        Falls back to ``<scripts_dir>/<basename>`` so callers can still
        print a meaningful "not found" message.
        """
        given = Path(file)
        scripts_dir = self.config.scripts_dir
        candidates: list[Path] = []
        if given.is_absolute():
            candidates.append(given)
        candidates.append(self.config.project_root / given)
        candidates.append(self.config.bootstrap_dir / given)
        candidates.append(scripts_dir / given)
        candidates.append(scripts_dir / given.name)

        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return scripts_dir / given.name

    def script_file_resolves(self, script_id: str) -> Path | None:
        """On-disk path of a script's file (best guess if missing).

        Returns None when the script has no ``file`` field at all.
        """
        file = self.script_field(script_id, "file")
        if not file or not isinstance(file, str):
            return None
        return self.resolve_script_file(file)

    def script_file_exists(self, script_id: str) -> bool:
        path = self.script_file_resolves(script_id)
        return path is not None and path.is_file()

    def script_status(self, script_id: str) -> str:
        """``available`` (declared + file), ``missing`` (declared, no file) or ``new``."""
        if not self.script_exists(script_id):
            return "new"
        return "available" if self.script_file_exists(script_id) else "missing"

    def discover_new_scripts(self) -> list[str]:
        """Script files in the scripts directory that the manifest does not declare."""
        scripts_dir = self.config.scripts_dir
        if not scripts_dir.is_dir():
            return []
        found = []
        for path in sorted(scripts_dir.glob(SCRIPT_GLOB)):
            name = path.stem[len("bootstrap-"):]
            if name and not self.script_exists(name):
                found.append(name)
        return found

    def find_missing_scripts(self) -> list[str]:
        """Visible scripts whose file is not on disk."""
        return [sid for sid in self.visible_scripts() if not self.script_file_exists(sid)]

    # ── Menu numbering ──────────────────────────────────────────

    def script_number_map(self) -> list[tuple[int, str]]:
        """``[(1, "git"), (2, "packages"), ...]`` across phases in order."""

        def compute() -> list[tuple[int, str]]:
            numbered = []
            for phase in self.phases():
                for sid in self.scripts_in_phase(phase):
                    numbered.append((len(numbered) + 1, sid))
            return numbered

        return self._memo(("numbers",), compute)

    def script_by_number(self, number: int) -> str | None:
        for num, sid in self.script_number_map():
            if num == number:
                return sid
        return None

    def script_number(self, script_id: str) -> int | None:
        for num, sid in self.script_number_map():
            if sid == script_id:
                return num
        return None

    # ── Integrity ───────────────────────────────────────────────

    def validate(self) -> list[str]:
        """Warnings for references to undeclared scripts.

        Dangling references are warnings, not errors: the manifest may
        describe scripts that are not implemented yet.
        """
        warnings: list[str] = []
        scripts = self._section("scripts")

        for sid in scripts:
            for dep in self.script_depends(sid):
                if dep not in scripts:
                    warnings.append(f"Script '{sid}' depends on unknown script '{dep}'")
            for other in _str_list(self.script_field(sid, "conflicts")):
                if other != "none" and other not in scripts:
                    warnings.append(f"Script '{sid}' conflicts with unknown script '{other}'")
            for problem in (
                self.script_requirement_errors(sid)
                + self.script_requirement_errors(sid, optional=True)
            ):
                warnings.append(f"Invalid requirement in {problem}")

        for name in self.profiles():
            for sid in self.profile_scripts(name):
                if sid not in scripts:
                    warnings.append(f"Profile '{name}' references unknown script '{sid}'")

        for phase, members in self._section("phases").items():
            for sid in _str_list(members):
                if sid not in scripts:
                    warnings.append(f"Phase {phase} references unknown script '{sid}'")

        for warning in warnings:
            logger.warning(warning)
        return warnings
