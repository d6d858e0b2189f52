"""
Manifest models — typed views over bootstrap-manifest.json.

The manifest is produced offline from setup-script headers and may
describe scripts that are not implemented yet, so every field except
the identifier has a default.  Unknown keys are kept (``extra="allow"``)
and reachable through ``ScriptRegistry.script_field``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ComparisonMode = Literal["min", "max", "exact"]

_TRUE_WORDS = ("yes", "true", "y", "1", "on")


def _coerce_flag(value: Any) -> Any:
    """Header generators emit ``"yes"``/``"no"``; normalise to bool."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_WORDS
    return value


def _coerce_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [item for item in value.replace(",", " ").split() if item]
    return value


class ToolRequirement(BaseModel):
    """A required tool with an optional version bound.

    Parsed from the compact ``name[:version[:mode]]`` form used by
    script headers (``"node:18.0.0:min"``) or from a mapping.
    """

    name: str
    version: str | None = None
    mode: ComparisonMode = "min"

    @classmethod
    def parse(cls, spec: str | dict[str, Any]) -> ToolRequirement:
        """Build a requirement from a string or mapping spec.

        Raises:
            ValueError: If the spec is empty or names an unknown mode.
        """
        if isinstance(spec, dict):
            name = spec.get("name") or spec.get("tool") or ""
            version = spec.get("version") or spec.get("min_version")
            mode = spec.get("mode") or spec.get("comparison") or "min"
        else:
            parts = [p.strip() for p in str(spec).split(":")]
            name = parts[0] if parts else ""
            version = parts[1] if len(parts) > 1 and parts[1] else None
            mode = parts[2] if len(parts) > 2 and parts[2] else "min"

        if not name:
            raise ValueError(f"Empty tool requirement: {spec!r}")
        if mode not in ("min", "max", "exact"):
            raise ValueError(f"Unknown comparison mode {mode!r} in {spec!r}")
        return cls(name=name, version=str(version) if version else None, mode=mode)

    def __str__(self) -> str:
        if not self.version:
            return self.name
        return f"{self.name}:{self.version}:{self.mode}"


class ToolInfo(BaseModel):
    """Entry of the manifest's optional ``tools`` section."""

    model_config = ConfigDict(extra="allow")

    command: str | None = None
    min_version: str | None = None
    install_hint: str | None = None


class ScriptEntry(BaseModel):
    """One setup script as described by the manifest."""

    model_config = ConfigDict(extra="allow")

    id: str
    file: str | None = None
    version: str | None = None
    phase: int | None = None
    category: str = ""
    priority: int = 50
    short: str = ""
    description: str = ""
    safe: bool = True
    idempotent: bool = True
    hidden: bool = False
    questions: str | None = None

    creates: list[str] = Field(default_factory=list)
    depends: list[str] = Field(default_factory=list)
    detects: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    templates: list[str] = Field(default_factory=list)

    # Compatibility metadata
    config_section: str | None = None
    env_vars: list[str] = Field(default_factory=list)
    interactive: bool = False
    platforms: list[str] = Field(default_factory=lambda: ["all"])
    conflicts: list[str] = Field(default_factory=list)
    rollback: str | None = None
    verify: str | None = None
    docs: str | None = None

    @field_validator("safe", "idempotent", "hidden", "interactive", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> Any:
        return _coerce_flag(value)

    @field_validator(
        "creates", "depends", "detects", "tags", "templates",
        "env_vars", "platforms", "conflicts",
        mode="before",
    )
    @classmethod
    def _list(cls, value: Any) -> Any:
        return _coerce_list(value)

    @field_validator("config_section", "questions", mode="before")
    @classmethod
    def _none_word(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() == "none":
            return None
        return value


class Profile(BaseModel):
    """A named preset bundle of scripts."""

    name: str
    description: str = ""
    scripts: list[str] = Field(default_factory=list)

    @classmethod
    def from_manifest(cls, name: str, raw: Any) -> Profile:
        """Profiles are either a bare list or ``{"description", "scripts"}``."""
        if isinstance(raw, list):
            return cls(name=name, scripts=[str(s) for s in raw])
        if isinstance(raw, dict):
            return cls(
                name=name,
                description=str(raw.get("description") or ""),
                scripts=[str(s) for s in raw.get("scripts") or []],
            )
        return cls(name=name)
