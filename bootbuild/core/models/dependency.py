"""
Dependency models — the resolver's request and result contract.

A ``DependencyDeclaration`` goes in, a ``DependencyReport`` comes out.
Unsatisfied dependencies are data in the report, never exceptions:
the caller decides whether to offer an install or abort.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from bootbuild.core.models.manifest import ComparisonMode, ToolRequirement


def _split_specs(value: str | list[str] | None) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return [v for v in value if v]


class DependencyDeclaration(BaseModel):
    """What one validation call must check.  Built fresh per call."""

    tools: list[ToolRequirement] = Field(default_factory=list)
    scripts: list[str] = Field(default_factory=list)
    optional: list[ToolRequirement] = Field(default_factory=list)
    # Specs that did not parse, as messages; required ones fail resolution
    invalid: list[str] = Field(default_factory=list)
    invalid_optional: list[str] = Field(default_factory=list)

    @classmethod
    def parse(
        cls,
        tools: str | list[str] | None = None,
        scripts: str | list[str] | None = None,
        optional: str | list[str] | None = None,
    ) -> DependencyDeclaration:
        """Build a declaration from header-style spec strings.

        Example::

            DependencyDeclaration.parse(
                tools="node:18.0.0:min docker git",
                scripts="bootstrap-git",
                optional="redis-cli",
            )

        Raises:
            ValueError: If a tool spec is malformed.
        """
        return cls(
            tools=[ToolRequirement.parse(s) for s in _split_specs(tools)],
            scripts=_split_specs(scripts),
            optional=[ToolRequirement.parse(s) for s in _split_specs(optional)],
        )

    @property
    def is_empty(self) -> bool:
        return not (self.tools or self.scripts or self.optional or self.invalid)


class VersionFailure(BaseModel):
    """A present tool whose version does not meet its bound."""

    tool: str
    required: str
    mode: ComparisonMode = "min"
    observed: str

    def __str__(self) -> str:
        return f"{self.tool}: need {self.mode} {self.required}, have {self.observed}"


class ToolCheck(BaseModel):
    """Outcome of one per-tool background check."""

    tool: str
    present: bool = False
    path: str | None = None
    version: str | None = None
    version_checked: bool = False
    satisfied: bool = False
    timed_out: bool = False
    error: str | None = None


class DependencyReport(BaseModel):
    """Aggregated result of one resolution.

    Lists are built in declaration order, so two resolutions over the
    same system produce identical reports regardless of which
    background check finished first.
    """

    script: str | None = None

    missing_tools: list[str] = Field(default_factory=list)
    version_failures: list[VersionFailure] = Field(default_factory=list)
    missing_scripts: list[str] = Field(default_factory=list)
    invalid_requirements: list[str] = Field(default_factory=list)

    satisfied_tools: list[str] = Field(default_factory=list)
    satisfied_scripts: list[str] = Field(default_factory=list)
    unknown_versions: list[str] = Field(default_factory=list)

    missing_optional: list[str] = Field(default_factory=list)
    optional_version_failures: list[VersionFailure] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    checks: dict[str, ToolCheck] = Field(default_factory=dict)
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        """True when every required tool, version, script and spec is satisfied."""
        return not (
            self.missing_tools
            or self.version_failures
            or self.missing_scripts
            or self.invalid_requirements
        )

    @property
    def has_tool_failures(self) -> bool:
        return bool(self.missing_tools or self.version_failures)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data = self.model_dump(mode="json", exclude={"checks"})
        data["ok"] = self.ok
        data["version_failures"] = [
            {**vf.model_dump(mode="json"), "message": str(vf)} for vf in self.version_failures
        ]
        return data
