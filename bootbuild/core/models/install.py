"""
Install models — per-tool results of an auto-install offer.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ToolInstallResult(BaseModel):
    """Result of one install routine.  Never an exception."""

    tool: str
    status: Literal["ok", "failed", "skipped"] = "ok"
    method: str = ""
    commands: list[list[str]] = Field(default_factory=list)
    error: str | None = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class InstallOutcome(BaseModel):
    """Everything ``InstallOrchestrator.offer_install`` decided and did."""

    offered: list[str] = Field(default_factory=list)
    manual: list[str] = Field(default_factory=list)
    guidance: dict[str, list[str]] = Field(default_factory=dict)
    confirmed: bool = False
    results: list[ToolInstallResult] = Field(default_factory=list)
    still_missing: list[str] = Field(default_factory=list)
    ok: bool = False
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
