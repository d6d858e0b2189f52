"""
Domain models — Pydantic types for the engine.

All models are re-exported here for convenient access:

    from bootbuild.core.models import DependencyDeclaration, DependencyReport, ScriptEntry
"""

from bootbuild.core.models.dependency import (
    DependencyDeclaration,
    DependencyReport,
    ToolCheck,
    VersionFailure,
)
from bootbuild.core.models.install import InstallOutcome, ToolInstallResult
from bootbuild.core.models.manifest import (
    ComparisonMode,
    Profile,
    ScriptEntry,
    ToolInfo,
    ToolRequirement,
)

__all__ = [
    "ComparisonMode",
    # dependency.py
    "DependencyDeclaration",
    "DependencyReport",
    # install.py
    "InstallOutcome",
    # manifest.py
    "Profile",
    "ScriptEntry",
    "ToolCheck",
    "ToolInfo",
    "ToolInstallResult",
    "ToolRequirement",
    "VersionFailure",
]
