"""
Tests for the script registry — manifest queries, file resolution, integrity.
"""

import json
from pathlib import Path

import pytest

from bootbuild.core.config.loader import EngineConfig
from bootbuild.core.errors import ManifestNotFoundError
from bootbuild.core.services.registry import ScriptRegistry


@pytest.fixture
def registry(config: EngineConfig) -> ScriptRegistry:
    return ScriptRegistry(config)


def _write_manifest(config: EngineConfig, data: dict) -> None:
    config.manifest_file.write_text(json.dumps(data))


class TestScriptQueries:
    """Tests for script-level queries."""

    def test_all_and_visible(self, registry: ScriptRegistry):
        assert registry.all_scripts() == ["git", "packages", "linting", "secrets", "docker"]
        assert "secrets" not in registry.visible_scripts()

    def test_script_exists(self, registry: ScriptRegistry):
        assert registry.script_exists("git") is True
        assert registry.script_exists("nope") is False

    def test_script_entry_coerces_header_values(self, registry: ScriptRegistry):
        entry = registry.script("linting")
        assert entry is not None
        assert entry.safe is True
        assert entry.phase == 2
        assert entry.depends == ["packages"]
        assert entry.platforms == ["all"]

    def test_unknown_script(self, registry: ScriptRegistry):
        assert registry.script("nope") is None
        assert registry.script_field("nope", "phase") is None
        assert registry.script_depends("nope") == []
        assert registry.script_requires_tools("nope") == []

    def test_requires_mapping_form(self, registry: ScriptRegistry):
        tools = registry.script_requires_tools("docker")
        assert [(t.name, t.version, t.mode) for t in tools] == [
            ("docker", "20.10.0", "min"),
            ("git", None, "min"),
        ]
        assert [t.name for t in registry.script_optional_tools("docker")] == ["jq"]

    def test_requires_flat_form(self, registry: ScriptRegistry):
        assert [t.name for t in registry.script_requires_tools("linting")] == ["node"]
        assert [t.name for t in registry.script_optional_tools("linting")] == ["jq"]

    def test_malformed_requirement_is_reported(self, config: EngineConfig):
        _write_manifest(config, {"scripts": {"x": {"requires": {
            "tools": ["git", "node:1:bigger"], "optional": ["jq:1:newest"],
        }}}})
        registry = ScriptRegistry(config)
        assert [t.name for t in registry.script_requires_tools("x")] == ["git"]
        errors = registry.script_requirement_errors("x")
        assert len(errors) == 1
        assert errors[0].startswith("x: Unknown comparison mode 'bigger'")
        assert "'newest'" in registry.script_requirement_errors("x", optional=True)[0]
        assert any("Invalid requirement in x" in w for w in registry.validate())

    def test_requires_string_values(self, config: EngineConfig):
        _write_manifest(config, {"scripts": {"x": {"requires": {
            "tools": "docker:20.10.0 git", "optional": "jq, curl",
        }}}})
        registry = ScriptRegistry(config)
        tools = registry.script_requires_tools("x")
        assert [(t.name, t.version) for t in tools] == [("docker", "20.10.0"), ("git", None)]
        assert [t.name for t in registry.script_optional_tools("x")] == ["jq", "curl"]

    def test_requires_single_mapping(self, config: EngineConfig):
        _write_manifest(config, {"scripts": {"x": {"requires": {
            "tools": {"name": "node", "min_version": "18.0.0"},
        }}}})
        tools = ScriptRegistry(config).script_requires_tools("x")
        assert [(t.name, t.version) for t in tools] == [("node", "18.0.0")]

    def test_category_scripts(self, registry: ScriptRegistry):
        assert registry.category_scripts("core") == ["git", "packages"]

    def test_missing_fields_never_raise(self, config: EngineConfig):
        _write_manifest(config, {"scripts": {"bare": {}}})
        registry = ScriptRegistry(config)
        assert registry.script("bare").phase is None
        assert registry.phases() == []
        assert registry.profiles() == []
        assert registry.paths() == {}
        assert registry.tool_info("node") is None
        assert registry.script_file_resolves("bare") is None


class TestPhasesAndProfiles:
    """Tests for phase and profile queries."""

    def test_phases(self, registry: ScriptRegistry):
        assert registry.phases() == [1, 2, 3]
        assert registry.phase_name(1) == "Foundation"
        assert registry.phase_name(9) == "Phase 9"

    def test_scripts_in_phase(self, registry: ScriptRegistry):
        assert registry.scripts_in_phase(1) == ["git", "packages"]
        assert registry.scripts_in_phase(2) == ["linting"]
        assert registry.scripts_in_phase(7) == []

    def test_profiles(self, registry: ScriptRegistry):
        assert registry.profiles() == ["minimal", "full"]
        assert registry.profile_scripts("minimal") == ["git", "packages"]
        assert registry.profile("full").description == "Everything"
        assert registry.profile_exists("nope") is False
        assert registry.profile_scripts("nope") == []

    def test_number_map(self, registry: ScriptRegistry):
        assert registry.script_number_map() == [
            (1, "git"), (2, "packages"), (3, "linting"), (4, "docker"),
        ]
        assert registry.script_by_number(4) == "docker"
        assert registry.script_by_number(99) is None
        assert registry.script_number("linting") == 3

    def test_query_cache_follows_manifest(self, config: EngineConfig):
        registry = ScriptRegistry(config)
        assert registry.scripts_in_phase(1) == ["git", "packages"]

        data = json.loads(config.manifest_file.read_text())
        data["scripts"]["git"]["phase"] = 2
        _write_manifest(config, data)
        registry.cache.invalidate()

        assert registry.scripts_in_phase(1) == ["packages"]


class TestToolsAndPaths:
    """Tests for the tools and paths sections."""

    def test_tool_info(self, registry: ScriptRegistry):
        node = registry.tool_info("node")
        assert node.min_version == "18.0.0"
        assert node.install_hint.startswith("Use nvm")
        assert registry.tool_info("git") is None

    def test_path_constant(self, registry: ScriptRegistry):
        assert registry.path_constant("scripts_dir") == Path("templates/scripts")
        assert registry.path_constant("nope") is None


class TestFileResolution:
    """Tests for script file resolution and discovery."""

    def test_resolves_in_scripts_dir(self, registry: ScriptRegistry, config: EngineConfig):
        assert registry.script_file_resolves("git") == config.scripts_dir / "bootstrap-git.sh"
        assert registry.script_file_exists("git") is True

    def test_project_root_wins(self, registry: ScriptRegistry, config: EngineConfig):
        local = config.project_root / "bootstrap-git.sh"
        local.write_text("#!/bin/bash\n")
        assert registry.script_file_resolves("git") == local

    def test_absolute_path(self, registry: ScriptRegistry, tmp_path: Path):
        script = tmp_path / "elsewhere.sh"
        script.write_text("")
        assert registry.resolve_script_file(str(script)) == script

    def test_best_guess_when_missing(self, registry: ScriptRegistry, config: EngineConfig):
        assert registry.script_file_resolves("linting") == config.scripts_dir / "bootstrap-linting.sh"
        assert registry.script_file_exists("linting") is False

    def test_script_status(self, registry: ScriptRegistry):
        assert registry.script_status("git") == "available"
        assert registry.script_status("linting") == "missing"
        assert registry.script_status("extra") == "new"

    def test_discover_and_missing(self, registry: ScriptRegistry):
        assert registry.discover_new_scripts() == ["extra"]
        assert registry.find_missing_scripts() == ["linting"]


class TestValidate:
    """Tests for manifest integrity warnings."""

    def test_clean_manifest(self, registry: ScriptRegistry):
        assert registry.validate() == []

    def test_dangling_references(self, config: EngineConfig):
        _write_manifest(config, {
            "scripts": {"a": {"depends": ["ghost"]}},
            "profiles": {"p": ["a", "phantom"]},
            "phases": {"1": ["a", "spook"]},
        })
        warnings = ScriptRegistry(config).validate()
        assert len(warnings) == 3
        assert any("ghost" in w for w in warnings)
        assert any("phantom" in w for w in warnings)
        assert any("spook" in w for w in warnings)

    def test_missing_manifest_propagates(self, tmp_path: Path):
        registry = ScriptRegistry(EngineConfig.for_directory(tmp_path))
        with pytest.raises(ManifestNotFoundError):
            registry.all_scripts()
