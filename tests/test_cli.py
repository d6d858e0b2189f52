"""
Tests for CLI commands — deps, manifest, scripts, markers, and global options.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from bootbuild.core.persistence.markers import CompletionMarkers
from bootbuild.main import cli


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("CI", "BOOTBUILD_ASSUME_YES", "BOOTBUILD_LOG_FILE", "BOOTBUILD_MANIFEST"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def probe(make_probe, monkeypatch):
    """Replace real tool probing with a fake for the whole command."""
    fake = make_probe({"git": "2.40.0", "node": "18.17.0"})
    monkeypatch.setattr("bootbuild.core.services.dependency_resolver.ToolProbe", lambda: fake)
    monkeypatch.setattr("bootbuild.core.services.install_orchestrator.ToolProbe", lambda: fake)
    return fake


def _invoke(bootstrap_dir: Path, *args: str):
    return CliRunner().invoke(cli, ["--bootstrap-dir", str(bootstrap_dir), *args])


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "bootstrap scripts" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_auto_detects_bootstrap_dir(self, bootstrap_dir: Path, monkeypatch):
        monkeypatch.chdir(bootstrap_dir.parent)
        monkeypatch.delenv("BOOTBUILD_DIR", raising=False)
        result = CliRunner().invoke(cli, ["-q", "manifest", "stats", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["scripts"] == 5

    def test_bad_settings_file(self, bootstrap_dir: Path):
        (bootstrap_dir / "bootbuild.yml").write_text("- not\n- a mapping\n")
        result = _invoke(bootstrap_dir, "markers", "list")
        assert result.exit_code == 1
        assert "Expected a YAML mapping" in result.output


class TestDepsCheck:
    """Tests for `deps check`."""

    def test_satisfied(self, bootstrap_dir: Path, probe):
        result = _invoke(bootstrap_dir, "deps", "check", "git")
        assert result.exit_code == 0
        assert "All dependencies satisfied for git" in result.output

    def test_unsatisfied(self, bootstrap_dir: Path, probe):
        result = _invoke(bootstrap_dir, "deps", "check", "docker")
        assert result.exit_code == 1
        assert "Required tools not installed" in result.output
        assert "docker" in result.output
        assert "bootstrap-git.sh" in result.output
        assert "https://docs.docker.com/get-docker/" in result.output

    def test_satisfied_after_marker(self, bootstrap_dir: Path, probe):
        CompletionMarkers(bootstrap_dir / "logs").mark_complete("git")
        probe.installed["docker"] = "24.0.7"
        result = _invoke(bootstrap_dir, "deps", "check", "bootstrap-docker")
        assert result.exit_code == 0

    def test_json(self, bootstrap_dir: Path, probe):
        result = _invoke(bootstrap_dir, "-q", "deps", "check", "docker", "--json")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["proceed"] is False
        assert data["report"]["missing_tools"] == ["docker"]
        assert data["report"]["missing_scripts"] == ["git"]
        assert data["report"]["ok"] is False

    def test_explicit_declaration(self, bootstrap_dir: Path, probe):
        result = _invoke(
            bootstrap_dir, "deps", "check", "--tools", "node:20.0.0:min git", "--optional", "jq",
        )
        assert result.exit_code == 1
        assert "node: need min 20.0.0, have 18.17.0" in result.output
        assert "jq (not installed)" in result.output

    def test_invalid_manifest_requirement(self, bootstrap_dir: Path, probe):
        manifest = bootstrap_dir / "config" / "bootstrap-manifest.json"
        data = json.loads(manifest.read_text())
        data["scripts"]["git"]["requires"] = {"tools": ["git:2.0:gte"]}
        manifest.write_text(json.dumps(data))

        result = _invoke(bootstrap_dir, "deps", "check", "git")
        assert result.exit_code == 1
        assert "Invalid requirements in manifest" in result.output
        assert "'gte'" in result.output

    def test_needs_target(self, bootstrap_dir: Path, probe):
        result = _invoke(bootstrap_dir, "deps", "check")
        assert result.exit_code == 2

    def test_bad_tool_spec(self, bootstrap_dir: Path, probe):
        result = _invoke(bootstrap_dir, "deps", "check", "--tools", "node:18:newer")
        assert result.exit_code == 2
        assert "Unknown comparison mode" in result.output

    def test_missing_manifest(self, tmp_path: Path, probe):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = _invoke(empty, "deps", "check", "git")
        assert result.exit_code == 1
        assert "Manifest file not found" in result.output

    def test_install_manual_only(self, bootstrap_dir: Path, probe):
        result = _invoke(bootstrap_dir, "deps", "check", "--tools", "kubectl", "--install", "--yes")
        assert result.exit_code == 1
        assert "kubectl must be installed manually" in result.output
        assert "kubernetes.io" in result.output

    def test_install_declined(self, bootstrap_dir: Path, probe):
        result = CliRunner().invoke(
            cli,
            ["--bootstrap-dir", str(bootstrap_dir), "deps", "check", "--tools", "jq", "--install"],
            input="n\n",
        )
        assert result.exit_code == 1
        assert "Install missing dependencies now?" in result.output

    def test_install_with_yes(self, bootstrap_dir: Path, probe, monkeypatch):
        commands = []

        def fake_run(cmd, **kwargs):
            commands.append(cmd)
            if "install" in cmd:
                probe.installed["jq"] = "1.7.1"
            return {"ok": True, "stdout": ""}

        monkeypatch.setattr("bootbuild.core.services.install_orchestrator.run_command", fake_run)
        monkeypatch.setattr(
            "bootbuild.core.services.install_orchestrator.shutil.which",
            lambda name: "/usr/bin/apt-get" if name == "apt-get" else None,
        )

        result = _invoke(bootstrap_dir, "deps", "check", "--tools", "jq", "--install", "--yes")
        assert result.exit_code == 0
        assert commands == [["apt-get", "update"], ["apt-get", "install", "-y", "jq"]]
        assert "All dependencies satisfied" in result.output


class TestManifestCommands:
    """Tests for `manifest status|stats|validate|clear`."""

    def test_status_not_cached(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "manifest", "status")
        assert result.exit_code == 0
        assert "not cached" in result.output

    def test_stats_then_status(self, bootstrap_dir: Path):
        stats = _invoke(bootstrap_dir, "-q", "manifest", "stats", "--json")
        assert stats.exit_code == 0
        assert json.loads(stats.output)["profiles"] == 2

        status = _invoke(bootstrap_dir, "-q", "manifest", "status", "--json")
        data = json.loads(status.output)
        assert data["exists"] is True
        assert data["valid"] is True

    def test_validate(self, bootstrap_dir: Path):
        _invoke(bootstrap_dir, "manifest", "stats")
        result = _invoke(bootstrap_dir, "manifest", "validate")
        assert result.exit_code == 0
        assert "Cache JSON is valid" in result.output

    def test_validate_reports_dangling_reference(self, bootstrap_dir: Path):
        manifest = bootstrap_dir / "config" / "bootstrap-manifest.json"
        data = json.loads(manifest.read_text())
        data["profiles"]["broken"] = ["ghost"]
        manifest.write_text(json.dumps(data))

        result = _invoke(bootstrap_dir, "-q", "manifest", "validate", "--json")
        assert result.exit_code == 0
        assert json.loads(result.output)["warnings"] == [
            "Profile 'broken' references unknown script 'ghost'",
        ]

    def test_clear(self, bootstrap_dir: Path):
        _invoke(bootstrap_dir, "manifest", "stats")
        assert (bootstrap_dir / ".cache" / "manifest-cache.json").is_file()
        result = _invoke(bootstrap_dir, "manifest", "clear")
        assert result.exit_code == 0
        assert not (bootstrap_dir / ".cache" / "manifest-cache.json").exists()


class TestScriptsCommands:
    """Tests for `scripts list|show|path|missing`."""

    def test_list(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "scripts", "list")
        assert result.exit_code == 0
        assert "Phase 1: Foundation" in result.output
        assert "docker" in result.output
        assert "secrets" not in result.output

    def test_list_phase_json(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "-q", "scripts", "list", "--phase", "1", "--json")
        rows = json.loads(result.output)
        assert [(r["number"], r["id"]) for r in rows] == [(1, "git"), (2, "packages")]

    def test_list_profile(self, bootstrap_dir: Path):
        CompletionMarkers(bootstrap_dir / "logs").mark_complete("git")
        result = _invoke(bootstrap_dir, "-q", "scripts", "list", "--profile", "minimal", "--json")
        rows = json.loads(result.output)
        assert [r["id"] for r in rows] == ["git", "packages"]
        assert rows[0]["completed"] is True

    def test_list_unknown_profile(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "scripts", "list", "--profile", "nope")
        assert result.exit_code == 1

    def test_show(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "scripts", "show", "docker")
        assert result.exit_code == 0
        assert "docker:20.10.0:min" in result.output
        assert "Depends:  git" in result.output

    def test_show_unknown(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "scripts", "show", "ghost")
        assert result.exit_code == 1

    def test_path(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "scripts", "path", "git")
        assert result.exit_code == 0
        assert result.output.strip().endswith("templates/scripts/bootstrap-git.sh")

    def test_path_missing_file(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "scripts", "path", "linting")
        assert result.exit_code == 1
        assert "bootstrap-linting.sh" in result.output

    def test_missing_uses_session_cache(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "-q", "scripts", "missing", "--json")
        assert json.loads(result.output) == {"missing": ["linting"], "new": ["extra"]}
        assert (bootstrap_dir / ".cache" / "session" / "script-scan.json").is_file()

        (bootstrap_dir / "templates" / "scripts" / "bootstrap-linting.sh").write_text("")
        cached = _invoke(bootstrap_dir, "-q", "scripts", "missing", "--json")
        assert json.loads(cached.output)["missing"] == ["linting"]

        fresh = _invoke(bootstrap_dir, "-q", "scripts", "missing", "--refresh", "--json")
        assert json.loads(fresh.output)["missing"] == []


class TestMarkersCommands:
    """Tests for `markers list|mark|clear`."""

    def test_mark_list_clear(self, bootstrap_dir: Path):
        assert "No scripts have completed" in _invoke(bootstrap_dir, "markers", "list").output

        assert _invoke(bootstrap_dir, "markers", "mark", "bootstrap-git").exit_code == 0
        assert (bootstrap_dir / "logs" / ".bootstrap-git.completed").is_file()

        listed = _invoke(bootstrap_dir, "-q", "markers", "list", "--json")
        assert json.loads(listed.output) == ["git"]

        assert "Cleared marker for git" in _invoke(bootstrap_dir, "markers", "clear", "git").output
        assert not (bootstrap_dir / "logs" / ".bootstrap-git.completed").exists()

    def test_clear_all(self, bootstrap_dir: Path):
        _invoke(bootstrap_dir, "markers", "mark", "git")
        _invoke(bootstrap_dir, "markers", "mark", "docker")
        result = _invoke(bootstrap_dir, "markers", "clear", "--all")
        assert "Removed 2 markers" in result.output

    def test_invalid_id(self, bootstrap_dir: Path):
        result = _invoke(bootstrap_dir, "markers", "mark", "../escape")
        assert result.exit_code == 1
