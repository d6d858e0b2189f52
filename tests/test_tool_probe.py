"""
Tests for tool probing — version command dispatch and timeouts.
"""

import subprocess
from unittest.mock import patch

import pytest

from bootbuild.core.services.tool_probe import VERSION_COMMANDS, ToolProbe


def _completed(stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr=stderr)


class TestToolProbe:
    """Tests for ToolProbe.version() and which()."""

    @pytest.mark.parametrize("tool,output,expected", [
        ("node", "v18.17.0\n", "18.17.0"),
        ("docker", "Docker version 24.0.7, build afdd53b\n", "24.0.7"),
        ("git", "git version 2.40.1\n", "2.40.1"),
        ("python3", "Python 3.11.4\n", "3.11.4"),
        ("helm", "v3.14.0+g3fc9f4b\n", "3.14.0"),
        ("kubectl", '{"clientVersion": {"gitVersion": "v1.29.1"}}', "1.29.1"),
        ("jq", "jq-1.7.1\n", "1.7.1"),
    ])
    def test_parses_version_output(self, tool, output, expected):
        with patch("bootbuild.core.services.tool_probe.subprocess.run",
                   return_value=_completed(stdout=output)):
            assert ToolProbe().version(tool, timeout=5).version == expected

    def test_version_on_stderr(self):
        with patch("bootbuild.core.services.tool_probe.subprocess.run",
                   return_value=_completed(stderr="Python 3.9.2\n")):
            assert ToolProbe().version("python3", timeout=5).version == "3.9.2"

    def test_timeout(self):
        with patch("bootbuild.core.services.tool_probe.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(cmd="docker", timeout=5)):
            probe = ToolProbe().version("docker", timeout=5)
        assert probe.version is None
        assert probe.timed_out is True

    def test_os_error(self):
        with patch("bootbuild.core.services.tool_probe.subprocess.run",
                   side_effect=PermissionError("denied")):
            probe = ToolProbe().version("git", timeout=5)
        assert probe.version is None
        assert probe.error == "denied"

    def test_unknown_tool(self):
        with patch("bootbuild.core.services.tool_probe.subprocess.run") as mock_run:
            probe = ToolProbe().version("frobnicate", timeout=5)
        assert probe.version is None
        mock_run.assert_not_called()

    def test_no_match(self):
        with patch("bootbuild.core.services.tool_probe.subprocess.run",
                   return_value=_completed(stdout="weird output")):
            assert ToolProbe().version("git", timeout=5).version is None

    def test_command_override(self):
        with patch("bootbuild.core.services.tool_probe.subprocess.run",
                   return_value=_completed(stdout="Docker version 25.0.0")) as mock_run:
            ToolProbe().version("docker", timeout=3, command="/opt/docker/bin/docker")
        assert mock_run.call_args[0][0] == ["/opt/docker/bin/docker", "--version"]
        assert mock_run.call_args[1]["timeout"] == 3

    def test_which_uses_command(self):
        with patch("bootbuild.core.services.tool_probe.shutil.which",
                   return_value="/usr/bin/nodejs") as mock_which:
            assert ToolProbe().which("node", "nodejs") == "/usr/bin/nodejs"
        mock_which.assert_called_once_with("nodejs")

    def test_dispatch_table_covers_core_tools(self):
        for tool in ("node", "python3", "docker", "git", "kubectl", "helm"):
            assert tool in VERSION_COMMANDS
