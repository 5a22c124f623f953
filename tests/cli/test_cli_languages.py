"""Tests for ``coderunner languages`` CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from click.testing import CliRunner

from coderunner.cli import main

if TYPE_CHECKING:
    from pathlib import Path

_SETTINGS = """\
enabled_languages: [python, java]
profiles:
  python:
    image: mirror.local/python:3.12
"""


class TestLanguagesList:
    def test_list_builtin(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["languages", "list"])

        assert result.exit_code == 0
        for language in ("java", "cpp", "python", "javascript"):
            assert language in result.output

    def test_list_json(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["languages", "list", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert list(data) == ["java", "c", "cpp", "python", "javascript"]
        assert data["java"]["memory_limit"] == 256 * 1024 * 1024
        assert data["python"]["run_command"] == ["python3", "{source}"]

    def test_list_with_config(self, tmp_path: Path) -> None:
        config = tmp_path / "coderunner.yaml"
        config.write_text(_SETTINGS)

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config), "languages", "list", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert list(data) == ["python", "java"]
        assert data["python"]["image"] == "mirror.local/python:3.12"

    def test_invalid_config(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("backend: firecracker\n")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config), "languages", "list"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_invalid_profile_override(self, tmp_path: Path) -> None:
        config = tmp_path / "root.yaml"
        config.write_text("profiles:\n  c:\n    run_as_uid: 0\n")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config), "languages", "list"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestLanguagesShow:
    def test_show_by_alias(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["languages", "show", "c++"])

        assert result.exit_code == 0
        assert "C++" in result.output
        assert "g++" in result.output
        assert "128 MiB" in result.output

    def test_show_java_environment(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["languages", "show", "java"])

        assert result.exit_code == 0
        assert "JAVA_TOOL_OPTIONS" in result.output
        assert "256 MiB" in result.output

    def test_show_unknown(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["languages", "show", "cobol"])

        assert result.exit_code == 1
        assert "Unsupported language" in result.output


class TestMainGroup:
    def test_version(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config_file(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--config", "/nonexistent/coderunner.yaml", "languages", "list"])

        assert result.exit_code != 0
