"""Tests for ExecutionProfile validation and launch plans."""

import pytest
from pydantic import ValidationError

from coderunner.errors import InvalidSubmissionError
from coderunner.profiles.builtin import C, CPP, JAVA, JAVASCRIPT, PYTHON
from coderunner.profiles.models import ExecutionProfile, PrivilegeLevel

_HELLO_JAVA = b"""\
public class Greeter {
    public static void main(String[] args) {
        System.out.println("hi");
    }
}
"""


def _profile(**kwargs) -> ExecutionProfile:
    data = {
        "language": "sh",
        "image": "alpine:3",
        "source_name": "script.sh",
        "run_command": ("sh", "{source}"),
    }
    data.update(kwargs)
    return ExecutionProfile(**data)


class TestExecutionProfile:
    def test_defaults(self) -> None:
        profile = _profile()
        assert profile.memory_limit == 128 * 1024 * 1024
        assert profile.timeout == 10.0
        assert profile.max_processes == 50
        assert profile.privilege == PrivilegeLevel.RESTRICTED
        assert profile.run_as_uid == 1000
        assert profile.workdir == "/app"

    def test_language_and_aliases_are_lowercased(self) -> None:
        profile = _profile(language=" Shell ", aliases=("SH", " Bash ", ""))
        assert profile.language == "shell"
        assert profile.aliases == ("sh", "bash")
        assert profile.identifiers == ("shell", "sh", "bash")

    def test_memory_limit_accepts_size_strings(self) -> None:
        assert _profile(memory_limit="64m").memory_limit == 64 * 1024 * 1024

    def test_frozen(self) -> None:
        profile = _profile()
        with pytest.raises(ValidationError):
            profile.timeout = 99.0  # type: ignore[misc]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"run_as_uid": 0},
            {"run_as_gid": 0},
            {"run_as_user": "root"},
            {"run_command": ()},
            {"memory_limit": 0},
            {"timeout": 0},
            {"source_name": "../escape.sh"},
            {"run_command": ("java", "{main_class}")},
            {"language": "  "},
        ],
    )
    def test_rejects_invalid_envelopes(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            _profile(**overrides)


class TestLaunchPlan:
    def test_interpreted(self) -> None:
        plan = PYTHON.launch_plan(b"print('hi')\n")
        assert plan.source_name == "code.py"
        assert plan.compile_command is None
        assert plan.run_command == ["python3", "code.py"]

    def test_compiled(self) -> None:
        plan = C.launch_plan(b"int main(void) { return 0; }\n")
        assert plan.compile_command == ["gcc", "code.c", "-o", "program", "-std=c11"]
        assert plan.run_command == ["./program"]

    def test_java_uses_public_class_name(self) -> None:
        plan = JAVA.launch_plan(_HELLO_JAVA)
        assert plan.source_name == "Greeter.java"
        assert plan.compile_command == ["javac", "Greeter.java"]
        assert plan.run_command == ["java", "-cp", ".", "Greeter"]

    def test_java_final_class(self) -> None:
        plan = JAVA.launch_plan(b"public final class Main { }")
        assert plan.source_name == "Main.java"

    def test_java_without_public_class(self) -> None:
        with pytest.raises(InvalidSubmissionError, match="Java code must contain a public class"):
            JAVA.launch_plan(b"class Hidden { }")

    @pytest.mark.parametrize("source", [b"", b"   \n\t"])
    def test_empty_source(self, source: bytes) -> None:
        with pytest.raises(InvalidSubmissionError, match="source is empty"):
            PYTHON.launch_plan(source)


class TestBuiltinProfiles:
    def test_all_non_root(self) -> None:
        for profile in (JAVA, C, CPP, PYTHON, JAVASCRIPT):
            assert profile.run_as_uid > 0
            assert profile.run_as_gid > 0
            assert profile.run_as_user != "root"

    def test_java_envelope(self) -> None:
        assert JAVA.memory_limit == 256 * 1024 * 1024
        assert "JAVA_TOOL_OPTIONS" in dict(JAVA.env)
        assert not JAVA.limit_address_space

    def test_env_cannot_be_mutated_in_place(self) -> None:
        with pytest.raises(TypeError):
            JAVA.env["JAVA_TOOL_OPTIONS"] = "-Xmx4g"  # type: ignore[index]
        assert dict(JAVA.env)["JAVA_TOOL_OPTIONS"] == "-Xmx128m -Xms32m"

    def test_env_dumps_as_mapping(self) -> None:
        assert PYTHON.model_dump(mode="json")["env"] == {
            "PYTHONUNBUFFERED": "1",
            "PYTHONDONTWRITEBYTECODE": "1",
        }

    def test_aliases(self) -> None:
        assert "c++" in CPP.aliases
        assert "py" in PYTHON.aliases
        assert "js" in JAVASCRIPT.aliases
