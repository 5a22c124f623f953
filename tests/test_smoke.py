"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations


def test_import() -> None:
    import coderunner

    assert coderunner.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from coderunner.cli import main

    assert callable(main)


def test_subpackage_imports() -> None:
    from coderunner.execution import ExecutionRunner, OutcomeClassifier, Submission
    from coderunner.profiles import BUILTIN_PROFILES, ProfileRegistry
    from coderunner.sandbox import DockerProvisioner, IsolationProvisioner, LocalProvisioner

    assert ExecutionRunner is not None
    assert OutcomeClassifier is not None
    assert Submission is not None
    assert ProfileRegistry is not None
    assert len(BUILTIN_PROFILES) == 5
    assert DockerProvisioner is not None
    assert LocalProvisioner is not None
    assert IsolationProvisioner is not None


def test_lazy_import_from_coderunner() -> None:
    import coderunner

    assert coderunner.SandboxController is not None
    assert coderunner.Submission is not None
    assert coderunner.ProfileRegistry is not None


def test_unknown_attribute() -> None:
    import pytest

    import coderunner

    with pytest.raises(AttributeError, match="no attribute"):
        coderunner.DoesNotExist  # noqa: B018
