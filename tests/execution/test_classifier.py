"""Tests for OutcomeClassifier."""

import pytest

from coderunner.execution.classifier import OutcomeClassifier, classify
from coderunner.execution.models import ExecutionState, Phase, RawResult, ResourceLimit
from coderunner.execution.outcomes import (
    ResourceLimitExceeded,
    RuntimeFailure,
    Success,
    Timeout,
)


def _raw(**kwargs) -> RawResult:
    data = {"state": ExecutionState.COMPLETED, "exit_code": 0, "elapsed": 0.2, "timeout": 10.0}
    data.update(kwargs)
    return RawResult(**data)


class TestOutcomeClassifier:
    def test_success(self) -> None:
        outcome = OutcomeClassifier().classify(_raw(stdout=b"hello\n"))
        assert isinstance(outcome, Success)
        assert outcome.kind == "success"
        assert outcome.stdout == b"hello\n"
        assert outcome.exit_code == 0
        assert not outcome.truncated

    def test_success_keeps_truncation_flag(self) -> None:
        outcome = classify(_raw(stdout=b"x", stdout_truncated=True))
        assert isinstance(outcome, Success)
        assert outcome.truncated

    def test_nonzero_exit(self) -> None:
        outcome = classify(_raw(exit_code=3, stderr=b"boom"))
        assert isinstance(outcome, RuntimeFailure)
        assert outcome.exit_code == 3
        assert outcome.stderr == b"boom"
        assert outcome.phase == Phase.RUN

    def test_signal(self) -> None:
        outcome = classify(_raw(exit_code=None, signal=11))
        assert isinstance(outcome, RuntimeFailure)
        assert outcome.signal == 11

    def test_compile_failure(self) -> None:
        outcome = classify(_raw(exit_code=1, phase=Phase.COMPILE, stderr=b"error: expected ';'"))
        assert isinstance(outcome, RuntimeFailure)
        assert outcome.phase == Phase.COMPILE

    def test_timeout(self) -> None:
        outcome = classify(
            _raw(state=ExecutionState.TIMED_OUT, exit_code=None, elapsed=2.0, timeout=2.0, forced=True)
        )
        assert isinstance(outcome, Timeout)
        assert outcome.elapsed == 2.0
        assert outcome.limit == 2.0

    def test_timeout_wins_over_breach(self) -> None:
        outcome = classify(
            _raw(state=ExecutionState.TIMED_OUT, exit_code=None, limit_breach=ResourceLimit.MEMORY)
        )
        assert isinstance(outcome, Timeout)

    @pytest.mark.parametrize("limit", list(ResourceLimit))
    def test_breach_while_killed(self, limit: ResourceLimit) -> None:
        outcome = classify(
            _raw(state=ExecutionState.KILLED, exit_code=None, limit_breach=limit, forced=True)
        )
        assert isinstance(outcome, ResourceLimitExceeded)
        assert outcome.limit == limit

    def test_breach_detected_after_exit(self) -> None:
        outcome = classify(_raw(exit_code=1, limit_breach=ResourceLimit.MEMORY, stderr=b"MemoryError"))
        assert isinstance(outcome, ResourceLimitExceeded)
        assert outcome.limit == ResourceLimit.MEMORY

    def test_killed_without_breach_is_failure(self) -> None:
        outcome = classify(_raw(state=ExecutionState.KILLED, exit_code=None, forced=True))
        assert isinstance(outcome, RuntimeFailure)

    def test_deterministic(self) -> None:
        raw = _raw(exit_code=2, stderr=b"x")
        assert classify(raw) == classify(raw)
