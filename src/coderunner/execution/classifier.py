"""OutcomeClassifier — maps a :class:`RawResult` to exactly one outcome.

Pure logic, no I/O.  Resolution order:

1. ``TIMED_OUT`` → :class:`Timeout`.
2. Any detected resource breach → :class:`ResourceLimitExceeded`.
3. ``COMPLETED`` with exit status 0 → :class:`Success`.
4. Everything else → :class:`RuntimeFailure`.
"""

from __future__ import annotations

from coderunner.execution.models import ExecutionState, RawResult
from coderunner.execution.outcomes import (
    Outcome,
    ResourceLimitExceeded,
    RuntimeFailure,
    Success,
    Timeout,
)


class OutcomeClassifier:
    """Classify raw execution results."""

    def classify(self, raw: RawResult) -> Outcome:
        """Return the canonical outcome for *raw*."""
        if raw.state == ExecutionState.TIMED_OUT:
            return Timeout(
                elapsed=raw.elapsed,
                limit=raw.timeout,
                phase=raw.phase,
                stdout=raw.stdout,
                stderr=raw.stderr,
            )

        if raw.limit_breach is not None:
            return ResourceLimitExceeded(
                limit=raw.limit_breach,
                elapsed=raw.elapsed,
                phase=raw.phase,
                stdout=raw.stdout,
                stderr=raw.stderr,
            )

        if raw.state == ExecutionState.COMPLETED and raw.exit_code == 0 and raw.signal is None:
            return Success(
                stdout=raw.stdout,
                stderr=raw.stderr,
                exit_code=0,
                stdout_truncated=raw.stdout_truncated,
                stderr_truncated=raw.stderr_truncated,
                elapsed=raw.elapsed,
            )

        return RuntimeFailure(
            exit_code=raw.exit_code,
            signal=raw.signal,
            stdout=raw.stdout,
            stderr=raw.stderr,
            phase=raw.phase,
            stdout_truncated=raw.stdout_truncated,
            stderr_truncated=raw.stderr_truncated,
            elapsed=raw.elapsed,
        )


def classify(raw: RawResult) -> Outcome:
    """Module-level shortcut for :meth:`OutcomeClassifier.classify`."""
    return OutcomeClassifier().classify(raw)
