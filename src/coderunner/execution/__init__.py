"""Execution layer — running submissions and classifying what happened."""

from coderunner.execution.buffers import TRUNCATION_MARKER, BoundedBuffer
from coderunner.execution.classifier import OutcomeClassifier, classify
from coderunner.execution.models import (
    ExecutionState,
    Phase,
    RawResult,
    ResourceLimit,
    Submission,
)
from coderunner.execution.outcomes import (
    Outcome,
    ProvisioningFailure,
    ResourceLimitExceeded,
    RuntimeFailure,
    Success,
    Timeout,
)
from coderunner.execution.runner import ExecutionRunner, ExecutionStateMachine, InvalidTransitionError

__all__ = [
    "TRUNCATION_MARKER",
    "BoundedBuffer",
    "ExecutionRunner",
    "ExecutionState",
    "ExecutionStateMachine",
    "InvalidTransitionError",
    "Outcome",
    "OutcomeClassifier",
    "Phase",
    "ProvisioningFailure",
    "RawResult",
    "ResourceLimit",
    "ResourceLimitExceeded",
    "RuntimeFailure",
    "Submission",
    "Success",
    "Timeout",
    "classify",
]
