"""Shared error types for the sandbox controller.

Only structural problems and configuration problems ever reach a caller of
:meth:`~coderunner.controller.SandboxController.execute` as exceptions.
Backend failures are converted into a ``ProvisioningFailure`` outcome.
"""


class CodeRunnerError(Exception):
    """Base error for all coderunner failures."""


class SubmissionError(CodeRunnerError):
    """A submission was rejected before any sandbox was provisioned."""


class UnknownLanguageError(SubmissionError):
    """The submission names a language with no registered profile."""

    def __init__(self, language: str) -> None:
        self.language = language
        super().__init__(f"Unsupported language: {language!r}")


class InvalidSubmissionError(SubmissionError):
    """The submission is malformed for its language profile."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid submission: {detail}")


class SandboxError(CodeRunnerError):
    """A sandbox backend operation failed (creation, execution, or cleanup)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Sandbox error" + (f": {detail}" if detail else ""))


class ProvisioningError(SandboxError):
    """An isolated execution context could not be acquired."""


class ExecutionError(SandboxError):
    """A command could not be launched or fed inside an acquired context."""


class SettingsError(CodeRunnerError):
    """Raised when the settings file fails parsing or validation."""
