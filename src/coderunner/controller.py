"""SandboxController — the single entry point for executing submissions.

Ties the registry, a provisioner, the runner and the classifier together::

    lookup → launch plan → acquire → run → classify → release (always)

Structural problems (unknown language, malformed submission) are raised
before any context is provisioned.  Everything that happens once a
context is requested is reported as an :data:`Outcome`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from coderunner.errors import ExecutionError, ProvisioningError
from coderunner.execution.classifier import OutcomeClassifier
from coderunner.execution.models import Submission
from coderunner.execution.outcomes import Outcome, ProvisioningFailure, ResourceLimitExceeded
from coderunner.execution.runner import ExecutionRunner
from coderunner.profiles.registry import ProfileRegistry
from coderunner.sandbox.provisioner import provisioned
from coderunner.utils.telemetry import (
    ATTR_BACKEND,
    ATTR_CONTEXT_ID,
    ATTR_ELAPSED,
    ATTR_EXIT_CODE,
    ATTR_LANGUAGE,
    ATTR_LIMIT,
    ATTR_OUTCOME,
    ATTR_PHASE,
    ATTR_TIMEOUT,
    ATTR_TRUNCATED,
    get_tracer,
)

if TYPE_CHECKING:
    from opentelemetry.trace import Span

    from coderunner.config.models import ControllerSettings
    from coderunner.sandbox.provisioner import IsolationProvisioner

logger = logging.getLogger(__name__)

_tracer = get_tracer(__name__)


class SandboxController:
    """Execute submissions in disposable, language-specific sandboxes.

    Args:
        registry: Read-only language → profile mapping.
        provisioner: Backend creating and tearing down contexts.
        runner: Optional runner; defaults to one bound to *provisioner*.
        classifier: Optional classifier; defaults to :class:`OutcomeClassifier`.
    """

    def __init__(
        self,
        registry: ProfileRegistry,
        provisioner: IsolationProvisioner,
        *,
        runner: ExecutionRunner | None = None,
        classifier: OutcomeClassifier | None = None,
    ) -> None:
        self._registry = registry
        self._provisioner = provisioner
        self._runner = runner or ExecutionRunner(provisioner)
        self._classifier = classifier or OutcomeClassifier()

    @classmethod
    def from_settings(cls, settings: ControllerSettings) -> SandboxController:
        """Build the registry and the configured backend from *settings*."""
        if settings.telemetry is not None and settings.telemetry.enabled:
            from coderunner.utils.telemetry import configure_telemetry

            configure_telemetry(
                export_to_console=settings.telemetry.export_to_console,
                otlp_endpoint=settings.telemetry.otlp_endpoint,
            )

        registry = ProfileRegistry.from_settings(settings)
        provisioner = build_provisioner(settings)
        runner = ExecutionRunner(provisioner, max_output_bytes=settings.max_output_bytes)
        logger.info("Controller ready (backend=%s)", provisioner.name)
        return cls(registry, provisioner, runner=runner)

    @property
    def registry(self) -> ProfileRegistry:
        return self._registry

    @property
    def provisioner(self) -> IsolationProvisioner:
        return self._provisioner

    async def execute(self, submission: Submission) -> Outcome:
        """Run *submission* in a fresh context and return its outcome.

        Raises:
            UnknownLanguageError: No profile matches ``submission.language``.
            InvalidSubmissionError: The source is malformed for the profile.
        """
        with _tracer.start_as_current_span("coderunner.execute") as span:
            profile = self._registry.lookup(submission.language)
            span.set_attribute(ATTR_LANGUAGE, profile.language)
            span.set_attribute(ATTR_BACKEND, self._provisioner.name)
            span.set_attribute(ATTR_TIMEOUT, submission.effective_timeout(profile.timeout))

            # Validate before spending a context on it.
            profile.launch_plan(submission.source)

            try:
                async with provisioned(self._provisioner, profile) as context:
                    span.set_attribute(ATTR_CONTEXT_ID, context.id)
                    raw = await self._runner.run(context, submission)
            except ProvisioningError as exc:
                logger.warning("Cannot provision %s context: %s", profile.language, exc.detail)
                outcome: Outcome = ProvisioningFailure(reason=exc.detail or str(exc))
                _record(span, outcome)
                return outcome
            except ExecutionError as exc:
                logger.warning("%s execution failed: %s", profile.language, exc.detail)
                outcome = ProvisioningFailure(reason=exc.detail or str(exc))
                _record(span, outcome)
                return outcome

            outcome = self._classifier.classify(raw)
            _record(span, outcome)
            logger.debug(
                "Context %s: %s in %.3fs (%s phase)",
                context.id, outcome.kind, raw.elapsed, raw.phase.value,
            )
            return outcome

    async def run(
        self,
        language: str,
        source: str | bytes,
        *,
        stdin: str | bytes | None = None,
        timeout: float | None = None,
    ) -> Outcome:
        """Convenience wrapper building a :class:`Submission`."""
        submission = Submission(language=language, source=source, stdin=stdin, timeout=timeout)
        return await self.execute(submission)

    async def check_health(self) -> tuple[bool, str]:
        return await self._provisioner.check_health()

    async def close(self) -> None:
        """Release any context the backend still tracks."""
        await self._provisioner.cleanup()


def build_provisioner(settings: ControllerSettings) -> IsolationProvisioner:
    """Instantiate the backend named by ``settings.backend``."""
    if settings.backend == "local":
        from coderunner.sandbox.local_provisioner import LocalProvisioner

        return LocalProvisioner(settings.local)

    from coderunner.sandbox.docker_provisioner import DockerProvisioner

    return DockerProvisioner(settings.docker)


def _record(span: Span, outcome: Outcome) -> None:
    span.set_attribute(ATTR_OUTCOME, outcome.kind)
    if isinstance(outcome, ProvisioningFailure):
        return
    span.set_attribute(ATTR_ELAPSED, outcome.elapsed)
    phase = getattr(outcome, "phase", None)
    if phase is not None:
        span.set_attribute(ATTR_PHASE, phase.value)
    exit_code = getattr(outcome, "exit_code", None)
    if exit_code is not None:
        span.set_attribute(ATTR_EXIT_CODE, exit_code)
    if isinstance(outcome, ResourceLimitExceeded):
        span.set_attribute(ATTR_LIMIT, outcome.limit.value)
    truncated = getattr(outcome, "truncated", None)
    if truncated is not None:
        span.set_attribute(ATTR_TRUNCATED, truncated)
