"""Error taxonomy for stepflow workflow execution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .contracts import StepRun, ToolTrace, WorkflowRun


class StepflowError(Exception):
    """Base class for all stepflow errors."""


class ExecutionError(StepflowError):
    """A step could not produce its output.

    The message is human readable and is stored on the failed step run.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StepValidationError(ExecutionError):
    """Malformed step definition or unusable step input. Never retried."""


class TransientExternalError(ExecutionError):
    """Rate limit, timeout or network failure of an external call."""


class RateLimited(TransientExternalError):
    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ModelTimeout(TransientExternalError):
    pass


class ToolExecutionError(ExecutionError):
    """A tool reported ``success=False``."""

    def __init__(self, message: str, trace: Optional["ToolTrace"] = None) -> None:
        super().__init__(message)
        self.trace = trace


class SchemaValidationError(ExecutionError):
    """Model output does not satisfy the step's declared output schema."""


class InvalidOutput(SchemaValidationError):
    """Model output could not be parsed at all."""

    def __init__(self, message: str, raw_output: Any = None) -> None:
        super().__init__(message)
        self.raw_output = raw_output


class MissingCredential(ExecutionError):
    def __init__(self, model: str) -> None:
        super().__init__(f"API key not found for model: {model}")
        self.model = model


class ToolError(StepflowError):
    """Raised inside tool implementations; the registry turns it into a result."""

    def __init__(
        self, message: str, kind: str = "unknown", retry_after: Optional[float] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.retry_after = retry_after


class WorkflowRunFailed(StepflowError):
    """A run hard-stopped because one of its steps failed."""

    def __init__(self, run: "WorkflowRun", step_run: Optional["StepRun"] = None) -> None:
        super().__init__(run.error_message or f"Workflow run {run.id} failed")
        self.run = run
        self.step_run = step_run


class WorkflowNotFoundError(StepflowError):
    pass


class RunNotFoundError(StepflowError):
    pass


class EvalNotFoundError(StepflowError):
    pass


class InvalidRunStateError(StepflowError):
    pass


class DuplicateWorkflowError(StepflowError):
    pass
