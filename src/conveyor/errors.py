"""Custom exceptions for Conveyor."""

from enum import Enum


class ConveyorError(Exception):
    """Base exception for Conveyor."""

    pass


class PipelineDefinitionError(ConveyorError):
    """Pipeline definition file is malformed."""

    pass


class ConfigErrorReason(str, Enum):
    """Why a step configuration was rejected."""

    UNKNOWN_KEY = "unknown_key"
    MISSING_REQUIRED = "missing_required"
    TYPE_MISMATCH = "type_mismatch"


class ConfigError(ConveyorError):
    """Step configuration failed validation."""

    def __init__(
        self,
        reason: ConfigErrorReason,
        key: str,
        message: str,
        step: str | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.key = key
        self.step = step

    def __str__(self) -> str:
        base = super().__str__()
        if self.step:
            return f"step '{self.step}': {base}"
        return base


class StepNotFoundError(ConveyorError):
    """No executor is registered for a step kind."""

    pass


class StepExecutionError(ConveyorError):
    """A step could not complete its work."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


class ToolInvocationError(StepExecutionError):
    """External tool could not be spawned (binary missing, permission denied)."""

    pass


class TemplateError(StepExecutionError):
    """A ${...} reference in a step configuration could not be resolved."""

    pass


class StageTimeoutError(ConveyorError):
    """Stage exceeded its configured timeout.

    Used as the cancellation reason for the stage's in-flight steps.
    """

    def __init__(self, stage: str, timeout: float):
        self.stage = stage
        self.timeout = timeout
        super().__init__(f"stage '{stage}' timed out after {timeout}s")
