"""Execution result models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Status(str, Enum):
    """Status of a step, stage or whole pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self not in (Status.PENDING, Status.RUNNING)

    @property
    def is_failure(self) -> bool:
        return self in (Status.FAILED, Status.TIMED_OUT)


# Higher wins when aggregating stage statuses into a pipeline status.
_SEVERITY = {
    Status.SUCCEEDED: 0,
    Status.SKIPPED: 1,
    Status.TIMED_OUT: 2,
    Status.FAILED: 3,
}


def worst_status(statuses: list[Status]) -> Status:
    """Aggregate statuses with Failed > TimedOut > Skipped > Succeeded.

    Non-terminal statuses only matter when nothing has failed: any Running
    entry, or a mix of Pending and finished entries, yields Running. A list
    made only of Pending entries yields Pending.
    """
    if not statuses:
        return Status.SUCCEEDED

    terminal = [s for s in statuses if s.is_terminal]
    pending = [s for s in statuses if not s.is_terminal]

    if any(s.is_failure for s in terminal):
        return max((s for s in terminal if s.is_failure), key=_SEVERITY.__getitem__)
    if pending:
        if all(s == Status.PENDING for s in statuses):
            return Status.PENDING
        return Status.RUNNING
    return max(terminal, key=_SEVERITY.__getitem__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepResult(BaseModel):
    """Result of a single step execution."""

    name: str = ""
    kind: str = ""
    status: Status = Status.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    output: str = Field("", description="stdout and stderr interleaved in arrival order")
    outputs: dict[str, Any] = Field(default_factory=dict, description="Values published for later steps")
    error: str | None = Field(None, description="Error description when the step did not succeed")

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @classmethod
    def success(
        cls,
        outputs: dict[str, Any] | None = None,
        exit_code: int | None = 0,
        stdout: str = "",
        stderr: str = "",
        output: str = "",
    ) -> StepResult:
        """Create a successful result."""
        return cls(
            status=Status.SUCCEEDED,
            outputs=outputs or {},
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            output=output,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
        output: str = "",
    ) -> StepResult:
        """Create a failed result."""
        return cls(
            status=Status.FAILED,
            error=error,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            output=output,
        )

    @classmethod
    def skipped(cls, name: str, kind: str, message: str | None = None) -> StepResult:
        """Create a skipped result for a step that never started."""
        return cls(name=name, kind=kind, status=Status.SKIPPED, error=message)


class StageResult(BaseModel):
    """Result of a stage execution, including every attempt's final step results."""

    name: str
    status: Status = Status.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    attempts: int = 0
    steps: list[StepResult] = Field(default_factory=list)
    message: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def get_step(self, name: str) -> StepResult | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    @classmethod
    def skipped(cls, name: str, message: str | None = None) -> StageResult:
        """Create a skipped result."""
        now = utcnow()
        return cls(name=name, status=Status.SKIPPED, started_at=now, finished_at=now, message=message)


class PipelineResult(BaseModel):
    """Aggregate result of a pipeline run."""

    name: str
    status: Status
    stages: list[StageResult] = Field(default_factory=list)
    outputs: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Outputs published by succeeded steps, keyed by step"
    )
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def get_stage(self, name: str) -> StageResult | None:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    @property
    def exit_code(self) -> int:
        """Process exit code for this result: 1 on Failed/TimedOut, else 0."""
        return 1 if self.status.is_failure else 0
