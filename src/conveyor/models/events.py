"""Pipeline lifecycle events delivered to notifier sinks."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Union

from pydantic import BaseModel, Field

from conveyor.models.results import PipelineResult, StageResult, Status, utcnow


class _Event(BaseModel):
    pipeline: str
    run_id: str = Field("", description="Identifies one run of the pipeline")
    timestamp: datetime = Field(default_factory=utcnow)

    def payload(self) -> dict[str, str | None]:
        """JSON body sent to webhook sinks."""
        raise NotImplementedError


class StageStarted(_Event):
    type: Literal["stage_started"] = "stage_started"
    stage: str
    attempt: int = 1

    def payload(self) -> dict[str, str | None]:
        message = f"{self.pipeline}: stage '{self.stage}' started"
        if self.attempt > 1:
            message += f" (attempt {self.attempt})"
        return {
            "stage": self.stage,
            "status": Status.RUNNING.value,
            "message": message,
            "timestamp": self.timestamp.isoformat(),
        }


class StageFinished(_Event):
    type: Literal["stage_finished"] = "stage_finished"
    result: StageResult

    def payload(self) -> dict[str, str | None]:
        message = f"{self.pipeline}: stage '{self.result.name}' {self.result.status.value}"
        if self.result.message:
            message += f" - {self.result.message}"
        return {
            "stage": self.result.name,
            "status": self.result.status.value,
            "message": message,
            "timestamp": self.timestamp.isoformat(),
        }


class PipelineFinished(_Event):
    type: Literal["pipeline_finished"] = "pipeline_finished"
    result: PipelineResult

    def payload(self) -> dict[str, str | None]:
        return {
            "stage": None,
            "status": self.result.status.value,
            "message": f"{self.pipeline}: pipeline {self.result.status.value}",
            "timestamp": self.timestamp.isoformat(),
        }


PipelineEvent = Union[StageStarted, StageFinished, PipelineFinished]
