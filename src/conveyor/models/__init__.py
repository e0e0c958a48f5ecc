"""Data models for Conveyor."""

from conveyor.models.events import PipelineEvent, PipelineFinished, StageFinished, StageStarted
from conveyor.models.pipeline import (
    ConcurrencyMode,
    PipelineDefinition,
    PipelineOptions,
    Stage,
    Step,
    StepKind,
    WhenCondition,
)
from conveyor.models.results import PipelineResult, StageResult, Status, StepResult, worst_status

__all__ = [
    # Definition
    "PipelineDefinition",
    "PipelineOptions",
    "Stage",
    "Step",
    "StepKind",
    "ConcurrencyMode",
    "WhenCondition",
    # Results
    "Status",
    "StepResult",
    "StageResult",
    "PipelineResult",
    "worst_status",
    # Events
    "PipelineEvent",
    "StageStarted",
    "StageFinished",
    "PipelineFinished",
]
