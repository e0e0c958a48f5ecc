"""Pipeline definition models."""

from __future__ import annotations

from enum import Enum
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from conveyor.pipeline.context import ExecutionContext

ConfigValue = Union[str, bool, int, list[Any]]


class StepKind(str, Enum):
    """Kind of work a step performs."""

    BUILD = "build"
    TEST = "test"
    CHECKOUT = "checkout"
    DOCKER_BUILD = "dockerBuild"
    DOCKER_PUSH = "dockerPush"
    DEPLOY = "deploy"
    NOTIFY = "notify"
    CUSTOM = "custom"


class ConcurrencyMode(str, Enum):
    """How the steps of a stage are scheduled."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class WhenCondition(_Frozen):
    """Boolean predicate evaluated against the run context.

    All populated clauses must match. An empty condition is always true.
    """

    branch: str | None = Field(None, description="Glob matched against the run branch")
    environment: dict[str, str] = Field(
        default_factory=dict, description="Variables that must have these exact values"
    )
    negate: bool = Field(False, alias="not", description="Invert the result")

    def evaluate(self, context: ExecutionContext) -> bool:
        """Evaluate the condition for the given context."""
        matched = True
        if self.branch is not None:
            branch = context.branch
            matched = branch is not None and fnmatchcase(branch, self.branch)
        if matched:
            for key, expected in self.environment.items():
                if context.env.get(key) != expected:
                    matched = False
                    break
        return not matched if self.negate else matched


class Step(_Frozen):
    """A single unit of work inside a stage."""

    name: str = Field(..., min_length=1)
    kind: StepKind
    config: dict[str, ConfigValue] = Field(default_factory=dict)
    continue_on_error: bool = Field(False, alias="continueOnError")


class Stage(_Frozen):
    """A named group of steps sharing concurrency, timeout and retry policy."""

    name: str = Field(..., min_length=1)
    steps: list[Step] = Field(..., min_length=1)
    mode: ConcurrencyMode = ConcurrencyMode.SEQUENTIAL
    timeout: float | None = Field(None, gt=0, description="Seconds per attempt")
    retry: int = Field(0, ge=0, description="Extra attempts after a failure")
    when: WhenCondition | None = None
    continue_on_error: bool = Field(False, alias="continueOnError")

    @field_validator("steps")
    @classmethod
    def _unique_step_names(cls, steps: list[Step]) -> list[Step]:
        _reject_duplicates([s.name for s in steps], "step")
        return steps


class PipelineOptions(_Frozen):
    """Global options applied to every run of a pipeline."""

    environment: dict[str, str] = Field(default_factory=dict)
    webhooks: list[str] = Field(default_factory=list)


class PipelineDefinition(_Frozen):
    """An ordered, immutable sequence of stages."""

    name: str = Field(..., min_length=1)
    trigger: WhenCondition | None = None
    options: PipelineOptions = Field(default_factory=PipelineOptions)
    stages: list[Stage] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_names(self) -> PipelineDefinition:
        _reject_duplicates([s.name for s in self.stages], "stage")
        # Outputs are published per step name, so names are pipeline-wide.
        _reject_duplicates([step.name for s in self.stages for step in s.steps], "step")
        return self

    def get_stage(self, name: str) -> Stage | None:
        """Get a stage by name."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def iter_steps(self) -> list[tuple[Stage, Step]]:
        """List every (stage, step) pair in declared order."""
        return [(stage, step) for stage in self.stages for step in stage.steps]


def _reject_duplicates(names: list[str], what: str) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ValueError(f"duplicate {what} name: {name!r}")
        seen.add(name)
