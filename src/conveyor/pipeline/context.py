"""Pipeline execution context."""

import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

# Branch variables set by common CI hosts, checked in order.
BRANCH_VARIABLES = ("BRANCH_NAME", "GIT_BRANCH", "CI_COMMIT_BRANCH", "GITHUB_REF_NAME")


class ExecutionContext(BaseModel):
    """Shared, run-scoped state passed to every step.

    Steps of a parallel stage may publish outputs concurrently, so all
    writes go through a lock. Reads made by later stages observe every
    write of earlier stages.
    """

    pipeline_name: str = Field(..., description="Name of the running pipeline")
    env: dict[str, str] = Field(default_factory=dict, description="Run environment variables")
    variables: dict[str, str] = Field(default_factory=dict, description="Variables passed with --var")
    working_dir: Path = Field(Path("."), description="Working directory for tool invocations")

    outputs: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Outputs published by completed steps"
    )
    current_stage: str | None = None
    running_steps: set[str] = Field(default_factory=set)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def branch(self) -> str | None:
        """Branch being built, taken from the usual CI variables."""
        for key in BRANCH_VARIABLES:
            value = self.env.get(key)
            if value:
                return value.removeprefix("origin/")
        return None

    def publish(self, step_name: str, outputs: dict[str, Any]) -> None:
        """Store outputs from a step for consumption by later steps."""
        with self._lock:
            self.outputs.setdefault(step_name, {}).update(outputs)

    def get_output(self, step_name: str, key: str | None = None) -> Any:
        """Retrieve a published output, or all outputs of a step when key is None."""
        with self._lock:
            values = self.outputs.get(step_name)
            if values is None:
                return None
            if key is None:
                return dict(values)
            return values.get(key)

    def snapshot_outputs(self) -> dict[str, dict[str, Any]]:
        """Copy of every published output, keyed by step."""
        with self._lock:
            return {name: dict(values) for name, values in self.outputs.items()}

    def enter_stage(self, stage_name: str | None) -> None:
        with self._lock:
            self.current_stage = stage_name
            self.running_steps.clear()

    def step_started(self, step_name: str) -> None:
        with self._lock:
            self.running_steps.add(step_name)

    def step_finished(self, step_name: str) -> None:
        with self._lock:
            self.running_steps.discard(step_name)
