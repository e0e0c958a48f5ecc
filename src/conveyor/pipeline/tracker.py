"""Per-run stage and step status tracking."""

from __future__ import annotations

import threading
from datetime import datetime

from conveyor.models.results import PipelineResult, StageResult, Status, StepResult, utcnow, worst_status


class StateTracker:
    """Append-only record of stage results for one pipeline run.

    Records are deep copies taken under a lock, so ``summary()`` never sees
    a partially updated result even while parallel steps report in.
    """

    def __init__(self, pipeline_name: str, stage_names: list[str]) -> None:
        self._pipeline_name = pipeline_name
        self._stage_names = list(stage_names)
        self._lock = threading.Lock()
        self._log: list[tuple[str, StageResult]] = []
        self._latest: dict[str, StageResult] = {}
        self._started_at: datetime = utcnow()
        self._finished_at: datetime | None = None

    def record(self, stage_name: str, result: StageResult) -> None:
        """Append a stage result. The latest record for a stage wins."""
        if stage_name not in self._stage_names:
            raise KeyError(f"Unknown stage: {stage_name}")
        snapshot = result.model_copy(deep=True)
        with self._lock:
            self._log.append((stage_name, snapshot))
            self._latest[stage_name] = snapshot

    def record_step(self, stage_name: str, step: StepResult) -> None:
        """Append a step update to the stage's latest record."""
        if stage_name not in self._stage_names:
            raise KeyError(f"Unknown stage: {stage_name}")
        step_snapshot = step.model_copy(deep=True)
        with self._lock:
            current = self._latest.get(stage_name)
            if current is None:
                current = StageResult(name=stage_name, status=Status.RUNNING, started_at=utcnow())
            steps = [s for s in current.steps if s.name != step.name] + [step_snapshot]
            updated = current.model_copy(update={"steps": steps}, deep=True)
            self._log.append((stage_name, updated))
            self._latest[stage_name] = updated

    def finish(self) -> None:
        with self._lock:
            self._finished_at = utcnow()

    def history(self, stage_name: str | None = None) -> list[tuple[str, StageResult]]:
        """All records in arrival order, optionally for one stage."""
        with self._lock:
            return [
                (name, result.model_copy(deep=True))
                for name, result in self._log
                if stage_name is None or name == stage_name
            ]

    def get(self, stage_name: str) -> StageResult | None:
        with self._lock:
            result = self._latest.get(stage_name)
            return result.model_copy(deep=True) if result else None

    def summary(self) -> PipelineResult:
        """Snapshot of the run with stages in declared order.

        Stages without a record are reported as Pending.
        """
        with self._lock:
            stages = [
                self._latest[name].model_copy(deep=True)
                if name in self._latest
                else StageResult(name=name, status=Status.PENDING)
                for name in self._stage_names
            ]
            finished_at = self._finished_at

        return PipelineResult(
            name=self._pipeline_name,
            status=worst_status([s.status for s in stages]),
            stages=stages,
            started_at=self._started_at,
            finished_at=finished_at,
        )
