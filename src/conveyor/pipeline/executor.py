"""Pipeline executor for running stages in declared order."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections.abc import Mapping

from conveyor.config import Settings, settings as default_settings
from conveyor.errors import StageTimeoutError, StepExecutionError
from conveyor.models.events import PipelineFinished, StageFinished, StageStarted
from conveyor.models.pipeline import ConcurrencyMode, PipelineDefinition, Stage, Step
from conveyor.models.results import PipelineResult, StageResult, Status, StepResult, utcnow
from conveyor.notify.dispatcher import NotifierDispatcher
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.registry import StepRegistry
from conveyor.pipeline.resolver import ParameterResolver, ResolvedConfig
from conveyor.pipeline.templating import expand_config
from conveyor.pipeline.tracker import StateTracker
from conveyor.tools.adapter import CancelToken

logger = logging.getLogger(__name__)


class _Run:
    """State owned by one call to ``PipelineExecutor.run``."""

    def __init__(self, tracker: StateTracker, max_workers: int) -> None:
        self.id = uuid.uuid4().hex
        self.tracker = tracker
        self.token = CancelToken()
        self.workers = asyncio.Semaphore(max(1, max_workers))


class _Attempt:
    """Bookkeeping for one attempt of one stage."""

    def __init__(self, stage: Stage, run: _Run) -> None:
        self.stage = stage
        self.run = run
        self.token = run.token.child()
        self.results: dict[str, StepResult] = {}
        self.in_flight: set[str] = set()
        self.timed_out: set[str] | None = None  # steps in flight when the timeout hit


class PipelineExecutor:
    """Runs pipeline definitions stage by stage.

    Stages run in declared order. Sequential stages run their steps one at a
    time; parallel stages fan out to concurrent tasks bounded by the worker
    pool and fan in before the next stage starts. Step failures never escape
    ``run``: they are recorded on the StepResult. Only configuration problems
    found before execution are raised.
    """

    def __init__(
        self,
        registry: StepRegistry,
        resolver: ParameterResolver | None = None,
        notifier: NotifierDispatcher | None = None,
        config: Settings | None = None,
    ) -> None:
        self._registry = registry
        self._resolver = resolver or ParameterResolver()
        self._notifier = notifier or NotifierDispatcher()
        self._config = config or default_settings
        self._runs: dict[str, _Run] = {}
        self._tracker: StateTracker | None = None

    @property
    def notifier(self) -> NotifierDispatcher:
        return self._notifier

    @property
    def tracker(self) -> StateTracker | None:
        """Tracker of the most recently started run, for live status."""
        return self._tracker

    def validate(self, definition: PipelineDefinition) -> dict[str, ResolvedConfig]:
        """Resolve every step configuration of a definition.

        Returns:
            Mapping of step name to resolved configuration

        Raises:
            StepNotFoundError: If a step kind has no registered executor
            ConfigError: If a step configuration is invalid
        """
        resolved: dict[str, ResolvedConfig] = {}
        for _, step in definition.iter_steps():
            self._registry.lookup(step.kind)
            resolved[step.name] = self._resolver.resolve(step.kind, step.config, step_name=step.name)
        return resolved

    def abort(self, reason: str = "aborted") -> bool:
        """Request cancellation of every run in progress on this executor.

        Returns:
            True if at least one run was in progress
        """
        runs = list(self._runs.values())
        if not runs:
            return False
        logger.warning(f"Abort requested: {reason} ({len(runs)} run(s))")
        for run in runs:
            run.token.cancel(reason)
        return True

    async def run(
        self,
        definition: PipelineDefinition,
        variables: Mapping[str, str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> PipelineResult:
        """Execute a pipeline.

        Args:
            definition: Pipeline to run
            variables: ``--var`` values; also exported to the environment
            env: Base environment (defaults to the current process environment)

        Returns:
            Final PipelineResult

        Raises:
            ConfigError: If any step configuration is invalid (nothing runs)
            StepNotFoundError: If any step kind is not registered (nothing runs)
        """
        resolved = self.validate(definition)
        self._registry.freeze()

        variables = dict(variables or {})
        base_env = dict(os.environ) if env is None else dict(env)
        context = ExecutionContext(
            pipeline_name=definition.name,
            env={**base_env, **definition.options.environment, **variables},
            variables=variables,
            working_dir=self._config.working_dir,
        )
        tracker = StateTracker(definition.name, [s.name for s in definition.stages])
        run = _Run(tracker, self._config.max_workers)
        self._tracker = tracker
        self._runs[run.id] = run

        logger.info(f"Running pipeline '{definition.name}' ({len(definition.stages)} stages, run {run.id})")
        halted: str | None = None
        if definition.trigger is not None and not definition.trigger.evaluate(context):
            logger.info("Trigger condition not met; skipping all stages")
            halted = "trigger condition not met"

        try:
            for stage in definition.stages:
                if halted is None and run.token.cancelled:
                    halted = f"not run: {run.token.reason}"
                if halted is not None:
                    result = StageResult.skipped(stage.name, halted)
                    tracker.record(stage.name, result)
                    self._notifier.notify(
                        StageFinished(pipeline=definition.name, run_id=run.id, result=result)
                    )
                    continue

                result = await self._run_stage(stage, resolved, context, run)
                if result.status.is_failure and not stage.continue_on_error:
                    halted = f"not run: stage '{stage.name}' {result.status.value}"
        finally:
            context.enter_stage(None)
            tracker.finish()
            self._runs.pop(run.id, None)

        summary = tracker.summary()
        summary.outputs = context.snapshot_outputs()
        self._notifier.notify(PipelineFinished(pipeline=definition.name, run_id=run.id, result=summary))
        logger.info(f"Pipeline '{definition.name}' finished: {summary.status.value}")
        return summary

    async def _run_stage(
        self,
        stage: Stage,
        resolved: dict[str, ResolvedConfig],
        context: ExecutionContext,
        run: _Run,
    ) -> StageResult:
        context.enter_stage(stage.name)
        tracker = run.tracker

        if stage.when is not None and not stage.when.evaluate(context):
            logger.info(f"Stage skipped: {stage.name} (when condition not met)")
            result = StageResult.skipped(stage.name, "when condition not met")
            tracker.record(stage.name, result)
            self._notifier.notify(StageFinished(pipeline=context.pipeline_name, run_id=run.id, result=result))
            return result

        started_at = utcnow()
        max_attempts = stage.retry + 1
        result: StageResult | None = None

        for attempt in range(1, max_attempts + 1):
            self._notifier.notify(
                StageStarted(pipeline=context.pipeline_name, run_id=run.id, stage=stage.name, attempt=attempt)
            )
            tracker.record(
                stage.name,
                StageResult(name=stage.name, status=Status.RUNNING, started_at=started_at, attempts=attempt),
            )
            result = await self._run_attempt(stage, resolved, context, run)
            result.started_at = started_at
            result.attempts = attempt

            # Only plain failures are retried; timeouts and aborts are final.
            if result.status != Status.FAILED or run.token.cancelled:
                break
            if attempt < max_attempts:
                logger.warning(
                    f"Stage {stage.name} failed (attempt {attempt}/{max_attempts}), retrying: {result.message}"
                )

        assert result is not None
        for step_result in result.steps:
            if step_result.status == Status.SUCCEEDED and step_result.outputs:
                context.publish(step_result.name, step_result.outputs)

        tracker.record(stage.name, result)
        self._notifier.notify(StageFinished(pipeline=context.pipeline_name, run_id=run.id, result=result))
        if result.status == Status.SUCCEEDED:
            logger.info(f"Stage completed: {stage.name}")
        else:
            logger.error(f"Stage {result.status.value}: {stage.name} - {result.message}")
        return result

    async def _run_attempt(
        self,
        stage: Stage,
        resolved: dict[str, ResolvedConfig],
        context: ExecutionContext,
        run: _Run,
    ) -> StageResult:
        attempt = _Attempt(stage, run)
        timeout = stage.timeout if stage.timeout is not None else self._config.default_stage_timeout

        if timeout is None:
            await self._run_steps(attempt, resolved, context, run.tracker)
        else:
            await self._run_with_timeout(attempt, timeout, resolved, context, run.tracker)

        return self._finalize_attempt(attempt)

    async def _run_with_timeout(
        self,
        attempt: _Attempt,
        timeout: float,
        resolved: dict[str, ResolvedConfig],
        context: ExecutionContext,
        tracker: StateTracker,
    ) -> None:
        stage = attempt.stage
        body = asyncio.create_task(self._run_steps(attempt, resolved, context, tracker))
        try:
            done, _ = await asyncio.wait({body}, timeout=timeout)
            if body in done:
                body.result()
                return

            attempt.timed_out = set(attempt.in_flight)
            logger.warning(
                f"Stage {stage.name} timed out after {timeout}s; cancelling {len(attempt.timed_out)} step(s)"
            )
            attempt.token.cancel(str(StageTimeoutError(stage.name, timeout)))

            done, _ = await asyncio.wait({body}, timeout=self._config.cancel_grace_seconds)
            if body not in done:
                logger.error(f"Steps of stage {stage.name} ignored cancellation; cancelling tasks")
                body.cancel()
                await asyncio.gather(body, return_exceptions=True)
        except asyncio.CancelledError:
            attempt.token.cancel("cancelled")
            body.cancel()
            raise

    async def _run_steps(
        self,
        attempt: _Attempt,
        resolved: dict[str, ResolvedConfig],
        context: ExecutionContext,
        tracker: StateTracker,
    ) -> None:
        stage = attempt.stage
        if stage.mode == ConcurrencyMode.PARALLEL:
            # Fan out, then wait for every sibling regardless of failures.
            await asyncio.gather(
                *(
                    self._run_step(attempt, step, resolved[step.name], context, tracker)
                    for step in stage.steps
                )
            )
            return

        for step in stage.steps:
            if attempt.token.cancelled:
                break
            result = await self._run_step(attempt, step, resolved[step.name], context, tracker)
            if result.status != Status.SUCCEEDED and not step.continue_on_error:
                break

    async def _run_step(
        self,
        attempt: _Attempt,
        step: Step,
        config: ResolvedConfig,
        context: ExecutionContext,
        tracker: StateTracker,
    ) -> StepResult:
        stage_name = attempt.stage.name
        attempt.in_flight.add(step.name)
        try:
            async with attempt.run.workers:
                started_at = utcnow()
                if attempt.token.cancelled:
                    result = StepResult(
                        status=Status.FAILED,
                        error=f"not started: {attempt.token.reason}",
                    )
                else:
                    tracker.record_step(
                        stage_name,
                        StepResult(
                            name=step.name,
                            kind=step.kind.value,
                            status=Status.RUNNING,
                            started_at=started_at,
                        ),
                    )
                    context.step_started(step.name)
                    try:
                        result = await self._execute_step(step, config, context, attempt.token)
                    finally:
                        context.step_finished(step.name)

                result = result.model_copy(
                    update={
                        "name": step.name,
                        "kind": step.kind.value,
                        "started_at": started_at,
                        "finished_at": utcnow(),
                    }
                )
        finally:
            attempt.in_flight.discard(step.name)

        attempt.results[step.name] = result
        tracker.record_step(stage_name, result)
        if result.status == Status.SUCCEEDED:
            logger.info(f"Step succeeded: {stage_name}/{step.name}")
        else:
            logger.warning(f"Step {result.status.value}: {stage_name}/{step.name} - {result.error}")
        return result

    async def _execute_step(
        self,
        step: Step,
        config: ResolvedConfig,
        context: ExecutionContext,
        token: CancelToken,
    ) -> StepResult:
        executor = self._registry.lookup(step.kind)
        try:
            expanded = config.replace(expand_config(config.to_dict(), context))
            return await executor.execute(expanded, context, token)
        except StepExecutionError as e:
            logger.error(f"Step {step.name} failed: {e}")
            return StepResult.failure(str(e), exit_code=e.exit_code)
        except Exception as e:
            logger.exception(f"Step execution error: {step.name}")
            return StepResult.failure(f"{type(e).__name__}: {e}")

    def _finalize_attempt(self, attempt: _Attempt) -> StageResult:
        stage = attempt.stage
        run_token = attempt.run.token
        now = utcnow()
        steps: list[StepResult] = []
        for step in stage.steps:
            result = attempt.results.get(step.name)
            if attempt.timed_out is not None and step.name in attempt.timed_out:
                if result is None or result.status != Status.SUCCEEDED:
                    base = result or StepResult(name=step.name, kind=step.kind.value, started_at=now)
                    result = base.model_copy(
                        update={
                            "status": Status.TIMED_OUT,
                            "error": f"cancelled: {attempt.token.reason}",
                            "finished_at": base.finished_at or now,
                        }
                    )
            elif result is None:
                result = StepResult.skipped(step.name, step.kind.value, "not run")
            steps.append(result)

        if attempt.timed_out is not None:
            status = Status.TIMED_OUT
            message = attempt.token.reason
        elif run_token.cancelled:
            status = Status.FAILED
            message = f"aborted: {run_token.reason}"
        else:
            failed = [
                r.name
                for step, r in zip(stage.steps, steps)
                if r.status.is_failure and not step.continue_on_error
            ]
            status = Status.FAILED if failed else Status.SUCCEEDED
            message = f"failed steps: {', '.join(failed)}" if failed else None

        return StageResult(
            name=stage.name,
            status=status,
            finished_at=now,
            steps=steps,
            message=message,
        )
