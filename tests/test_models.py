"""Tests for pipeline and result models."""

import pytest
from conftest import custom, pipeline, stage
from pydantic import ValidationError

from conveyor.models.pipeline import ConcurrencyMode, Stage, Step, StepKind, WhenCondition
from conveyor.models.results import StageResult, Status, StepResult, worst_status
from conveyor.pipeline.context import ExecutionContext


def _context(**env: str) -> ExecutionContext:
    return ExecutionContext(pipeline_name="demo", env=env)


class TestWhenCondition:
    def test_empty_is_true(self) -> None:
        assert WhenCondition().evaluate(_context())

    def test_branch_glob(self) -> None:
        cond = WhenCondition(branch="release/*")
        assert cond.evaluate(_context(BRANCH_NAME="release/2.0"))
        assert not cond.evaluate(_context(BRANCH_NAME="main"))

    def test_branch_missing(self) -> None:
        assert not WhenCondition(branch="main").evaluate(_context())

    def test_origin_prefix_stripped(self) -> None:
        assert WhenCondition(branch="main").evaluate(_context(GIT_BRANCH="origin/main"))

    def test_environment_must_all_match(self) -> None:
        cond = WhenCondition(environment={"DEPLOY": "true", "REGION": "eu"})
        assert cond.evaluate(_context(DEPLOY="true", REGION="eu"))
        assert not cond.evaluate(_context(DEPLOY="true", REGION="us"))

    def test_not_alias(self) -> None:
        cond = WhenCondition.model_validate({"branch": "main", "not": True})
        assert cond.evaluate(_context(BRANCH_NAME="dev"))
        assert not cond.evaluate(_context(BRANCH_NAME="main"))


class TestDefinitionValidation:
    def test_defaults(self) -> None:
        s = stage("Build", custom("compile", "make"))
        assert s.mode == ConcurrencyMode.SEQUENTIAL
        assert s.retry == 0
        assert s.timeout is None
        assert not s.continue_on_error

    def test_camel_case_aliases(self) -> None:
        step = Step.model_validate(
            {"name": "x", "kind": "dockerBuild", "config": {"image": "app"}, "continueOnError": True}
        )
        assert step.kind == StepKind.DOCKER_BUILD
        assert step.continue_on_error

    def test_duplicate_stage_names(self) -> None:
        with pytest.raises(ValidationError, match="duplicate stage name"):
            pipeline(stage("Build", custom("a", "make")), stage("Build", custom("b", "make")))

    def test_duplicate_step_names_across_stages(self) -> None:
        with pytest.raises(ValidationError, match="duplicate step name"):
            pipeline(stage("Build", custom("a", "make")), stage("Test", custom("a", "make")))

    def test_empty_stage_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Stage(name="Empty", steps=[])

    def test_negative_retry_rejected(self) -> None:
        with pytest.raises(ValidationError):
            stage("Build", custom("a", "make"), retry=-1)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Stage.model_validate(
                {
                    "name": "Build",
                    "steps": [{"name": "a", "kind": "custom", "config": {"command": "make"}}],
                    "parallelism": 3,
                }
            )

    def test_immutable(self) -> None:
        s = stage("Build", custom("a", "make"))
        with pytest.raises(ValidationError):
            s.retry = 3

    def test_config_value_types_preserved(self) -> None:
        step = Step(
            name="img",
            kind=StepKind.DOCKER_BUILD,
            config={"image": "app", "push": True, "buildArgs": ["A=1"]},
        )
        assert step.config["push"] is True
        assert step.config["buildArgs"] == ["A=1"]


class TestWorstStatus:
    def test_failed_beats_everything(self) -> None:
        statuses = [Status.SUCCEEDED, Status.TIMED_OUT, Status.FAILED, Status.SKIPPED]
        assert worst_status(statuses) == Status.FAILED

    def test_timed_out_beats_skipped(self) -> None:
        assert worst_status([Status.SKIPPED, Status.TIMED_OUT, Status.SUCCEEDED]) == Status.TIMED_OUT

    def test_skipped_beats_succeeded(self) -> None:
        assert worst_status([Status.SUCCEEDED, Status.SKIPPED]) == Status.SKIPPED

    def test_all_succeeded(self) -> None:
        assert worst_status([Status.SUCCEEDED, Status.SUCCEEDED]) == Status.SUCCEEDED

    def test_partial_run_is_running(self) -> None:
        assert worst_status([Status.SUCCEEDED, Status.PENDING]) == Status.RUNNING
        assert worst_status([Status.RUNNING, Status.PENDING]) == Status.RUNNING

    def test_failure_visible_mid_run(self) -> None:
        assert worst_status([Status.FAILED, Status.PENDING]) == Status.FAILED

    def test_nothing_started(self) -> None:
        assert worst_status([Status.PENDING, Status.PENDING]) == Status.PENDING


class TestResults:
    def test_step_factories(self) -> None:
        ok = StepResult.success(outputs={"image": "app:1"})
        assert ok.status == Status.SUCCEEDED
        assert ok.outputs == {"image": "app:1"}

        bad = StepResult.failure("exit 2", exit_code=2)
        assert bad.status == Status.FAILED
        assert bad.exit_code == 2

    def test_stage_skipped(self) -> None:
        result = StageResult.skipped("Deploy", "when condition not met")
        assert result.status == Status.SKIPPED
        assert result.duration_seconds == 0.0
