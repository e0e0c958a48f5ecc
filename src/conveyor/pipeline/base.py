"""Base class for step executors."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from conveyor.models.pipeline import StepKind
from conveyor.models.results import StepResult
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.resolver import ResolvedConfig
from conveyor.tools.adapter import CancelToken, ToolResult


class StepExecutor(ABC):
    """Abstract base class for step executors.

    An executor performs one kind of step (build, deploy, ...). The engine
    resolves the step configuration before calling ``execute`` and fills in
    the step name and timestamps on the returned result.
    """

    @property
    @abstractmethod
    def kind(self) -> StepKind:
        """Step kind handled by this executor."""
        ...

    @property
    def description(self) -> str:
        """Optional description of what this executor does."""
        return ""

    @abstractmethod
    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        """Execute the step.

        Args:
            config: Resolved step configuration
            context: Shared run context
            cancel_token: Set when the stage times out or the run is aborted

        Returns:
            StepResult with status, captured output and published outputs

        Raises:
            StepExecutionError: If the step cannot do its work
        """
        ...

    def _from_tool(
        self,
        result: ToolResult,
        allowed_exit_codes: Sequence[int] = (0,),
        outputs: dict | None = None,
    ) -> StepResult:
        """Helper to turn a tool invocation into a step result."""
        if result.cancelled:
            return StepResult.failure(
                f"{result.command} was cancelled",
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                output=result.output,
            )
        if result.exit_code not in allowed_exit_codes:
            return StepResult.failure(
                f"{result.command} exited with code {result.exit_code}",
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr,
                output=result.output,
            )
        return StepResult.success(
            outputs=outputs,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            output=result.output,
        )
