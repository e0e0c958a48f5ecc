"""Command-running steps: build, test and custom."""

import logging
import re

from conveyor.errors import StepExecutionError
from conveyor.models.pipeline import StepKind
from conveyor.models.results import StepResult
from conveyor.pipeline.base import StepExecutor
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.resolver import ResolvedConfig
from conveyor.tools.adapter import CancelToken, ToolAdapter

logger = logging.getLogger(__name__)

_OUTPUT_LINE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


def _workdir(context: ExecutionContext, config: ResolvedConfig) -> str:
    return str(context.working_dir / config["workdir"])


def _exit_codes(config: ResolvedConfig) -> list[int]:
    codes = config["allowedExitCodes"]
    if not all(isinstance(c, int) and not isinstance(c, bool) for c in codes):
        raise StepExecutionError(f"allowedExitCodes must list integers, got {codes!r}")
    return codes


def parse_output_lines(stdout: str, names: list[str]) -> dict[str, str]:
    """Collect ``NAME=value`` lines from stdout for the requested names.

    The last occurrence of a name wins.
    """
    wanted = set(names)
    found: dict[str, str] = {}
    for line in stdout.splitlines():
        match = _OUTPUT_LINE.match(line.strip())
        if match and match.group(1) in wanted:
            found[match.group(1)] = match.group(2)
    return found


class ShellStep(StepExecutor):
    """Runs ``command`` through ``sh -c``."""

    def __init__(self, adapter: ToolAdapter, kind: StepKind, shell: str = "sh") -> None:
        if kind not in (StepKind.BUILD, StepKind.TEST):
            raise ValueError(f"ShellStep handles build and test, not {kind.value}")
        self._adapter = adapter
        self._kind = kind
        self._shell = shell

    @property
    def kind(self) -> StepKind:
        return self._kind

    @property
    def description(self) -> str:
        return f"Run a shell command ({self._kind.value})"

    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        result = await self._adapter.invoke(
            self._shell,
            ["-c", config["command"]],
            env=context.env,
            cancel_token=cancel_token,
            cwd=_workdir(context, config),
        )

        if self._kind == StepKind.TEST:
            return self._from_tool(result, allowed_exit_codes=_exit_codes(config))

        outputs = parse_output_lines(result.stdout, config["outputs"])
        missing = [name for name in config["outputs"] if name not in outputs]
        if result.ok and missing:
            logger.warning(f"Build did not print outputs: {', '.join(missing)}")
        return self._from_tool(result, outputs=outputs)


class CustomStep(StepExecutor):
    """Runs an arbitrary executable with an argument list (no shell)."""

    def __init__(self, adapter: ToolAdapter) -> None:
        self._adapter = adapter

    @property
    def kind(self) -> StepKind:
        return StepKind.CUSTOM

    @property
    def description(self) -> str:
        return "Run an executable with explicit arguments"

    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        result = await self._adapter.invoke(
            config["command"],
            [str(a) for a in config["args"]],
            env=context.env,
            cancel_token=cancel_token,
            cwd=_workdir(context, config),
        )
        return self._from_tool(result, allowed_exit_codes=_exit_codes(config))
