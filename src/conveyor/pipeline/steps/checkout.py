"""Git checkout step."""

from conveyor.models.pipeline import StepKind
from conveyor.models.results import StepResult
from conveyor.pipeline.base import StepExecutor
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.resolver import ResolvedConfig
from conveyor.tools.adapter import CancelToken
from conveyor.tools.git import GitCLI


class CheckoutStep(StepExecutor):
    """Clones a repository and publishes the checked-out commit."""

    def __init__(self, git: GitCLI) -> None:
        self._git = git

    @property
    def kind(self) -> StepKind:
        return StepKind.CHECKOUT

    @property
    def description(self) -> str:
        return "Clone a git repository"

    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        directory = str(context.working_dir / config["directory"])
        clone = await self._git.clone(
            config["repository"],
            directory,
            branch=config["branch"] or None,
            depth=config["depth"] if config["depth"] > 0 else None,
            env=context.env,
            cancel_token=cancel_token,
        )
        if not clone.ok:
            return self._from_tool(clone)

        head = await self._git.rev_parse("HEAD", cwd=directory, env=context.env, cancel_token=cancel_token)
        if not head.ok:
            return self._from_tool(head)

        commit = head.stdout.strip()
        return StepResult.success(
            outputs={"commit": commit, "branch": config["branch"], "directory": directory},
            stdout=clone.stdout + head.stdout,
            stderr=clone.stderr,
        )
