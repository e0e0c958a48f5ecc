"""Kubernetes deploy step."""

from conveyor.models.pipeline import StepKind
from conveyor.models.results import StepResult
from conveyor.pipeline.base import StepExecutor
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.resolver import ResolvedConfig
from conveyor.tools.adapter import CancelToken
from conveyor.tools.kubectl import KubectlCLI


class DeployStep(StepExecutor):
    """Rolls a deployment to a new image with ``kubectl set image``.

    The container name defaults to the deployment name. With
    ``waitForRollout`` the step only succeeds once the rollout completes.
    """

    def __init__(self, kubectl: KubectlCLI) -> None:
        self._kubectl = kubectl

    @property
    def kind(self) -> StepKind:
        return StepKind.DEPLOY

    @property
    def description(self) -> str:
        return "Update a Kubernetes deployment image"

    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        deployment = config["deployment"]
        kube_context = config["kubeContext"] or None

        updated = await self._kubectl.set_image(
            deployment,
            config["container"] or deployment,
            config["image"],
            namespace=config["namespace"],
            kube_context=kube_context,
            env=context.env,
            cancel_token=cancel_token,
        )
        outputs = {"deployment": deployment, "namespace": config["namespace"], "image": config["image"]}
        if not updated.ok or not config["waitForRollout"]:
            return self._from_tool(updated, outputs=outputs)

        rollout = await self._kubectl.rollout_status(
            deployment,
            namespace=config["namespace"],
            timeout_seconds=config["rolloutTimeout"],
            kube_context=kube_context,
            env=context.env,
            cancel_token=cancel_token,
        )
        result = self._from_tool(rollout, outputs=outputs)
        result.stdout = updated.stdout + result.stdout
        result.stderr = updated.stderr + result.stderr
        return result
