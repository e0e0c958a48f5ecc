"""Built-in step executors.

Available steps:
- ShellStep: build and test commands run through ``sh -c``
- CustomStep: any executable with explicit arguments
- CheckoutStep: git clone
- DockerBuildStep / DockerPushStep: docker build, login, tag, push
- DeployStep: kubectl set image and rollout status
- NotifyStep: webhook message
"""

from conveyor.config import Settings, settings as default_settings
from conveyor.models.pipeline import StepKind
from conveyor.pipeline.registry import StepRegistry
from conveyor.pipeline.steps.checkout import CheckoutStep
from conveyor.pipeline.steps.deploy import DeployStep
from conveyor.pipeline.steps.docker import DockerBuildStep, DockerPushStep, credential_env_names
from conveyor.pipeline.steps.notify import NotifyStep
from conveyor.pipeline.steps.shell import CustomStep, ShellStep
from conveyor.tools.adapter import ToolAdapter
from conveyor.tools.docker import DockerCLI
from conveyor.tools.git import GitCLI
from conveyor.tools.kubectl import KubectlCLI

__all__ = [
    "ShellStep",
    "CustomStep",
    "CheckoutStep",
    "DockerBuildStep",
    "DockerPushStep",
    "DeployStep",
    "NotifyStep",
    "credential_env_names",
    "default_registry",
]


def default_registry(
    adapter: ToolAdapter | None = None,
    config: Settings | None = None,
) -> StepRegistry:
    """Build a registry with every built-in executor sharing one ToolAdapter."""
    config = config or default_settings
    adapter = adapter or ToolAdapter(kill_grace_seconds=config.kill_grace_seconds)
    docker = DockerCLI(adapter, binary=config.docker_binary)

    registry = StepRegistry()
    registry.register(StepKind.BUILD, ShellStep(adapter, StepKind.BUILD, shell=config.shell_binary))
    registry.register(StepKind.TEST, ShellStep(adapter, StepKind.TEST, shell=config.shell_binary))
    registry.register(StepKind.CUSTOM, CustomStep(adapter))
    registry.register(StepKind.CHECKOUT, CheckoutStep(GitCLI(adapter, binary=config.git_binary)))
    registry.register(StepKind.DOCKER_BUILD, DockerBuildStep(docker))
    registry.register(StepKind.DOCKER_PUSH, DockerPushStep(docker))
    registry.register(StepKind.DEPLOY, DeployStep(KubectlCLI(adapter, binary=config.kubectl_binary)))
    registry.register(
        StepKind.NOTIFY,
        NotifyStep(default_webhook_url=config.webhook_url, timeout=config.webhook_timeout),
    )
    return registry
