"""Docker build and push steps.

Pushing logs in with the password on stdin, tags the image under the
registry user's namespace, pushes it, and logs out again.
"""

import logging
import re

from conveyor.errors import StepExecutionError
from conveyor.models.pipeline import StepKind
from conveyor.models.results import StepResult
from conveyor.pipeline.base import StepExecutor
from conveyor.pipeline.context import ExecutionContext
from conveyor.pipeline.resolver import ResolvedConfig
from conveyor.tools.adapter import CancelToken
from conveyor.tools.docker import DockerCLI

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_ID = "dockerHubCred"


def credential_env_names(credentials_id: str) -> tuple[str, str]:
    """Environment variable names carrying a username/password credential.

    ``dockerHubCred`` maps to ``DOCKERHUBCRED_USR`` / ``DOCKERHUBCRED_PSW``.
    """
    prefix = re.sub(r"[^A-Za-z0-9]", "_", credentials_id).upper()
    return f"{prefix}_USR", f"{prefix}_PSW"


def _repository(image: str) -> str:
    """Image reference without its tag.

    Only a colon in the last path component starts a tag, so a registry
    port (``localhost:5000/app:1.0``) is kept.
    """
    if ":" in image.rsplit("/", 1)[-1]:
        return image.rsplit(":", 1)[0]
    return image


def _credentials(context: ExecutionContext, credentials_id: str) -> tuple[str, str]:
    user_var, pass_var = credential_env_names(credentials_id)
    username = context.env.get(user_var)
    password = context.env.get(pass_var)
    if not username or not password:
        raise StepExecutionError(
            f"credentials '{credentials_id}' not available (set {user_var} and {pass_var})"
        )
    return username, password


async def push_image(
    docker: DockerCLI,
    image: str,
    credentials_id: str,
    context: ExecutionContext,
    cancel_token: CancelToken,
    logout: bool = True,
) -> StepResult:
    """Log in, tag ``image`` as ``<user>/<image>``, push and log out.

    Images that already carry a repository path (``org/app``) are pushed
    as they are.
    """
    username, password = _credentials(context, credentials_id)
    target = image if "/" in _repository(image) else f"{username}/{image}"

    login = await docker.login(username, password, env=context.env, cancel_token=cancel_token)
    if not login.ok:
        return StepResult.failure(
            "docker login failed", exit_code=login.exit_code, stderr=login.stderr
        )

    stdout, stderr = login.stdout, login.stderr
    try:
        if target != image:
            tagged = await docker.tag(image, target, env=context.env, cancel_token=cancel_token)
            stdout, stderr = stdout + tagged.stdout, stderr + tagged.stderr
            if not tagged.ok:
                return StepResult.failure(
                    f"docker tag {image} {target} failed",
                    exit_code=tagged.exit_code,
                    stdout=stdout,
                    stderr=stderr,
                )

        pushed = await docker.push(target, env=context.env, cancel_token=cancel_token)
        stdout, stderr = stdout + pushed.stdout, stderr + pushed.stderr
        if not pushed.ok:
            return StepResult.failure(
                f"docker push {target} failed",
                exit_code=pushed.exit_code,
                stdout=stdout,
                stderr=stderr,
            )
    finally:
        if logout:
            # Runs even after cancellation so credentials do not linger.
            out = await docker.logout(env=context.env)
            if not out.ok:
                logger.warning(f"docker logout failed: {out.stderr.strip()}")

    logger.info(f"Image pushed successfully: {target}")
    return StepResult.success(outputs={"pushedImage": target}, stdout=stdout, stderr=stderr)


class DockerBuildStep(StepExecutor):
    """Builds an image and optionally pushes it."""

    def __init__(self, docker: DockerCLI) -> None:
        self._docker = docker

    @property
    def kind(self) -> StepKind:
        return StepKind.DOCKER_BUILD

    @property
    def description(self) -> str:
        return "Build a docker image (and optionally push it)"

    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        image = f"{config['image']}:{config['tag']}"
        built = await self._docker.build(
            image,
            context=str(context.working_dir / config["context"]),
            dockerfile=str(context.working_dir / config["dockerfile"]),
            build_args=[str(a) for a in config["buildArgs"]],
            env=context.env,
            cancel_token=cancel_token,
        )
        if not built.ok:
            return self._from_tool(built)

        outputs = {"image": image, "tag": config["tag"]}
        if not config["push"]:
            return self._from_tool(built, outputs=outputs)

        pushed = await push_image(
            self._docker,
            image,
            config["credentialsId"] or DEFAULT_CREDENTIALS_ID,
            context,
            cancel_token,
        )
        pushed.outputs = {**outputs, **pushed.outputs}
        pushed.stdout = built.stdout + pushed.stdout
        pushed.stderr = built.stderr + pushed.stderr
        return pushed


class DockerPushStep(StepExecutor):
    """Pushes an existing local image to the registry."""

    def __init__(self, docker: DockerCLI) -> None:
        self._docker = docker

    @property
    def kind(self) -> StepKind:
        return StepKind.DOCKER_PUSH

    @property
    def description(self) -> str:
        return "Log in, tag and push a docker image"

    async def execute(
        self,
        config: ResolvedConfig,
        context: ExecutionContext,
        cancel_token: CancelToken,
    ) -> StepResult:
        return await push_image(
            self._docker,
            config["image"],
            config["credentialsId"],
            context,
            cancel_token,
            logout=config["logout"],
        )
