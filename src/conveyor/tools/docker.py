"""Docker CLI wrapper."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from conveyor.tools.adapter import CancelToken, ToolAdapter, ToolResult


class DockerCLI:
    """Builds ``docker`` argument lists and runs them through a ToolAdapter."""

    def __init__(self, adapter: ToolAdapter, binary: str = "docker") -> None:
        self._adapter = adapter
        self._binary = binary

    async def build(
        self,
        image: str,
        context: str = ".",
        dockerfile: str = "Dockerfile",
        build_args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        """Build an image from a Dockerfile.

        Args:
            image: Full image reference (name:tag)
            context: Build context directory
            dockerfile: Dockerfile path
            build_args: ``KEY=VALUE`` build arguments
            env: Extra environment for the docker client
            cancel_token: Cancellation token

        Returns:
            ToolResult of ``docker build``
        """
        args = ["build", "-t", image, "-f", dockerfile]
        for build_arg in build_args:
            args += ["--build-arg", str(build_arg)]
        args.append(context)
        return await self._adapter.invoke(self._binary, args, env=env, cancel_token=cancel_token)

    async def login(
        self,
        username: str,
        password: str,
        registry: str | None = None,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        """Log in with the password on stdin so it never appears in argv."""
        args = ["login", "-u", username, "--password-stdin"]
        if registry:
            args.append(registry)
        return await self._adapter.invoke(
            self._binary, args, env=env, cancel_token=cancel_token, stdin=password
        )

    async def tag(
        self,
        source: str,
        target: str,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        return await self._adapter.invoke(
            self._binary, ["tag", source, target], env=env, cancel_token=cancel_token
        )

    async def push(
        self,
        image: str,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        return await self._adapter.invoke(
            self._binary, ["push", image], env=env, cancel_token=cancel_token
        )

    async def logout(
        self,
        registry: str | None = None,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        args = ["logout"]
        if registry:
            args.append(registry)
        return await self._adapter.invoke(self._binary, args, env=env, cancel_token=cancel_token)
