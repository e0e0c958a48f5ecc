"""Kubernetes CLI wrapper."""

from __future__ import annotations

from collections.abc import Mapping

from conveyor.tools.adapter import CancelToken, ToolAdapter, ToolResult


class KubectlCLI:
    """Runs ``kubectl`` commands through a ToolAdapter."""

    def __init__(self, adapter: ToolAdapter, binary: str = "kubectl") -> None:
        self._adapter = adapter
        self._binary = binary

    def _base_args(self, namespace: str, kube_context: str | None) -> list[str]:
        args = ["-n", namespace]
        if kube_context:
            args += ["--context", kube_context]
        return args

    async def set_image(
        self,
        deployment: str,
        container: str,
        image: str,
        namespace: str = "default",
        kube_context: str | None = None,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        """Point a deployment's container at a new image."""
        args = ["set", "image", f"deployment/{deployment}", f"{container}={image}"]
        args += self._base_args(namespace, kube_context)
        return await self._adapter.invoke(self._binary, args, env=env, cancel_token=cancel_token)

    async def rollout_status(
        self,
        deployment: str,
        namespace: str = "default",
        timeout_seconds: int = 300,
        kube_context: str | None = None,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        """Block until the deployment rollout finishes or times out."""
        args = ["rollout", "status", f"deployment/{deployment}", f"--timeout={timeout_seconds}s"]
        args += self._base_args(namespace, kube_context)
        return await self._adapter.invoke(self._binary, args, env=env, cancel_token=cancel_token)
