"""Git CLI wrapper."""

from __future__ import annotations

from collections.abc import Mapping

from conveyor.tools.adapter import CancelToken, ToolAdapter, ToolResult


class GitCLI:
    """Runs ``git`` commands through a ToolAdapter."""

    def __init__(self, adapter: ToolAdapter, binary: str = "git") -> None:
        self._adapter = adapter
        self._binary = binary

    async def clone(
        self,
        repository: str,
        directory: str,
        branch: str | None = None,
        depth: int | None = None,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        args = ["clone"]
        if depth:
            args += ["--depth", str(depth)]
        if branch:
            args += ["--branch", branch]
        args += [repository, directory]
        return await self._adapter.invoke(self._binary, args, env=env, cancel_token=cancel_token)

    async def rev_parse(
        self,
        ref: str = "HEAD",
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ToolResult:
        return await self._adapter.invoke(
            self._binary, ["rev-parse", ref], env=env, cancel_token=cancel_token, cwd=cwd
        )
