"""Uniform subprocess interface for external CLI tools."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from conveyor.errors import ToolInvocationError

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str, str], None]


class CancelToken:
    """Cooperative cancellation signal.

    Cancelling a token also cancels every token created with ``child()``.
    Cancelling twice is a no-op.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._children: list[CancelToken] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)

    async def wait(self) -> None:
        await self._event.wait()

    def child(self) -> CancelToken:
        token = CancelToken()
        self._children.append(token)
        if self.cancelled:
            token.cancel(self.reason or "cancelled")
        return token


@dataclass
class ToolResult:
    """Outcome of one external process invocation."""

    command: str
    args: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    output: str = ""  # stdout and stderr interleaved in arrival order
    cancelled: bool = False
    lines: list[tuple[str, str]] = field(default_factory=list, repr=False)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.cancelled


class ToolAdapter:
    """Spawns external processes and supports cooperative cancellation.

    Each process runs in its own session so cancellation can signal the
    whole process group (e.g. ``sh -c`` and its children). A non-zero exit
    code is returned to the caller, not raised.
    """

    def __init__(self, kill_grace_seconds: float = 5.0) -> None:
        self._kill_grace_seconds = kill_grace_seconds

    async def invoke(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
        cwd: Path | str | None = None,
        stdin: str | None = None,
        on_output: OutputCallback | None = None,
    ) -> ToolResult:
        """Run ``command`` with ``args`` until it exits or is cancelled.

        Args:
            command: Executable name (looked up on PATH) or path
            args: Command arguments
            env: Variables layered over the current process environment
            cancel_token: Token whose cancellation terminates the process
            cwd: Working directory
            stdin: Text written to the process stdin, then closed
            on_output: Called with (stream, line) for every output line

        Returns:
            ToolResult with exit code and captured output

        Raises:
            ToolInvocationError: If the process cannot be spawned
        """
        args = [str(a) for a in args]
        full_env = dict(os.environ)
        if env:
            full_env.update(env)

        if cancel_token is not None and cancel_token.cancelled:
            logger.info(f"Not starting {command}: {cancel_token.reason}")
            return ToolResult(command=command, args=args, exit_code=-1, cancelled=True)

        logger.debug(f"Invoking: {command} {' '.join(args)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=full_env,
                cwd=str(cwd) if cwd is not None else None,
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise ToolInvocationError(f"{command}: executable not found") from e
        except PermissionError as e:
            raise ToolInvocationError(f"{command}: permission denied") from e
        except OSError as e:
            raise ToolInvocationError(f"{command}: failed to start: {e}") from e

        result = ToolResult(command=command, args=args, exit_code=-1)
        collect = asyncio.create_task(self._collect(proc, result, stdin, on_output))
        waiters: set[asyncio.Future] = {collect}
        cancel_wait: asyncio.Task | None = None
        if cancel_token is not None:
            cancel_wait = asyncio.create_task(cancel_token.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            if collect not in done:
                reason = cancel_token.reason if cancel_token else "cancelled"
                logger.info(f"Cancelling {command} (pid {proc.pid}): {reason}")
                result.cancelled = True
                await self._terminate(proc)
                await collect
        except asyncio.CancelledError:
            # Hard cancellation of the calling task still must not leak a process.
            if proc.returncode is None:
                await asyncio.shield(self._terminate(proc))
            collect.cancel()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        result.exit_code = proc.returncode if proc.returncode is not None else -1
        logger.debug(f"{command} exited with {result.exit_code}")
        return result

    async def _collect(
        self,
        proc: asyncio.subprocess.Process,
        result: ToolResult,
        stdin: str | None,
        on_output: OutputCallback | None,
    ) -> None:
        if stdin is not None and proc.stdin is not None:
            proc.stdin.write(stdin.encode())
            try:
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug(f"stdin closed early by {result.command}")
            proc.stdin.close()

        async def pump(stream: asyncio.StreamReader, name: str) -> list[str]:
            captured: list[str] = []
            while True:
                raw = await stream.readline()
                if not raw:
                    break
                line = raw.decode(errors="replace")
                captured.append(line)
                result.lines.append((name, line))
                logger.debug(f"[{result.command} {name}] {line.rstrip()}")
                if on_output:
                    on_output(name, line)
            return captured

        out, err = await asyncio.gather(
            pump(proc.stdout, "stdout"),
            pump(proc.stderr, "stderr"),
        )
        await proc.wait()
        result.stdout = "".join(out)
        result.stderr = "".join(err)
        result.output = "".join(line for _, line in result.lines)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """Send SIGTERM to the process group, then SIGKILL after the grace period."""
        if proc.returncode is not None:
            return
        self._signal_group(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._kill_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"pid {proc.pid} ignored SIGTERM, sending SIGKILL")
            self._signal_group(proc, signal.SIGKILL)
            await proc.wait()

    @staticmethod
    def _signal_group(proc: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        try:
            os.killpg(os.getpgid(proc.pid), sig)
        except ProcessLookupError:
            pass
