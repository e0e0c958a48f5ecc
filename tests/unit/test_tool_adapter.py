"""Unit tests for ToolAdapter and CancelToken."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from conveyor.errors import ToolInvocationError
from conveyor.tools.adapter import CancelToken, ToolAdapter


@pytest.fixture
def adapter() -> ToolAdapter:
    return ToolAdapter(kill_grace_seconds=0.3)


# ---------------------------------------------------------------------------
# CancelToken
# ---------------------------------------------------------------------------

class TestCancelToken:
    @pytest.mark.asyncio
    async def test_cancel_propagates_to_children(self):
        parent = CancelToken()
        child = parent.child()
        grandchild = child.child()

        parent.cancel("stage timed out")

        assert child.cancelled
        assert grandchild.cancelled
        assert grandchild.reason == "stage timed out"

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self):
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    @pytest.mark.asyncio
    async def test_child_of_cancelled_parent(self):
        parent = CancelToken()
        parent.cancel("aborted")
        assert parent.child().cancelled

    @pytest.mark.asyncio
    async def test_child_does_not_cancel_parent(self):
        parent = CancelToken()
        parent.child().cancel()
        assert not parent.cancelled


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------

class TestInvoke:
    @pytest.mark.asyncio
    async def test_captures_output(self, adapter):
        result = await adapter.invoke("sh", ["-c", "echo out; echo err >&2"])

        assert result.ok
        assert result.exit_code == 0
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert sorted(result.output.splitlines()) == ["err", "out"]

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_returned(self, adapter):
        result = await adapter.invoke("sh", ["-c", "exit 3"])

        assert result.exit_code == 3
        assert not result.ok
        assert not result.cancelled

    @pytest.mark.asyncio
    async def test_missing_executable(self, adapter):
        with pytest.raises(ToolInvocationError, match="not found"):
            await adapter.invoke("conveyor-no-such-binary")

    @pytest.mark.asyncio
    async def test_stdin(self, adapter):
        result = await adapter.invoke("cat", stdin="s3cret")
        assert result.stdout == "s3cret"

    @pytest.mark.asyncio
    async def test_env_is_layered(self, adapter, monkeypatch):
        monkeypatch.setenv("CONVEYOR_TEST_BASE", "base")
        result = await adapter.invoke(
            "sh", ["-c", 'echo "$CONVEYOR_TEST_BASE $EXTRA"'], env={"EXTRA": "extra"}
        )
        assert result.stdout == "base extra\n"

    @pytest.mark.asyncio
    async def test_cwd(self, adapter, tmp_path: Path):
        result = await adapter.invoke("pwd", cwd=tmp_path)
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_on_output_sees_every_line(self, adapter):
        seen: list[tuple[str, str]] = []
        await adapter.invoke(
            "sh", ["-c", "echo a; echo b"], on_output=lambda stream, line: seen.append((stream, line))
        )
        assert seen == [("stdout", "a\n"), ("stdout", "b\n")]

    @pytest.mark.asyncio
    async def test_output_interleaves_streams_in_arrival_order(self, adapter):
        result = await adapter.invoke(
            "sh", ["-c", "echo one; sleep 0.1; echo two >&2; sleep 0.1; echo three"]
        )

        assert result.output == "one\ntwo\nthree\n"
        assert result.stdout == "one\nthree\n"
        assert result.stderr == "two\n"


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class TestCancellation:
    @pytest.mark.asyncio
    async def test_pre_cancelled_token_does_not_spawn(self, adapter):
        token = CancelToken()
        token.cancel("aborted")

        with patch("asyncio.create_subprocess_exec") as spawn:
            result = await adapter.invoke("sleep", ["30"], cancel_token=token)

        spawn.assert_not_called()
        assert result.cancelled
        assert result.exit_code == -1

    @pytest.mark.asyncio
    async def test_cancel_terminates_once(self, adapter):
        token = CancelToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.2, token.cancel, "stage timed out")

        with patch.object(adapter, "_terminate", wraps=adapter._terminate) as terminate:
            result = await asyncio.wait_for(
                adapter.invoke("sh", ["-c", "sleep 30"], cancel_token=token), timeout=5
            )

        assert result.cancelled
        assert result.exit_code < 0
        terminate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sigterm_ignored_escalates_to_sigkill(self, adapter):
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.3, token.cancel)

        result = await asyncio.wait_for(
            adapter.invoke(
                "sh", ["-c", 'trap "" TERM; while true; do sleep 0.1; done'], cancel_token=token
            ),
            timeout=5,
        )

        assert result.cancelled
        assert result.exit_code == -9

    @pytest.mark.asyncio
    async def test_hard_cancel_terminates_process(self, adapter):
        with patch.object(adapter, "_terminate", wraps=adapter._terminate) as terminate:
            task = asyncio.create_task(adapter.invoke("sleep", ["30"]))
            await asyncio.sleep(0.2)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        terminate.assert_awaited_once()
