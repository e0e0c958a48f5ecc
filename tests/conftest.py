"""Shared fixtures for Conveyor tests."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest

from conveyor.config import Settings
from conveyor.models.events import PipelineEvent
from conveyor.models.pipeline import ConcurrencyMode, PipelineDefinition, Stage, Step, StepKind
from conveyor.notify.dispatcher import NotifierDispatcher
from conveyor.pipeline.executor import PipelineExecutor
from conveyor.pipeline.registry import StepRegistry
from conveyor.pipeline.steps import default_registry
from conveyor.tools.adapter import CancelToken, ToolAdapter, ToolResult


@dataclass
class FakeCall:
    command: str
    args: list[str]
    stdin: str | None
    env: dict[str, str]

    @property
    def key(self) -> str:
        return " ".join([self.command, *self.args[:1]])


class FakeToolAdapter(ToolAdapter):
    """In-memory stand-in for external tools.

    - ``sleep N``: waits N seconds or until cancelled
    - ``false``: exits 1
    - ``sh -c "echo X"``: prints X
    - ``failures``: key ("command" or "command firstarg") -> number of calls that exit 1
    - ``responses``: key -> stdout
    """

    def __init__(
        self,
        failures: Mapping[str, int] | None = None,
        responses: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(kill_grace_seconds=0.1)
        self.calls: list[FakeCall] = []
        self.cancelled: list[str] = []
        self.failures = dict(failures or {})
        self.responses = dict(responses or {})

    def calls_for(self, key: str) -> list[FakeCall]:
        return [c for c in self.calls if c.key == key or c.command == key]

    async def invoke(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        cancel_token: CancelToken | None = None,
        cwd: Path | str | None = None,
        stdin: str | None = None,
        on_output=None,
    ) -> ToolResult:
        call = FakeCall(command, [str(a) for a in args], stdin, dict(env or {}))
        self.calls.append(call)

        if command == "sleep":
            token = cancel_token or CancelToken()
            try:
                await asyncio.wait_for(token.wait(), timeout=float(call.args[0]))
            except asyncio.TimeoutError:
                return ToolResult(command=command, args=call.args, exit_code=0)
            self.cancelled.append(" ".join(call.args))
            return ToolResult(command=command, args=call.args, exit_code=-15, cancelled=True)

        for key in (call.key, command):
            if self.failures.get(key, 0) > 0:
                self.failures[key] -= 1
                return ToolResult(command=command, args=call.args, exit_code=1, stderr="boom\n")

        if command == "false":
            return ToolResult(command=command, args=call.args, exit_code=1)

        stdout = self.responses.get(call.key, self.responses.get(command, ""))
        if not stdout and command == "sh" and len(call.args) > 1 and call.args[1].startswith("echo "):
            stdout = call.args[1][len("echo "):] + "\n"
        return ToolResult(command=command, args=call.args, exit_code=0, stdout=stdout, output=stdout)


class RecordingSink:
    """Notification sink that keeps every event."""

    def __init__(self) -> None:
        self.events: list[PipelineEvent] = []

    @property
    def name(self) -> str:
        return "recording"

    async def send(self, event: PipelineEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type for e in self.events]


def custom(name: str, command: str, *args: str, **kwargs) -> Step:
    """Shorthand for a custom step."""
    return Step(name=name, kind=StepKind.CUSTOM, config={"command": command, "args": list(args)}, **kwargs)


def stage(name: str, *steps: Step, parallel: bool = False, **kwargs) -> Stage:
    mode = ConcurrencyMode.PARALLEL if parallel else ConcurrencyMode.SEQUENTIAL
    return Stage(name=name, steps=list(steps), mode=mode, **kwargs)


def pipeline(*stages: Stage, name: str = "demo", **kwargs) -> PipelineDefinition:
    return PipelineDefinition(name=name, stages=list(stages), **kwargs)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        max_workers=8,
        cancel_grace_seconds=1.0,
        kill_grace_seconds=0.5,
        working_dir=tmp_path,
        webhook_url=None,
    )


@pytest.fixture
def adapter() -> FakeToolAdapter:
    return FakeToolAdapter()


@pytest.fixture
def registry(adapter: FakeToolAdapter, test_settings: Settings) -> StepRegistry:
    return default_registry(adapter, config=test_settings)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def executor(registry: StepRegistry, sink: RecordingSink, test_settings: Settings) -> PipelineExecutor:
    return PipelineExecutor(registry, notifier=NotifierDispatcher([sink]), config=test_settings)
