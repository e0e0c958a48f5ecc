"""End-to-end tests for the conveyor command line."""

import json
from pathlib import Path

import pytest

from conveyor.cli import main

SCENARIO = """\
name: scenario
stages:
  - name: Build
    steps:
      - name: compile
        kind: build
        config:
          command: 'echo built > build.txt; echo VERSION=1.0'
          outputs: [VERSION]
  - name: Test
    retry: 1
    steps:
      - name: unit
        kind: test
        config:
          command: '{test_command}'
  - name: Deploy
    steps:
      - name: rollout
        kind: build
        config:
          command: 'echo ${{outputs.compile.VERSION}} > deployed'
"""

ALWAYS_FAILS = "echo run >> attempts; exit 1"
FAILS_ONCE = "echo run >> attempts; [ $(wc -l < attempts) -ge 2 ]"


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CONVEYOR_WEBHOOK_URL", raising=False)
    return tmp_path


def _write(workspace: Path, text: str, name: str = "pipeline.yml") -> str:
    path = workspace / name
    path.write_text(text)
    return str(path)


def test_failing_test_stage_stops_deploy(workspace: Path, capsys: pytest.CaptureFixture) -> None:
    path = _write(workspace, SCENARIO.format(test_command=ALWAYS_FAILS))

    code = _run(["run", path])

    assert code == 1
    assert (workspace / "build.txt").exists()
    assert (workspace / "attempts").read_text().splitlines() == ["run", "run"]
    assert not (workspace / "deployed").exists()
    out = capsys.readouterr().out
    assert "[FAILED] Test" in out
    assert "after 2 attempts" in out
    assert "Result: FAILED" in out


def test_retry_recovers_and_deploys(workspace: Path) -> None:
    path = _write(workspace, SCENARIO.format(test_command=FAILS_ONCE))

    code = _run(["run", path])

    assert code == 0
    assert (workspace / "deployed").read_text().strip() == "1.0"


def test_json_output(workspace: Path, capsys: pytest.CaptureFixture) -> None:
    path = _write(workspace, SCENARIO.format(test_command=FAILS_ONCE))

    _run(["run", path, "--json"])

    result = json.loads(capsys.readouterr().out)
    assert result["status"] == "succeeded"
    assert [s["name"] for s in result["stages"]] == ["Build", "Test", "Deploy"]
    assert result["stages"][1]["attempts"] == 2
    assert result["outputs"] == {"compile": {"VERSION": "1.0"}}


def test_variables(workspace: Path) -> None:
    path = _write(
        workspace,
        "name: vars\nstages:\n  - name: Greet\n    steps:\n"
        "      - name: hello\n        kind: build\n"
        "        config: {command: 'echo ${vars.WHO} $WHO > greeting'}\n",
    )

    assert _run(["run", path, "--var", "WHO=world"]) == 0
    assert (workspace / "greeting").read_text().strip() == "world world"


def test_bad_variable(workspace: Path) -> None:
    path = _write(workspace, SCENARIO.format(test_command="true"))
    assert _run(["run", path, "--var", "novalue"]) == 2


def test_malformed_definition(workspace: Path, capsys: pytest.CaptureFixture) -> None:
    path = _write(workspace, "name: broken\nstages: [\n")

    assert _run(["run", path]) == 2
    assert "error:" in capsys.readouterr().err


def test_config_error_runs_nothing(workspace: Path, capsys: pytest.CaptureFixture) -> None:
    path = _write(
        workspace,
        "name: bad\nstages:\n  - name: Build\n    steps:\n"
        "      - name: compile\n        kind: build\n        config: {command: 'touch ran'}\n"
        "  - name: Deploy\n    steps:\n"
        "      - name: rollout\n        kind: deploy\n        config: {deployment: web}\n",
    )

    assert _run(["run", path]) == 2
    assert not (workspace / "ran").exists()
    assert "image" in capsys.readouterr().err


def test_validate(workspace: Path, capsys: pytest.CaptureFixture) -> None:
    path = _write(workspace, SCENARIO.format(test_command="true"))

    assert _run(["validate", path]) == 0
    assert "3 stages, 3 steps - valid" in capsys.readouterr().out


def test_show_json(workspace: Path, capsys: pytest.CaptureFixture) -> None:
    path = _write(workspace, SCENARIO.format(test_command="true"))

    assert _run(["show", path, "--format", "json"]) == 0
    document = json.loads(capsys.readouterr().out)
    assert document["stages"][1]["retry"] == 1


def test_steps(capsys: pytest.CaptureFixture) -> None:
    assert _run(["steps"]) == 0
    out = capsys.readouterr().out
    for kind in ("build", "test", "checkout", "dockerBuild", "dockerPush", "deploy", "notify", "custom"):
        assert kind in out


def test_no_command() -> None:
    assert _run([]) == 2
