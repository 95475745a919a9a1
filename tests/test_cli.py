from __future__ import annotations

import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from agentrelay import __version__, cli
from agentrelay.core.pipeline import ExecutionPipeline, RunReport
from agentrelay.errors import ProcessFailure, TaskFailure

runner = CliRunner()


class ScriptBackend:
    def __init__(self, script: str) -> None:
        self.script = script
        self.plans: list[str] = []
        self.generate_cwds: list[Path | str | None] = []

    async def generate(self, prompt: str, cwd: Path | str | None) -> str:
        self.generate_cwds.append(cwd)
        return "Looked around and ran one command."

    async def execute_plan(self, plan: str, cwd: Path | str, pipeline: ExecutionPipeline) -> RunReport:
        self.plans.append(plan)
        return await pipeline.run(sys.executable, ["-c", self.script], cwd=cwd)


@pytest.fixture(autouse=True)
def _quiet(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "configure_logging", lambda **_kwargs: None)
    for name in ("BACKEND", "TELEGRAM_TOKEN", "DELIVERY", "SUMMARIZE_BATCHES"):
        monkeypatch.delenv(f"AGENTRELAY_{name}", raising=False)


def test_version() -> None:
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == __version__


def test_exec_prints_narration_and_summary(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    backend = ScriptBackend("print('Looking around')\nprint('```bash\\necho from-command\\n```')")
    monkeypatch.setattr(cli, "build_backend", lambda *_args, **_kwargs: backend)

    result = runner.invoke(cli.app, ["exec", "inspect the repo", "--workdir", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert backend.plans == ["inspect the repo"]
    assert "Looking around" in result.stdout
    assert "from-command" in result.stdout
    assert "1 commands, 0 failed" in result.stdout


def test_exec_batch_summary_runs_in_workdir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENTRELAY_SUMMARIZE_BATCHES", "true")
    workdir = tmp_path / "repo"
    workdir.mkdir()
    backend = ScriptBackend("print('Looking around\\n```bash\\necho from-command\\n```')")
    monkeypatch.setattr(cli, "build_backend", lambda *_args, **_kwargs: backend)

    result = runner.invoke(cli.app, ["exec", "inspect the repo", "--workdir", str(workdir)])

    assert result.exit_code == 0, result.output
    assert backend.generate_cwds == [workdir.resolve()]
    assert "summarized" in result.stdout


def test_exec_stream_delivery(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENTRELAY_DELIVERY", "stream")
    backend = ScriptBackend("print('streamed line')")
    monkeypatch.setattr(cli, "build_backend", lambda *_args, **_kwargs: backend)

    result = runner.invoke(cli.app, ["exec", "go", "--workdir", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "streamed line" in result.stdout


def test_exec_reports_agent_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    backend = ScriptBackend("import sys; sys.exit(5)")
    monkeypatch.setattr(cli, "build_backend", lambda *_args, **_kwargs: backend)

    result = runner.invoke(cli.app, ["exec", "go", "--workdir", str(tmp_path)])

    assert result.exit_code == 1
    assert "Error: Command failed (exit code 5)" in result.output


def test_invalid_configuration_exits_2(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTRELAY_BACKEND", "gpt-cli")
    result = runner.invoke(cli.app, ["exec", "go"])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_task_prints_result(monkeypatch: pytest.MonkeyPatch) -> None:
    prompts: list[str] = []

    class FakeTask:
        def __init__(self, _settings: object) -> None:
            pass

        async def run(self, prompt: str, sink: object, thread_id: str) -> str:
            prompts.append(prompt)
            return "Task complete! A pull request has been created: https://x/pull/2"

    monkeypatch.setattr(cli, "AgentTask", FakeTask)

    result = runner.invoke(cli.app, ["task", "add docs"])

    assert result.exit_code == 0, result.output
    assert prompts == ["add docs"]
    assert "https://x/pull/2" in result.stdout


def test_task_failure_exits_1(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingTask:
        def __init__(self, _settings: object) -> None:
            pass

        async def run(self, prompt: str, sink: object, thread_id: str) -> str:
            raise TaskFailure("Agent task failed: " + str(ProcessFailure("git", ["push"], exit_code=1)))

    monkeypatch.setattr(cli, "AgentTask", FailingTask)

    result = runner.invoke(cli.app, ["task", "add docs"])

    assert result.exit_code == 1
    assert "Agent task failed" in result.output


def test_serve_requires_token(monkeypatch: pytest.MonkeyPatch) -> None:
    profiles: list[object] = []
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: profiles.append(kwargs["profile"]))

    result = runner.invoke(cli.app, ["serve"])

    assert result.exit_code == 2
    assert "AGENTRELAY_TELEGRAM_TOKEN" in result.output
    assert profiles == ["chat"]
