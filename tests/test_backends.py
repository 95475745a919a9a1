from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from agentrelay.backends import base as backend_base
from agentrelay.backends import cli as backend_cli
from agentrelay.backends.base import CommitInfo, extract_json_object, sanitize_branch_name
from agentrelay.backends.cli import PROFILES, build_backend
from agentrelay.core.process import ProcessResult


class FakeRunner:
    def __init__(self, stdout: str = "") -> None:
        self.stdout = stdout
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, command: str, args: list[str], **kwargs: Any) -> ProcessResult:
        self.calls.append({"command": command, "args": list(args), **kwargs})
        return ProcessResult(stdout=self.stdout, stderr="", exit_code=0)


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch) -> FakeRunner:
    fake = FakeRunner()
    monkeypatch.setattr(backend_cli, "run_buffered", fake)
    return fake


@pytest.mark.parametrize(
    ("name", "execute", "model", "expected"),
    [
        ("qwen", False, None, []),
        ("qwen", True, "qwen3-coder", ["-y", "--model", "qwen3-coder"]),
        ("claude", False, None, ["-p"]),
        ("claude", True, None, ["-p", "--dangerously-skip-permissions"]),
        ("codex", False, None, ["exec", "-"]),
        ("codex", True, "o4", ["exec", "--full-auto", "-m", "o4", "-"]),
    ],
)
def test_profile_command_shapes(name: str, execute: bool, model: str | None, expected: list[str]) -> None:
    assert PROFILES[name].command(execute=execute, model=model) == expected


def test_build_backend_rejects_unknown_variant() -> None:
    with pytest.raises(ValueError, match="unknown backend"):
        build_backend("gpt-cli")


def test_build_backend_binary_override() -> None:
    backend = build_backend("claude", binary="/opt/bin/claude")
    assert backend.binary == "/opt/bin/claude"
    assert backend.name == "claude"


@pytest.mark.asyncio
async def test_generate_sends_prompt_on_stdin(runner: FakeRunner, tmp_path: Path) -> None:
    runner.stdout = "  the plan \n"
    backend = build_backend("qwen", timeout_seconds=30)

    plan = await backend.generate_plan("add a README", tmp_path)

    assert plan == "the plan"
    call = runner.calls[0]
    assert call["command"] == "qwen"
    assert call["args"] == []
    assert call["cwd"] == tmp_path
    assert call["timeout"] == 30
    assert "add a README" in call["stdin"]


@pytest.mark.asyncio
async def test_branch_name_is_sanitized(runner: FakeRunner, tmp_path: Path) -> None:
    runner.stdout = "Sure! Here it is:\n`feat/Add Login Page`"
    branch = await build_backend("qwen").generate_branch_name("login", tmp_path)
    assert branch == "feat/add-login-page"


@pytest.mark.asyncio
async def test_empty_branch_name_falls_back(runner: FakeRunner, tmp_path: Path) -> None:
    runner.stdout = "```"
    branch = await build_backend("qwen").generate_branch_name("login", tmp_path)
    assert branch.startswith("agent/task-")


@pytest.mark.asyncio
async def test_commit_info_parsed_from_json(runner: FakeRunner, tmp_path: Path) -> None:
    runner.stdout = (
        "Here you go:\n```json\n"
        '{"commit_message": "feat: add login", "pr_title": "Add login", "pr_body": "Adds a login page."}'
        "\n```"
    )

    info = await build_backend("claude").generate_commit_info("login", "diff --git a b", tmp_path)

    assert info == CommitInfo(commit_message="feat: add login", pr_title="Add login", pr_body="Adds a login page.")
    assert "diff --git a b" in runner.calls[0]["stdin"]


@pytest.mark.asyncio
async def test_commit_info_falls_back_on_garbage(runner: FakeRunner, tmp_path: Path) -> None:
    runner.stdout = "I could not decide."
    info = await build_backend("qwen").generate_commit_info("Add a   login page", "", tmp_path)
    assert info == CommitInfo.fallback("Add a   login page")
    assert info.pr_title == "Add a login page"


@pytest.mark.asyncio
async def test_commit_diff_is_truncated(runner: FakeRunner, tmp_path: Path) -> None:
    await build_backend("qwen").generate_commit_info("x", "y" * (backend_cli.MAX_DIFF_CHARS + 500), tmp_path)
    assert runner.calls[0]["stdin"].count("y") <= backend_cli.MAX_DIFF_CHARS + 5


@pytest.mark.asyncio
async def test_execute_plan_runs_through_pipeline(tmp_path: Path) -> None:
    calls: list[dict[str, Any]] = []
    report = SimpleNamespace(run_id="r1")

    async def run(command: str, args: list[str], **kwargs: Any) -> SimpleNamespace:
        calls.append({"command": command, "args": args, **kwargs})
        return report

    pipeline = SimpleNamespace(run=run)
    backend = build_backend("codex", model="o4")

    result = await backend.execute_plan("1. do it", tmp_path, pipeline)  # type: ignore[arg-type]

    assert result is report
    assert calls[0]["command"] == "codex"
    assert calls[0]["args"] == ["exec", "--full-auto", "-m", "o4", "-"]
    assert calls[0]["cwd"] == tmp_path
    assert "1. do it" in calls[0]["stdin"]
    assert "```bash" in calls[0]["stdin"]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('```json\n{"a": 1}\n```', {"a": 1}),
        ('prefix {"a": 2, "b": {"c": 3}} suffix', {"a": 2, "b": {"c": 3}}),
        ("no json here", {"fallback": True}),
        ("[1, 2, 3]", {"fallback": True}),
        ("{broken: json}", {"fallback": True}),
    ],
)
def test_extract_json_object(text: str, expected: dict[str, Any]) -> None:
    assert extract_json_object(text, {"fallback": True}) == expected


def test_sanitize_branch_name_limits_length() -> None:
    branch = sanitize_branch_name("feat/" + "very-long-" * 20, "fallback")
    assert len(branch) <= backend_base.MAX_BRANCH_LENGTH
    assert not branch.endswith("-")


def test_commit_info_payload_ignores_blank_fields() -> None:
    fallback = CommitInfo.fallback("fix bug")
    info = CommitInfo.from_payload({"commit_message": "  ", "pr_title": "Fix", "pr_body": 42}, fallback)
    assert info == CommitInfo(commit_message=fallback.commit_message, pr_title="Fix", pr_body=fallback.pr_body)
