"""Command-line AI backends selected by configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from agentrelay.backends.base import CommitInfo, extract_json_object, sanitize_branch_name
from agentrelay.core.process import run_buffered

if TYPE_CHECKING:
    from agentrelay.core.pipeline import ExecutionPipeline, RunReport

PLAN_PROMPT = (
    "Based on the user request, create a detailed implementation plan. Do not execute any "
    "commands or modify any files; only output the plan. The user's request is:\n\n{request}"
)
EXECUTE_PROMPT = (
    "Please execute the following plan. Whenever a shell command must be run by the operator, "
    "write it in its own ```bash fenced block.\n\n{plan}"
)
BRANCH_PROMPT = (
    "Suggest a short git branch name for the following request. Reply with the branch name "
    "only: lowercase, words separated by hyphens, optionally prefixed with feat/ or fix/.\n\n{request}"
)
COMMIT_PROMPT = (
    "Write commit and pull request metadata for the staged changes below. Reply with a single "
    'JSON object: {{"commit_message": "...", "pr_title": "...", "pr_body": "..."}}.\n\n'
    "Request:\n{request}\n\nStaged diff:\n{diff}"
)
MAX_DIFF_CHARS = 20_000


@dataclass(frozen=True)
class BackendProfile:
    """Invocation shape of one agent CLI. The prompt is always sent on stdin."""

    name: str
    binary: str
    prefix: tuple[str, ...] = ()
    generate_flags: tuple[str, ...] = ()
    execute_flags: tuple[str, ...] = ()
    suffix: tuple[str, ...] = ()
    model_flag: str = "--model"

    def command(self, *, execute: bool, model: str | None = None) -> list[str]:
        flags = self.execute_flags if execute else self.generate_flags
        model_args = [self.model_flag, model] if model else []
        return [*self.prefix, *flags, *model_args, *self.suffix]


PROFILES: dict[str, BackendProfile] = {
    "qwen": BackendProfile(name="qwen", binary="qwen", execute_flags=("-y",)),
    "claude": BackendProfile(
        name="claude",
        binary="claude",
        generate_flags=("-p",),
        execute_flags=("-p", "--dangerously-skip-permissions"),
    ),
    "codex": BackendProfile(
        name="codex",
        binary="codex",
        prefix=("exec",),
        execute_flags=("--full-auto",),
        suffix=("-",),
        model_flag="-m",
    ),
}


class CliAgentBackend:
    """Drives an agent CLI for planning, naming, commit metadata and execution."""

    def __init__(
        self,
        profile: BackendProfile,
        *,
        binary: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.profile = profile
        self.binary = binary or profile.binary
        self.model = model
        self.timeout_seconds = timeout_seconds

    @property
    def name(self) -> str:
        return self.profile.name

    async def generate(self, prompt: str, cwd: Path | str | None) -> str:
        args = self.profile.command(execute=False, model=self.model)
        result = await run_buffered(self.binary, args, cwd=cwd, stdin=prompt, timeout=self.timeout_seconds)
        return result.stdout.strip()

    async def generate_plan(self, request: str, cwd: Path | str) -> str:
        return await self.generate(PLAN_PROMPT.format(request=request), cwd)

    async def generate_branch_name(self, request: str, cwd: Path | str) -> str:
        fallback = f"agent/task-{datetime.now(UTC).strftime('%Y%m%d%H%M%S')}"
        raw = await self.generate(BRANCH_PROMPT.format(request=request), cwd)
        branch = sanitize_branch_name(raw, fallback)
        logger.info("backend.branch_name backend={} branch={}", self.name, branch)
        return branch

    async def generate_commit_info(self, request: str, diff: str, cwd: Path | str) -> CommitInfo:
        fallback = CommitInfo.fallback(request)
        raw = await self.generate(COMMIT_PROMPT.format(request=request, diff=diff[:MAX_DIFF_CHARS]), cwd)
        payload = extract_json_object(raw, fallback={})
        if not payload:
            logger.warning("backend.commit_info.fallback backend={}", self.name)
        return CommitInfo.from_payload(payload, fallback)

    async def execute_plan(self, plan: str, cwd: Path | str, pipeline: ExecutionPipeline) -> RunReport:
        args = self.profile.command(execute=True, model=self.model)
        return await pipeline.run(self.binary, args, cwd=cwd, stdin=EXECUTE_PROMPT.format(plan=plan))


def build_backend(
    name: str,
    *,
    binary: str | None = None,
    model: str | None = None,
    timeout_seconds: float | None = None,
) -> CliAgentBackend:
    try:
        profile = PROFILES[name]
    except KeyError as exc:
        raise ValueError(f"unknown backend: {name}") from exc
    return CliAgentBackend(profile, binary=binary, model=model, timeout_seconds=timeout_seconds)
