"""AI backend capability set and best-effort parsing helpers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from agentrelay.core.pipeline import ExecutionPipeline, RunReport

JSON_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)
JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
BRANCH_INVALID_RE = re.compile(r"[^a-z0-9/-]+")
MAX_BRANCH_LENGTH = 60


class TextGenerator(Protocol):
    """One-shot request/response call to the AI backend."""

    async def generate(self, prompt: str, cwd: Path | str | None) -> str: ...


class AgentBackend(TextGenerator, Protocol):
    async def generate_plan(self, request: str, cwd: Path | str) -> str: ...

    async def generate_branch_name(self, request: str, cwd: Path | str) -> str: ...

    async def generate_commit_info(self, request: str, diff: str, cwd: Path | str) -> CommitInfo: ...

    async def execute_plan(self, plan: str, cwd: Path | str, pipeline: ExecutionPipeline) -> RunReport: ...


@dataclass(frozen=True)
class CommitInfo:
    commit_message: str
    pr_title: str
    pr_body: str

    @classmethod
    def fallback(cls, request: str) -> CommitInfo:
        summary = " ".join(request.split())[:72] or "Automated changes"
        return cls(
            commit_message=f"chore: {summary}",
            pr_title=summary,
            pr_body=f"Automated changes for the request:\n\n> {request.strip()}",
        )

    @classmethod
    def from_payload(cls, payload: dict[str, Any], fallback: CommitInfo) -> CommitInfo:
        def _text(key: str, default: str) -> str:
            value = payload.get(key)
            return value.strip() if isinstance(value, str) and value.strip() else default

        return cls(
            commit_message=_text("commit_message", fallback.commit_message),
            pr_title=_text("pr_title", fallback.pr_title),
            pr_body=_text("pr_body", fallback.pr_body),
        )


def extract_json_object(text: str, fallback: dict[str, Any]) -> dict[str, Any]:
    """Pull the first JSON object out of free-form model output.

    Never raises: returns `fallback` when nothing parseable is found.
    """
    candidates = [match.group(1) for match in JSON_FENCE_RE.finditer(text)]
    if match := JSON_OBJECT_RE.search(text):
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return fallback


def sanitize_branch_name(raw: str, fallback: str) -> str:
    lines = [line.strip() for line in raw.strip().strip("`").splitlines() if line.strip()]
    candidate = lines[-1] if lines else ""
    candidate = BRANCH_INVALID_RE.sub("-", candidate.lower().replace(" ", "-"))
    candidate = re.sub(r"-{2,}", "-", candidate).strip("-/")[:MAX_BRANCH_LENGTH].strip("-/")
    return candidate or fallback
