"""Git and GitHub CLI operations around an agent task."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path

from agentrelay.core.process import ProcessResult, run_buffered

Runner = Callable[..., Awaitable[ProcessResult]]


class Git:
    """Version control collaborator; every call passes a discrete argv."""

    def __init__(self, *, git: str = "git", gh: str = "gh", runner: Runner = run_buffered) -> None:
        self.git = git
        self.gh = gh
        self._run = runner

    async def clone(self, url: str, cwd: Path | str) -> None:
        await self._run(self.git, ["clone", url, "."], cwd=cwd)

    async def create_branch(self, name: str, cwd: Path | str) -> None:
        await self._run(self.git, ["checkout", "-b", name], cwd=cwd)

    async def stage_all(self, cwd: Path | str) -> None:
        await self._run(self.git, ["add", "."], cwd=cwd)

    async def status_summary(self, cwd: Path | str) -> str:
        """Porcelain status; empty when the tree is clean."""
        result = await self._run(self.git, ["status", "--porcelain"], cwd=cwd)
        return result.stdout.strip()

    async def staged_diff(self, cwd: Path | str) -> str:
        result = await self._run(self.git, ["diff", "--staged"], cwd=cwd)
        return result.stdout.strip()

    async def commit(self, message: str, cwd: Path | str) -> None:
        await self._run(self.git, ["commit", "-F", "-"], cwd=cwd, stdin=message)

    async def push(self, branch: str, cwd: Path | str) -> None:
        await self._run(self.git, ["push", "origin", branch], cwd=cwd)

    async def open_pull_request(self, title: str, body: str, base: str, cwd: Path | str) -> str:
        args = ["pr", "create", "--base", base, "--title", title, "-F", "-"]
        result = await self._run(self.gh, args, cwd=cwd, stdin=body)
        return result.stdout.strip()
