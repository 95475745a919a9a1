"""Sequential execution of classified command blocks."""

from __future__ import annotations

import shutil
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger

from agentrelay.core.classifier import Block, BlockKind
from agentrelay.core.process import ProcessResult, run_buffered
from agentrelay.errors import ProcessFailure, SpawnFailure, TimeoutTermination

BufferedRunner = Callable[..., Awaitable[ProcessResult]]


@dataclass(frozen=True)
class CommandResult:
    """Result of one command block execution."""

    command: str
    stdout: str
    stderr: str
    success: bool
    exit_code: int | None = None
    detail: str = ""
    elapsed_ms: int = 0

    @property
    def output(self) -> str:
        return self.stdout if self.stdout.strip() else self.stderr

    def render(self) -> str:
        if self.success:
            body = self.output.strip() or "(no output)"
            return f"✅ Ran `{self.command}`\n```\n{body}\n```"
        body = (self.output.strip() or self.detail).strip() or "(no output)"
        return f"❌ `{self.command}` failed ({self.detail or 'error'})\n```\n{body}\n```"


class CommandExecutor:
    """Runs command blocks one at a time through the buffered process runner.

    A failing command never raises; it yields `CommandResult(success=False)`.
    """

    def __init__(
        self,
        *,
        runner: BufferedRunner = run_buffered,
        timeout_seconds: float | None = None,
    ) -> None:
        self._runner = runner
        self._timeout_seconds = timeout_seconds

    @staticmethod
    def shell_for(language: str | None) -> str:
        name = "sh" if language == "sh" else "bash"
        return shutil.which(name) or name

    async def execute(
        self, block: Block, cwd: Path | str | None, *, timeout: float | None = None
    ) -> CommandResult:
        """Run one command block; `timeout` can only tighten the configured limit."""
        if block.kind is not BlockKind.COMMAND:
            raise ValueError(f"cannot execute a {block.kind} block")

        command = block.text.strip()
        limits = [limit for limit in (self._timeout_seconds, timeout) if limit is not None]
        start = time.monotonic()
        try:
            result = await self._runner(
                self.shell_for(block.language),
                ["-c", block.text],
                cwd=cwd,
                timeout=min(limits) if limits else None,
            )
        except ProcessFailure as exc:
            outcome = CommandResult(
                command=command,
                stdout=exc.stdout,
                stderr=exc.stderr,
                success=False,
                exit_code=exc.exit_code,
                detail=f"signal {exc.signal}" if exc.signal is not None else f"exit code {exc.exit_code}",
            )
        except (SpawnFailure, TimeoutTermination) as exc:
            outcome = CommandResult(command=command, stdout="", stderr="", success=False, detail=str(exc))
        else:
            outcome = CommandResult(
                command=command,
                stdout=result.stdout,
                stderr=result.stderr,
                success=True,
                exit_code=result.exit_code,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        outcome = replace(outcome, elapsed_ms=elapsed_ms)
        logger.info(
            "executor.command success={} exit_code={} elapsed_ms={} command={}",
            outcome.success,
            outcome.exit_code,
            elapsed_ms,
            command,
        )
        return outcome

    async def execute_all(self, blocks: Iterable[Block], cwd: Path | str | None) -> list[CommandResult]:
        """Execute command blocks strictly in order; other kinds are skipped."""
        results: list[CommandResult] = []
        for block in blocks:
            if block.kind is BlockKind.COMMAND:
                results.append(await self.execute(block, cwd))
        return results
