"""Child process execution in buffered and streaming modes."""

from __future__ import annotations

import asyncio
import os
import signal as signals
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from agentrelay.errors import ProcessFailure, SpawnFailure, TimeoutTermination

READ_CHUNK_SIZE = 8192


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a buffered process run."""

    stdout: str
    stderr: str
    exit_code: int


@dataclass(frozen=True)
class ExitOutcome:
    """How a child process ended."""

    exit_code: int | None
    signal: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.signal is None

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitOutcome:
        if returncode < 0:
            return cls(exit_code=None, signal=-returncode)
        return cls(exit_code=returncode)


def render_invocation(command: str, args: Sequence[str]) -> str:
    return " ".join([command, *(f"'{arg}'" for arg in args)])


def _log_invocation(command: str, args: Sequence[str], cwd: Path | str | None, stdin: str | None) -> None:
    logger.info("process.spawn cwd={} command={}", cwd or Path.cwd(), render_invocation(command, args))
    if stdin is not None:
        logger.debug("process.stdin bytes={}", len(stdin.encode("utf-8")))


async def _spawn(
    command: str,
    args: Sequence[str],
    *,
    cwd: Path | str | None,
    stdin: str | None,
) -> asyncio.subprocess.Process:
    try:
        return await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        logger.error("process.spawn.error command={} error={}", command, exc)
        raise SpawnFailure(command, args, str(exc)) from exc


def _kill_group(process: asyncio.subprocess.Process, sig: int = signals.SIGKILL) -> bool:
    """Signal every process in the child's group; the child leads its own session."""
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        return False
    except PermissionError:
        if process.returncode is not None:
            return False
        process.send_signal(sig)
    return True


async def run_buffered(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Path | str | None = None,
    stdin: str | None = None,
    timeout: float | None = None,
) -> ProcessResult:
    """Run a command to completion and return its captured output.

    Raises `SpawnFailure` when the binary cannot be started, `ProcessFailure`
    on a non-zero exit and `TimeoutTermination` when `timeout` elapses first.
    """
    _log_invocation(command, args, cwd, stdin)
    process = await _spawn(command, args, cwd=cwd, stdin=stdin)
    payload = stdin.encode("utf-8") if stdin is not None else None
    started = time.monotonic()
    try:
        async with asyncio.timeout(timeout):
            raw_stdout, raw_stderr = await process.communicate(payload)
    except asyncio.CancelledError:
        _kill_group(process)
        await process.wait()
        raise
    except TimeoutError as exc:
        _kill_group(process)
        await process.wait()
        elapsed = time.monotonic() - started
        logger.warning("process.timeout command={} elapsed={:.1f}s", command, elapsed)
        raise TimeoutTermination(
            command, args, elapsed_seconds=elapsed, deadline_seconds=timeout or 0.0
        ) from exc

    stdout = raw_stdout.decode("utf-8", errors="replace")
    stderr = raw_stderr.decode("utf-8", errors="replace")
    if stderr:
        logger.warning("process.stderr command={} stderr={}", command, stderr.strip())
    logger.debug("process.stdout command={} stdout={}", command, stdout.strip())

    returncode = process.returncode if process.returncode is not None else -1
    outcome = ExitOutcome.from_returncode(returncode)
    if not outcome.succeeded:
        raise ProcessFailure(
            command,
            args,
            stdout=stdout,
            stderr=stderr,
            exit_code=outcome.exit_code,
            signal=outcome.signal,
        )
    return ProcessResult(stdout=stdout, stderr=stderr, exit_code=returncode)


class ProcessHandle:
    """One live child process started in streaming mode."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        process: asyncio.subprocess.Process,
        *,
        cwd: Path | str | None = None,
        stdin: str | None = None,
    ) -> None:
        self.command = command
        self.args = list(args)
        self.cwd = cwd
        self.stdin_payload = stdin
        self._process = process
        self._stdout_taken = False
        self._stderr_parts: list[bytes] = []
        self._stdin_task = asyncio.create_task(self._write_stdin()) if stdin is not None else None
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def stderr(self) -> str:
        return b"".join(self._stderr_parts).decode("utf-8", errors="replace")

    async def _write_stdin(self) -> None:
        writer = self._process.stdin
        if writer is None or self.stdin_payload is None:
            return
        try:
            writer.write(self.stdin_payload.encode("utf-8"))
            await writer.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.warning("process.stdin.closed command={}", self.command)
        finally:
            writer.close()

    async def _drain_stderr(self) -> None:
        reader = self._process.stderr
        if reader is None:
            return
        while chunk := await reader.read(READ_CHUNK_SIZE):
            self._stderr_parts.append(chunk)

    async def chunks(self, size: int = READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield raw stdout chunks until the process closes its output.

        The sequence is single-pass: a second call raises `RuntimeError`.
        """
        if self._stdout_taken:
            raise RuntimeError("stdout of this process has already been consumed")
        self._stdout_taken = True
        reader = self._process.stdout
        if reader is None:
            return
        while chunk := await reader.read(size):
            yield chunk

    def kill(self, sig: int = signals.SIGKILL) -> bool:
        """Send `sig` to the child and its descendants; returns False if all are gone.

        Descendants that stay in the child's process group are signalled even
        after the child itself has exited and been reaped.
        """
        killed = _kill_group(self._process, sig)
        if killed:
            logger.warning("process.kill pid={} signal={}", self.pid, signals.Signals(sig).name)
        return killed

    def _helpers(self) -> list[asyncio.Task[None]]:
        return [task for task in (self._stderr_task, self._stdin_task) if task is not None]

    async def wait(self, timeout: float | None = None) -> ExitOutcome:
        """Wait for the child to exit and for its stderr and stdin pipes to close.

        With a `timeout`, pipes still held open by descendants that left the
        process group are abandoned once the child itself has exited.
        """
        helpers = self._helpers()
        try:
            async with asyncio.timeout(timeout):
                returncode = await self._process.wait()
                if helpers:
                    await asyncio.wait(helpers)
        except TimeoutError:
            if self._process.returncode is None:
                raise
            returncode = self._process.returncode
            for task in helpers:
                task.cancel()
            logger.warning("process.pipes.abandoned command={} pid={}", self.command, self.pid)
        stderr = self.stderr.strip()
        if stderr:
            logger.warning("process.stderr command={} stderr={}", self.command, stderr)
        outcome = ExitOutcome.from_returncode(returncode)
        logger.info(
            "process.exit command={} exit_code={} signal={}", self.command, outcome.exit_code, outcome.signal
        )
        return outcome


async def run_streaming(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Path | str | None = None,
    stdin: str | None = None,
) -> ProcessHandle:
    """Start a command and return immediately with a live `ProcessHandle`."""
    _log_invocation(command, args, cwd, stdin)
    process = await _spawn(command, args, cwd=cwd, stdin=stdin)
    return ProcessHandle(command, args, process, cwd=cwd, stdin=stdin)
