"""Silence watchdog and hard deadline around one streaming process run."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from agentrelay.core.process import ExitOutcome, ProcessHandle

Notify = Callable[[str], None]
Consumer = Callable[[AsyncIterator[bytes]], Coroutine[object, object, None]]


class RunState(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class WatchdogState:
    """Liveness bookkeeping for the monitored process."""

    started_at: float
    last_output_at: float
    silence_threshold: float
    hard_deadline: float

    def touch(self, now: float) -> None:
        self.last_output_at = now

    def silent_for(self, now: float) -> float:
        return now - self.last_output_at

    def elapsed(self, now: float) -> float:
        return now - self.started_at


@dataclass(frozen=True)
class RunOutcome:
    state: RunState
    exit: ExitOutcome | None
    elapsed_seconds: float
    silence_warnings: int = 0


def _noop_notify(_text: str) -> None:
    return None


class RunSupervisor:
    """Arms a recurring silence check and a one-shot deadline for one run.

    The silence check only warns. The deadline force-kills the process group
    and moves the run to `TIMED_OUT`; its terminal notice is emitted once.
    After the deadline the consumer gets `drain_grace` seconds to finish the
    output already read, then it is cancelled.
    """

    def __init__(
        self,
        *,
        silence_threshold: float,
        hard_deadline: float,
        check_interval: float = 60.0,
        drain_grace: float = 5.0,
        notify: Notify | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.silence_threshold = silence_threshold
        self.hard_deadline = hard_deadline
        self.check_interval = check_interval
        self.drain_grace = drain_grace
        self._notify = notify or _noop_notify
        self._clock = clock
        self._state = RunState.RUNNING
        self._watch: WatchdogState | None = None
        self._last_warning_at: float | None = None
        self._warnings = 0
        self._terminal_sent = False
        self._expired = asyncio.Event()

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def watchdog(self) -> WatchdogState | None:
        return self._watch

    def remaining(self) -> float | None:
        """Seconds left before the hard deadline, or None outside a run."""
        if self._watch is None:
            return None
        return max(0.0, self.hard_deadline - self._watch.elapsed(self._clock()))

    async def supervise(self, handle: ProcessHandle, consume: Consumer) -> RunOutcome:
        now = self._clock()
        self._watch = WatchdogState(
            started_at=now,
            last_output_at=now,
            silence_threshold=self.silence_threshold,
            hard_deadline=self.hard_deadline,
        )
        self._state = RunState.RUNNING
        timers = [
            asyncio.create_task(self._silence_loop(handle)),
            asyncio.create_task(self._deadline_timer(handle)),
        ]
        consumer = asyncio.create_task(consume(self._tracked(handle)))
        try:
            await self._join_consumer(handle, consumer)
            timed_out = self._state is RunState.TIMED_OUT
            exit_outcome = await handle.wait(timeout=self.drain_grace if timed_out else None)
        except BaseException:
            consumer.cancel()
            handle.kill()
            if self._state is RunState.RUNNING:
                self._state = RunState.FAILED
            with contextlib.suppress(Exception):
                await handle.wait(timeout=self.drain_grace)
            raise
        finally:
            for timer in timers:
                timer.cancel()
            await asyncio.gather(*timers, return_exceptions=True)

        if self._state is RunState.RUNNING:
            self._state = RunState.COMPLETED if exit_outcome.succeeded else RunState.FAILED
        elapsed = self._watch.elapsed(self._clock())
        logger.info(
            "supervisor.finish state={} elapsed={:.1f}s warnings={}", self._state, elapsed, self._warnings
        )
        return RunOutcome(
            state=self._state,
            exit=exit_outcome,
            elapsed_seconds=elapsed,
            silence_warnings=self._warnings,
        )

    async def _join_consumer(self, handle: ProcessHandle, consumer: asyncio.Task[None]) -> None:
        expired = asyncio.create_task(self._expired.wait())
        try:
            await asyncio.wait({consumer, expired}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            expired.cancel()
        if not consumer.done():
            await asyncio.wait({consumer}, timeout=self.drain_grace)
        if not consumer.done():
            logger.warning("supervisor.drain.abandoned pid={} grace={:.1f}s", handle.pid, self.drain_grace)
            consumer.cancel()
            await asyncio.wait({consumer})
            return
        await consumer

    async def _tracked(self, handle: ProcessHandle) -> AsyncIterator[bytes]:
        async for chunk in handle.chunks():
            if self._watch is not None:
                self._watch.touch(self._clock())
            yield chunk

    async def _silence_loop(self, handle: ProcessHandle) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            if self._watch is None or self._state is not RunState.RUNNING:
                continue
            now = self._clock()
            reference = self._watch.last_output_at
            if self._last_warning_at is not None:
                reference = max(reference, self._last_warning_at)
            if now - reference <= self.silence_threshold:
                continue
            self._last_warning_at = now
            self._warnings += 1
            silent = self._watch.silent_for(now)
            logger.warning("supervisor.silence pid={} silent_for={:.1f}s", handle.pid, silent)
            self._emit(
                f"⏳ No output from `{handle.command}` for {silent:.0f}s. It is still running."
            )

    async def _deadline_timer(self, handle: ProcessHandle) -> None:
        await asyncio.sleep(self.hard_deadline)
        self.expire(handle)

    def expire(self, handle: ProcessHandle) -> bool:
        """Force-terminate the run; returns True only on the first expiry."""
        if self._state is not RunState.RUNNING:
            return False
        if not handle.kill() and handle.returncode is not None:
            return False
        self._state = RunState.TIMED_OUT
        self._expired.set()
        logger.error("supervisor.deadline pid={} deadline={:.1f}s", handle.pid, self.hard_deadline)
        if not self._terminal_sent:
            self._terminal_sent = True
            self._emit(
                f"⏱️ `{handle.command}` exceeded the {self.hard_deadline:.0f}s deadline and was terminated."
            )
        return True

    def _emit(self, text: str) -> None:
        try:
            self._notify(text)
        except Exception:
            logger.exception("supervisor.notify.error")
