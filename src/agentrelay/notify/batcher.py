"""Fixed-interval batching of outbound narration."""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

from loguru import logger

from agentrelay.backends.base import TextGenerator
from agentrelay.errors import SummarizationFailure
from agentrelay.notify.sink import NotificationSink, deliver

SUMMARY_PROMPT = (
    "Summarize the following progress updates from an AI coding agent into one short, "
    "coherent status message for a chat thread. Keep concrete file names and results. "
    "Reply with the summary text only.\n\n{updates}"
)


@dataclass(frozen=True)
class PendingMessage:
    text: str
    enqueued_at: float


def format_batch(messages: list[PendingMessage]) -> str:
    if len(messages) == 1:
        return messages[0].text
    items = "\n".join(f"{index}. {message.text}" for index, message in enumerate(messages, start=1))
    return f"🔄 Agent update ({len(messages)} items):\n{items}"


class IntervalBatcher:
    """Collects messages and delivers up to `max_batch_size` of them per tick.

    `aclose()` stops the timer and drains whatever is left, batch by batch.
    """

    def __init__(
        self,
        sink: NotificationSink,
        thread_id: str,
        *,
        interval: float = 2.0,
        max_batch_size: int = 10,
        summarizer: TextGenerator | None = None,
        summarizer_cwd: Path | str | None = None,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self.sink = sink
        self.thread_id = thread_id
        self.interval = interval
        self.max_batch_size = max_batch_size
        self.summarizer = summarizer
        self.summarizer_cwd = summarizer_cwd
        self._pending: list[PendingMessage] = []
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def add_message(self, text: str) -> None:
        self._pending.append(PendingMessage(text=text, enqueued_at=time.time()))

    def publish(self, text: str) -> None:
        self.add_message(text)

    def start(self) -> None:
        if self._task is None:
            self._stopping.clear()
            self._task = asyncio.create_task(self._tick_loop())

    async def _tick_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except TimeoutError:
                await self.process_batch()

    async def process_batch(self) -> bool:
        """Deliver one batch; returns False when nothing was pending."""
        async with self._lock:
            if not self._pending:
                return False
            batch = self._pending[: self.max_batch_size]
            del self._pending[: self.max_batch_size]
            text = await self._render(batch)
            await deliver(self.sink, text, self.thread_id)
            return True

    async def _render(self, batch: list[PendingMessage]) -> str:
        if self.summarizer is None or len(batch) < 2:
            return format_batch(batch)
        updates = "\n".join(f"- {message.text}" for message in batch)
        prompt = SUMMARY_PROMPT.format(updates=updates)
        try:
            summary = (await self.summarizer.generate(prompt, self.summarizer_cwd)).strip()
            if not summary:
                raise SummarizationFailure("summary was empty")
        except Exception as exc:
            logger.warning("batcher.summary.fallback error={}", exc)
            return format_batch(batch)
        return f"🔄 Agent update ({len(batch)} items, summarized):\n{summary}"

    async def aclose(self) -> None:
        self._stopping.set()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        while await self.process_batch():
            pass

    async def __aenter__(self) -> IntervalBatcher:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
