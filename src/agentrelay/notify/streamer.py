"""Debounced line streaming of outbound narration."""

from __future__ import annotations

import asyncio
import contextlib
from types import TracebackType

from agentrelay.notify.sink import NotificationSink, deliver


class DebounceStreamer:
    """Delivers complete lines immediately and a trailing partial line after
    `buffer_time` seconds without new input.

    Deliveries go through one sender task so they reach the sink in order.
    """

    def __init__(
        self,
        sink: NotificationSink,
        thread_id: str,
        *,
        prefix: str = "",
        buffer_time: float = 1.5,
    ) -> None:
        self.sink = sink
        self.thread_id = thread_id
        self.prefix = prefix
        self.buffer_time = buffer_time
        self._buffer = ""
        self._timer: asyncio.TimerHandle | None = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._sender: asyncio.Task[None] | None = None

    @property
    def buffered(self) -> str:
        return self._buffer

    def push(self, chunk: str) -> None:
        self._cancel_timer()
        self._buffer += chunk
        if "\n" in self._buffer:
            complete, _, self._buffer = self._buffer.rpartition("\n")
            self._enqueue(complete)
        if self._buffer:
            self._timer = asyncio.get_running_loop().call_later(self.buffer_time, self._flush_buffer)

    def publish(self, text: str) -> None:
        self.push(text if text.endswith("\n") else f"{text}\n")

    async def flush(self) -> None:
        self._cancel_timer()
        self._flush_buffer()
        await self._outbox.join()

    async def aclose(self) -> None:
        await self.flush()
        if self._sender is not None:
            self._sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sender
            self._sender = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _flush_buffer(self) -> None:
        self._timer = None
        if self._buffer:
            text, self._buffer = self._buffer, ""
            self._enqueue(text)

    def _enqueue(self, text: str) -> None:
        if not text.strip():
            return
        self._outbox.put_nowait(f"{self.prefix}{text}")
        if self._sender is None:
            self._sender = asyncio.create_task(self._send_loop())

    async def _send_loop(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await deliver(self.sink, text, self.thread_id)
            finally:
                self._outbox.task_done()

    async def __aenter__(self) -> DebounceStreamer:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
