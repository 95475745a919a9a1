"""Notification sink contract and the stdout sink."""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from rich.console import Console
from rich.markdown import Markdown

from agentrelay.errors import SinkDeliveryFailure


@dataclass(frozen=True)
class SendReceipt:
    """Acknowledgement returned by a sink for one delivered message."""

    id: str
    timestamp: float


class NotificationSink(Protocol):
    async def send(self, text: str, thread_id: str) -> SendReceipt: ...


class NarrationPublisher(Protocol):
    """Paced outbound path used by the pipeline for everything it reports."""

    def publish(self, text: str) -> None: ...

    async def aclose(self) -> None: ...


async def deliver(sink: NotificationSink, text: str, thread_id: str) -> SendReceipt | None:
    """Send one message, logging instead of raising when the sink rejects it."""
    try:
        return await sink.send(text, thread_id)
    except Exception as exc:
        failure = SinkDeliveryFailure(thread_id, text, str(exc))
        logger.opt(exception=exc).error("sink.delivery.error thread_id={} error={}", thread_id, failure.reason)
        return None


class StdoutSink:
    """Renders messages to the terminal; used by the local CLI commands."""

    def __init__(self, console: Console | None = None, *, markdown: bool = True) -> None:
        self.console = console or Console()
        self.markdown = markdown
        self._ids = itertools.count(1)

    async def send(self, text: str, thread_id: str) -> SendReceipt:
        self.console.rule(f"[dim]{thread_id}[/dim]", style="dim")
        if self.markdown:
            self.console.print(Markdown(text))
        else:
            self.console.print(text, markup=False, highlight=False)
        return SendReceipt(id=str(next(self._ids)), timestamp=time.time())
