from __future__ import annotations

from typing import TYPE_CHECKING

from agentrelay.notify.batcher import IntervalBatcher
from agentrelay.notify.sink import NarrationPublisher, NotificationSink, SendReceipt, StdoutSink, deliver
from agentrelay.notify.streamer import DebounceStreamer

if TYPE_CHECKING:
    from pathlib import Path

    from agentrelay.backends.base import TextGenerator
    from agentrelay.config import Settings


def build_publisher(
    settings: Settings,
    sink: NotificationSink,
    thread_id: str,
    *,
    summarizer: TextGenerator | None = None,
    summarizer_cwd: Path | str | None = None,
) -> IntervalBatcher | DebounceStreamer:
    """Pick the narration delivery strategy configured in `settings`.

    `summarizer_cwd` is where batch summaries run; pass the run's workdir.
    """
    if settings.delivery == "stream":
        return DebounceStreamer(
            sink,
            thread_id,
            prefix=settings.stream_prefix,
            buffer_time=settings.stream_buffer_seconds,
        )
    return IntervalBatcher(
        sink,
        thread_id,
        interval=settings.batch_interval_seconds,
        max_batch_size=settings.max_batch_size,
        summarizer=summarizer if settings.summarize_batches else None,
        summarizer_cwd=summarizer_cwd,
    )


__all__ = [
    "DebounceStreamer",
    "IntervalBatcher",
    "NarrationPublisher",
    "NotificationSink",
    "SendReceipt",
    "StdoutSink",
    "build_publisher",
    "deliver",
]
