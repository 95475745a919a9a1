from __future__ import annotations

import asyncio

import pytest

from agentrelay.notify.streamer import DebounceStreamer


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_complete_lines_are_sent_immediately(sink) -> None:
    streamer = DebounceStreamer(sink, "t1", buffer_time=5)

    streamer.push("line one\nline two\npart")
    await _settle()

    assert sink.texts == ["line one\nline two"]
    assert streamer.buffered == "part"
    await streamer.aclose()
    assert sink.texts == ["line one\nline two", "part"]


@pytest.mark.asyncio
async def test_partial_line_waits_for_quiet_period(sink) -> None:
    streamer = DebounceStreamer(sink, "t1", buffer_time=0.1)

    streamer.push("par")
    await asyncio.sleep(0.05)
    streamer.push("tial")
    await asyncio.sleep(0.05)
    assert sink.texts == []

    await asyncio.sleep(0.15)
    assert sink.texts == ["partial"]
    await streamer.aclose()
    assert sink.texts == ["partial"]


@pytest.mark.asyncio
async def test_flush_delivers_buffer_now(sink) -> None:
    streamer = DebounceStreamer(sink, "t1", buffer_time=5)
    streamer.push("pending")

    await streamer.flush()

    assert sink.texts == ["pending"]
    assert streamer.buffered == ""
    await streamer.aclose()


@pytest.mark.asyncio
async def test_prefix_and_order(sink) -> None:
    async with DebounceStreamer(sink, "t1", prefix="➡️ ", buffer_time=5) as streamer:
        for index in range(5):
            streamer.publish(f"step {index}")

    assert sink.texts == [f"➡️ step {index}" for index in range(5)]
    assert {thread for _text, thread in sink.sent} == {"t1"}


@pytest.mark.asyncio
async def test_blank_output_is_not_sent(sink) -> None:
    async with DebounceStreamer(sink, "t1", buffer_time=5) as streamer:
        streamer.push("\n\n   ")

    assert sink.texts == []


@pytest.mark.asyncio
async def test_sink_failure_does_not_stop_later_messages(flaky_sink) -> None:
    async with DebounceStreamer(flaky_sink, "t1", buffer_time=5) as streamer:
        streamer.publish("lost")
        streamer.publish("kept")

    assert flaky_sink.attempts == 2
    assert flaky_sink.texts == ["kept"]
