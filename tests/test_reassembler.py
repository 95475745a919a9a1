from __future__ import annotations

import pytest

from agentrelay.core.reassembler import StreamReassembler


def _reassemble(chunks: list[bytes]) -> str:
    reassembler = StreamReassembler()
    lines: list[str] = []
    for chunk in chunks:
        lines.extend(line + "\n" for line in reassembler.feed(chunk))
    tail = reassembler.flush()
    return "".join(lines) + (tail or "")


def _split(data: bytes, size: int) -> list[bytes]:
    return [data[index : index + size] for index in range(0, len(data), size)]


@pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 64])
def test_round_trip_at_arbitrary_boundaries(size: int) -> None:
    text = "Step 1 done\nnaïve café ✅ → 日本語\n\n```bash\necho hi\n```\ntrailing partial"
    assert _reassemble(_split(text.encode("utf-8"), size)) == text


def test_multibyte_character_split_across_chunks() -> None:
    data = "✅ ok\n".encode()
    reassembler = StreamReassembler()

    assert reassembler.feed(data[:1]) == []
    assert reassembler.feed(data[1:2]) == []
    assert reassembler.feed(data[2:]) == ["✅ ok"]


def test_partial_line_is_held_until_completed() -> None:
    reassembler = StreamReassembler()

    assert reassembler.feed(b"hel") == []
    assert reassembler.pending == "hel"
    assert reassembler.feed(b"lo\nwor") == ["hello"]
    assert reassembler.pending == "wor"
    assert reassembler.flush() == "wor"
    assert reassembler.pending == ""


def test_empty_chunk_is_noop() -> None:
    reassembler = StreamReassembler()
    reassembler.feed(b"abc")

    assert reassembler.feed(b"") == []
    assert reassembler.pending == "abc"


def test_flush_without_pending_returns_none() -> None:
    reassembler = StreamReassembler()
    assert reassembler.feed(b"one\ntwo\n") == ["one", "two"]
    assert reassembler.flush() is None


def test_blank_lines_are_preserved() -> None:
    reassembler = StreamReassembler()
    assert reassembler.feed(b"a\n\n\nb\n") == ["a", "", "", "b"]
