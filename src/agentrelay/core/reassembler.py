"""Reassemble raw output chunks into complete text lines."""

from __future__ import annotations

import codecs


class StreamReassembler:
    """Stateful decoder that turns byte chunks into complete lines.

    Lines are returned without their `\\n` delimiter. A trailing partial line
    is held back until a later chunk completes it or `flush()` is called.
    Decoding is incremental, so multi-byte characters split across chunks
    are reassembled rather than replaced.
    """

    def __init__(self, encoding: str = "utf-8", errors: str = "replace") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        self._pending += self._decoder.decode(chunk)
        if "\n" not in self._pending:
            return []
        *lines, self._pending = self._pending.split("\n")
        return lines

    def flush(self) -> str | None:
        """Return the held partial line, if any, and reset the buffer."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        self._decoder.reset()
        return tail or None
