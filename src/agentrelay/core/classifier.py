"""Split reassembled output lines into narration and command blocks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

FENCE = "```"
COMMAND_LANGUAGES = frozenset({"bash", "sh"})
DEFAULT_NARRATION_MARKER = ">> "


class BlockKind(StrEnum):
    NARRATION = "narration"
    COMMAND = "command"
    OUTPUT = "output"


@dataclass(frozen=True)
class Block:
    """One classified unit of agent output.

    `text` is what gets delivered or executed; `source_lines` are the input
    lines the block was built from, fence markers included.
    """

    kind: BlockKind
    text: str
    language: str | None = None
    source_lines: tuple[str, ...] = ()
    degraded: bool = False


class BlockClassifier(ABC):
    """Incremental classifier fed with groups of complete lines."""

    def __init__(self) -> None:
        self._run_kind: BlockKind | None = None
        self._run_text: list[str] = []
        self._run_source: list[str] = []

    @abstractmethod
    def _consume(self, line: str) -> list[Block]:
        """Take one line and return the blocks it completes."""

    def _close_pending(self) -> list[Block]:
        """Return blocks still open at end of input."""
        return []

    def feed(self, lines: Iterable[str]) -> list[Block]:
        """Classify a group of lines; narration is not held past the group."""
        blocks: list[Block] = []
        for line in lines:
            blocks.extend(self._consume(line))
        blocks.extend(self._drain_run())
        return blocks

    def finish(self) -> list[Block]:
        blocks = self._drain_run()
        blocks.extend(self._close_pending())
        return blocks

    def classify(self, lines: Iterable[str]) -> Iterator[Block]:
        """Lazily classify a whole line sequence, merging adjacent runs."""
        for line in lines:
            yield from self._consume(line)
        yield from self.finish()

    def _append_run(self, kind: BlockKind, text: str, source: str) -> list[Block]:
        drained = self._drain_run() if self._run_kind not in (None, kind) else []
        self._run_kind = kind
        self._run_text.append(text)
        self._run_source.append(source)
        return drained

    def _drain_run(self) -> list[Block]:
        if self._run_kind is None:
            return []
        block = Block(
            kind=self._run_kind,
            text="\n".join(self._run_text),
            source_lines=tuple(self._run_source),
        )
        self._run_kind = None
        self._run_text = []
        self._run_source = []
        return [block]


class FenceClassifier(BlockClassifier):
    """Markdown fence grammar: ```bash / ```sh blocks are commands.

    Any other fenced block, and all text outside fences, is narration. A fence
    still open at end of input is delivered as degraded narration.
    """

    def __init__(self) -> None:
        super().__init__()
        self._fence_open: str | None = None
        self._fence_language: str | None = None
        self._fence_body: list[str] = []

    @property
    def inside_fence(self) -> bool:
        return self._fence_open is not None

    def _consume(self, line: str) -> list[Block]:
        if self._fence_open is None:
            if line.startswith(FENCE):
                blocks = self._drain_run()
                self._fence_open = line
                self._fence_language = line[len(FENCE) :].strip() or None
                self._fence_body = []
                return blocks
            return self._append_run(BlockKind.NARRATION, line, line)

        if line.rstrip() == FENCE:
            return [self._close_fence(line)]
        self._fence_body.append(line)
        return []

    def _close_fence(self, closing: str) -> Block:
        opening = self._fence_open or FENCE
        language = self._fence_language
        body = self._fence_body
        source = (opening, *body, closing)
        self._fence_open = None
        self._fence_language = None
        self._fence_body = []
        if language in COMMAND_LANGUAGES:
            return Block(
                kind=BlockKind.COMMAND,
                text="\n".join(body),
                language=language,
                source_lines=source,
            )
        return Block(
            kind=BlockKind.NARRATION,
            text="\n".join(source),
            language=language,
            source_lines=source,
        )

    def _close_pending(self) -> list[Block]:
        if self._fence_open is None:
            return []
        source = (self._fence_open, *self._fence_body)
        logger.warning(
            "classifier.unterminated_fence language={} lines={}", self._fence_language, len(source)
        )
        block = Block(
            kind=BlockKind.NARRATION,
            text="\n".join(source),
            language=self._fence_language,
            source_lines=source,
            degraded=True,
        )
        self._fence_open = None
        self._fence_language = None
        self._fence_body = []
        return [block]


class MarkerClassifier(BlockClassifier):
    """Legacy line-prefix grammar.

    Lines starting with the marker are narration (marker stripped); every
    other line is opaque process output that is only logged.
    """

    def __init__(self, marker: str = DEFAULT_NARRATION_MARKER) -> None:
        super().__init__()
        if not marker:
            raise ValueError("narration marker must not be empty")
        self.marker = marker

    def _consume(self, line: str) -> list[Block]:
        if line.startswith(self.marker):
            return self._append_run(BlockKind.NARRATION, line[len(self.marker) :], line)
        return self._append_run(BlockKind.OUTPUT, line, line)


def build_classifier(mode: str = "fence", *, marker: str = DEFAULT_NARRATION_MARKER) -> BlockClassifier:
    if mode == "fence":
        return FenceClassifier()
    if mode == "marker":
        return MarkerClassifier(marker)
    raise ValueError(f"unknown classifier mode: {mode}")


def classify(lines: Iterable[str], *, mode: str = "fence", marker: str = DEFAULT_NARRATION_MARKER) -> Iterator[Block]:
    """Classify a finite line sequence with a fresh classifier."""
    return build_classifier(mode, marker=marker).classify(lines)
