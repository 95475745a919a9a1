from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

from agentrelay.notify.sink import SendReceipt


class RecordingSink:
    def __init__(self, *, fail_on: set[int] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.sent: list[tuple[str, str]] = []
        self.attempts = 0

    @property
    def texts(self) -> list[str]:
        return [text for text, _thread in self.sent]

    async def send(self, text: str, thread_id: str) -> SendReceipt:
        self.attempts += 1
        if self.attempts in self.fail_on:
            raise RuntimeError(f"send #{self.attempts} rejected")
        self.sent.append((text, thread_id))
        return SendReceipt(id=str(len(self.sent)), timestamp=time.time())


class ListPublisher:
    def __init__(self) -> None:
        self.messages: list[str] = []
        self.closed = False

    def publish(self, text: str) -> None:
        self.messages.append(text)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def flaky_sink() -> RecordingSink:
    return RecordingSink(fail_on={1})


@pytest.fixture
def publisher() -> ListPublisher:
    return ListPublisher()


@pytest.fixture
def python() -> str:
    return sys.executable


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path
