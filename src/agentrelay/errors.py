"""Application-level exception types for agentrelay."""

from __future__ import annotations

from collections.abc import Sequence


class AgentRelayError(Exception):
    """Base exception for agentrelay."""


class ConfigurationError(AgentRelayError):
    """Raised when settings are missing or invalid."""


class SpawnFailure(AgentRelayError):
    """Raised when a child process cannot be started at all."""

    def __init__(self, command: str, args: Sequence[str], reason: str) -> None:
        super().__init__(f"Failed to start {command}: {reason}")
        self.command = command
        self.args_list = list(args)
        self.reason = reason


class ProcessFailure(AgentRelayError):
    """Raised when a child process exits with a non-zero code or by signal."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        *,
        stdout: str = "",
        stderr: str = "",
        exit_code: int | None = None,
        signal: int | None = None,
    ) -> None:
        self.command = command
        self.args_list = list(args)
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.signal = signal
        super().__init__(self._render())

    def _render(self) -> str:
        rendered = " ".join([self.command, *self.args_list])
        status = f"signal {self.signal}" if self.signal is not None else f"exit code {self.exit_code}"
        return f"Command failed ({status}): {rendered}\nSTDOUT: {self.stdout}\nSTDERR: {self.stderr}"


class TimeoutTermination(AgentRelayError):
    """Raised when a process is force-killed for exceeding its deadline."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        *,
        elapsed_seconds: float,
        deadline_seconds: float,
    ) -> None:
        super().__init__(
            f"{command} was terminated after {elapsed_seconds:.1f}s (deadline {deadline_seconds:.1f}s)"
        )
        self.command = command
        self.args_list = list(args)
        self.elapsed_seconds = elapsed_seconds
        self.deadline_seconds = deadline_seconds


class SinkDeliveryFailure(AgentRelayError):
    """Raised when the notification sink rejects a message."""

    def __init__(self, thread_id: str, text: str, reason: str) -> None:
        super().__init__(f"Delivery to {thread_id} failed: {reason}")
        self.thread_id = thread_id
        self.text = text
        self.reason = reason


class SummarizationFailure(AgentRelayError):
    """Raised when an AI batch summary cannot be produced."""


class TaskFailure(AgentRelayError):
    """Raised when an end-to-end agent task does not complete."""
