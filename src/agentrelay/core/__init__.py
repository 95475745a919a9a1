"""Streaming execution pipeline."""

from agentrelay.core.classifier import Block, BlockKind, FenceClassifier, MarkerClassifier, build_classifier
from agentrelay.core.executor import CommandExecutor, CommandResult
from agentrelay.core.pipeline import ExecutionPipeline, RunReport
from agentrelay.core.process import ExitOutcome, ProcessHandle, ProcessResult, run_buffered, run_streaming
from agentrelay.core.reassembler import StreamReassembler
from agentrelay.core.supervisor import RunOutcome, RunState, RunSupervisor, WatchdogState

__all__ = [
    "Block",
    "BlockKind",
    "CommandExecutor",
    "CommandResult",
    "ExecutionPipeline",
    "ExitOutcome",
    "FenceClassifier",
    "MarkerClassifier",
    "ProcessHandle",
    "ProcessResult",
    "RunOutcome",
    "RunReport",
    "RunState",
    "RunSupervisor",
    "StreamReassembler",
    "WatchdogState",
    "build_classifier",
    "run_buffered",
    "run_streaming",
]
