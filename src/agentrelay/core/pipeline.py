"""One supervised streaming run of the outer agent process."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

from loguru import logger

from agentrelay.core.classifier import DEFAULT_NARRATION_MARKER, Block, BlockKind, build_classifier
from agentrelay.core.executor import CommandExecutor, CommandResult
from agentrelay.core.process import run_streaming
from agentrelay.core.reassembler import StreamReassembler
from agentrelay.core.supervisor import RunOutcome, RunState, RunSupervisor
from agentrelay.errors import ProcessFailure, TimeoutTermination
from agentrelay.notify.sink import NarrationPublisher

if TYPE_CHECKING:
    from agentrelay.config import Settings


@dataclass
class RunReport:
    """What happened during one pipeline run."""

    run_id: str
    command: str
    outcome: RunOutcome | None = None
    command_results: list[CommandResult] = field(default_factory=list)
    narration_blocks: int = 0
    output_lines: int = 0
    skipped_commands: int = 0

    @property
    def failed_commands(self) -> list[CommandResult]:
        return [result for result in self.command_results if not result.success]


class ExecutionPipeline:
    """Reassembles, classifies and routes the output of one agent process.

    Narration and command results go to the publisher; command blocks run in
    discovery order between reads, each bounded by the time left before the
    hard deadline. Once the run has timed out, command blocks still in the
    stream are delivered as narration and never executed. Spawn failures, non-zero exits and
    deadline kills of the outer process are raised to the caller.
    """

    def __init__(
        self,
        publisher: NarrationPublisher,
        *,
        executor: CommandExecutor | None = None,
        classifier_mode: str = "fence",
        narration_marker: str = DEFAULT_NARRATION_MARKER,
        silence_threshold: float = 300.0,
        hard_deadline: float = 3600.0,
        watchdog_interval: float = 60.0,
        drain_grace: float = 5.0,
    ) -> None:
        self.publisher = publisher
        self.executor = executor or CommandExecutor()
        self.classifier_mode = classifier_mode
        self.narration_marker = narration_marker
        self.silence_threshold = silence_threshold
        self.hard_deadline = hard_deadline
        self.watchdog_interval = watchdog_interval
        self.drain_grace = drain_grace

    @classmethod
    def from_settings(cls, settings: Settings, publisher: NarrationPublisher) -> ExecutionPipeline:
        return cls(
            publisher,
            executor=CommandExecutor(timeout_seconds=settings.command_timeout_seconds),
            classifier_mode=settings.classifier,
            narration_marker=settings.narration_marker,
            silence_threshold=settings.silence_threshold_seconds,
            hard_deadline=settings.hard_deadline_seconds,
            watchdog_interval=settings.watchdog_interval_seconds,
        )

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path | str | None = None,
        stdin: str | None = None,
    ) -> RunReport:
        report = RunReport(run_id=uuid4().hex[:8], command=command)
        with logger.contextualize(run=report.run_id):
            handle = await run_streaming(command, args, cwd=cwd, stdin=stdin)
            supervisor = RunSupervisor(
                silence_threshold=self.silence_threshold,
                hard_deadline=self.hard_deadline,
                check_interval=self.watchdog_interval,
                drain_grace=self.drain_grace,
                notify=self.publisher.publish,
            )
            reassembler = StreamReassembler()
            classifier = build_classifier(self.classifier_mode, marker=self.narration_marker)

            async def consume(chunks: AsyncIterator[bytes]) -> None:
                async for chunk in chunks:
                    lines = reassembler.feed(chunk)
                    if lines:
                        await self._dispatch(classifier.feed(lines), cwd, report, supervisor)
                tail = reassembler.flush()
                blocks = classifier.feed([tail]) if tail is not None else []
                blocks.extend(classifier.finish())
                await self._dispatch(blocks, cwd, report, supervisor)

            report.outcome = await supervisor.supervise(handle, consume)
            logger.info(
                "pipeline.finish state={} commands={} failed={} skipped={} narration={}",
                report.outcome.state,
                len(report.command_results),
                len(report.failed_commands),
                report.skipped_commands,
                report.narration_blocks,
            )

        outcome = report.outcome
        if outcome.state is RunState.TIMED_OUT:
            raise TimeoutTermination(
                command,
                args,
                elapsed_seconds=outcome.elapsed_seconds,
                deadline_seconds=self.hard_deadline,
            )
        if outcome.state is RunState.FAILED:
            exit_outcome = outcome.exit
            raise ProcessFailure(
                command,
                args,
                stderr=handle.stderr,
                exit_code=exit_outcome.exit_code if exit_outcome else None,
                signal=exit_outcome.signal if exit_outcome else None,
            )
        return report

    async def _dispatch(
        self,
        blocks: Iterable[Block],
        cwd: Path | str | None,
        report: RunReport,
        supervisor: RunSupervisor,
    ) -> None:
        for block in blocks:
            if block.kind is BlockKind.NARRATION:
                report.narration_blocks += 1
                if block.text.strip():
                    self.publisher.publish(block.text)
            elif block.kind is BlockKind.COMMAND:
                remaining = supervisor.remaining()
                if supervisor.state is not RunState.RUNNING or remaining == 0:
                    report.skipped_commands += 1
                    logger.warning("pipeline.command.skipped state={} command={}", supervisor.state, block.text)
                    self.publisher.publish("\n".join(block.source_lines))
                    continue
                result = await self.executor.execute(block, cwd, timeout=remaining)
                report.command_results.append(result)
                self.publisher.publish(result.render())
            else:
                report.output_lines += len(block.source_lines)
                logger.debug("pipeline.output {}", block.text)
