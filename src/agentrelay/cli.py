"""agentrelay command line."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from loguru import logger

from agentrelay import __version__
from agentrelay.app import AgentController, AgentTask, CommandDispatcher
from agentrelay.backends.cli import build_backend
from agentrelay.channels.telegram import TelegramChannel, TelegramConfig
from agentrelay.config import Settings, get_settings
from agentrelay.core.pipeline import ExecutionPipeline, RunReport
from agentrelay.errors import AgentRelayError
from agentrelay.logging_utils import LogProfile, configure_logging
from agentrelay.notify import StdoutSink, build_publisher

app = typer.Typer(
    name="agentrelay",
    help="Relay a coding agent's narration to chat and run the shell blocks it writes.",
    add_completion=False,
)

LOCAL_THREAD = "local"


def _load_settings(env_file: Path | None, *, profile: LogProfile = "default") -> Settings:
    try:
        settings = get_settings(env_file)
    except AgentRelayError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(2) from exc
    configure_logging(profile=profile, level=settings.log_level)
    return settings


def _fail(exc: Exception) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(1)


async def _exec(settings: Settings, prompt: str, workdir: Path) -> RunReport:
    backend = build_backend(settings.backend, binary=settings.backend_binary, model=settings.model)
    async with build_publisher(
        settings, StdoutSink(), LOCAL_THREAD, summarizer=backend, summarizer_cwd=workdir
    ) as publisher:
        pipeline = ExecutionPipeline.from_settings(settings, publisher)
        return await backend.execute_plan(prompt, workdir, pipeline)


@app.command("exec")
def exec_(
    prompt: str = typer.Argument(..., help="Instructions for the agent"),
    workdir: Path = typer.Option(Path("."), "--workdir", "-w", help="Directory the agent works in"),  # noqa: B008
    env_file: Path | None = typer.Option(None, "--env-file", help="Optional .env file"),  # noqa: B008
) -> None:
    """Run one supervised agent execution against a local directory."""
    settings = _load_settings(env_file)
    try:
        report = asyncio.run(_exec(settings, prompt, workdir.resolve()))
    except AgentRelayError as exc:
        raise _fail(exc) from exc
    failed = len(report.failed_commands)
    typer.echo(f"Run {report.run_id} finished: {len(report.command_results)} commands, {failed} failed.")


@app.command()
def task(
    prompt: str = typer.Argument(..., help="Task for the agent"),
    env_file: Path | None = typer.Option(None, "--env-file", help="Optional .env file"),  # noqa: B008
) -> None:
    """Clone the target repository, run the agent and open a pull request."""
    settings = _load_settings(env_file)
    try:
        result = asyncio.run(AgentTask(settings).run(prompt, StdoutSink(), LOCAL_THREAD))
    except AgentRelayError as exc:
        raise _fail(exc) from exc
    typer.echo(result)


@app.command()
def serve(
    env_file: Path | None = typer.Option(None, "--env-file", help="Optional .env file"),  # noqa: B008
) -> None:
    """Start the Telegram bot and accept /agent_* commands."""
    settings = _load_settings(env_file, profile="chat")
    if not settings.telegram_token:
        typer.echo("AGENTRELAY_TELEGRAM_TOKEN is not set.", err=True)
        raise typer.Exit(2)
    dispatcher = CommandDispatcher(AgentController(), AgentTask(settings))
    channel = TelegramChannel(
        TelegramConfig(token=settings.telegram_token, allow_from=settings.allowed_senders), dispatcher
    )

    async def _serve() -> None:
        try:
            await channel.start()
        finally:
            await channel.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("serve.interrupted")


@app.command()
def version() -> None:
    """Show the installed version."""
    typer.echo(__version__)


if __name__ == "__main__":
    app()
