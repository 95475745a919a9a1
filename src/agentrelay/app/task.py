"""End-to-end agent task: clone, plan, supervised execution, pull request."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Awaitable, Callable
from pathlib import Path

from loguru import logger

from agentrelay.backends.base import AgentBackend
from agentrelay.backends.cli import build_backend
from agentrelay.config import Settings
from agentrelay.core.pipeline import ExecutionPipeline
from agentrelay.errors import AgentRelayError, TaskFailure
from agentrelay.notify import build_publisher
from agentrelay.notify.sink import NotificationSink, deliver
from agentrelay.vcs import Git


class AgentTask:
    """Runs one user request against a fresh clone of the target repository.

    Progress notices go straight to the sink; narration from the supervised
    execution goes through the configured publisher.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        backend: AgentBackend | None = None,
        git: Git | None = None,
    ) -> None:
        self.settings = settings
        self.backend = backend or build_backend(
            settings.backend,
            binary=settings.backend_binary,
            model=settings.model,
            timeout_seconds=settings.hard_deadline_seconds,
        )
        self.git = git or Git()

    async def run(self, prompt: str, sink: NotificationSink, thread_id: str) -> str:
        workdir = Path(tempfile.mkdtemp(prefix="agentrelay-"))
        logger.info("task.start thread_id={} workdir={}", thread_id, workdir)

        async def say(text: str) -> None:
            await deliver(sink, text, thread_id)

        try:
            return await self._run(prompt, workdir, say, sink, thread_id)
        except AgentRelayError as exc:
            logger.error("task.failed thread_id={} error={}", thread_id, exc)
            raise TaskFailure(f"Agent task failed: {exc}") from exc
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    async def _run(
        self,
        prompt: str,
        workdir: Path,
        say: Callable[[str], Awaitable[None]],
        sink: NotificationSink,
        thread_id: str,
    ) -> str:
        settings = self.settings
        await self.git.clone(settings.require_repo_url(), workdir)
        await say("✅ Cloned repository successfully.")

        await say("💡 Thinking of a good branch name...")
        branch = await self.backend.generate_branch_name(prompt, workdir)
        await self.git.create_branch(branch, workdir)
        await say(f"🌿 Created and checked out new branch: `{branch}`")

        await say("🤔 Generating an implementation plan...")
        plan = await self.backend.generate_plan(prompt, workdir)
        await say(f"🧠 Here's the plan:\n```\n{plan}\n```\nI will now proceed with the implementation.")

        await say("🏗️ Implementing the plan...")
        async with build_publisher(
            settings, sink, thread_id, summarizer=self.backend, summarizer_cwd=workdir
        ) as publisher:
            pipeline = ExecutionPipeline.from_settings(settings, publisher)
            report = await self.backend.execute_plan(plan, workdir, pipeline)
        logger.info(
            "task.executed run={} commands={} failed={}",
            report.run_id,
            len(report.command_results),
            len(report.failed_commands),
        )

        await say("📝 AI has finished. Staging changes...")
        await self.git.stage_all(workdir)
        changed = await self.git.status_summary(workdir)
        if not changed:
            return f'Task complete for prompt: "{prompt}". The AI found no changes to make.'
        await say(f"📂 Changed files:\n```\n{changed}\n```")

        await say("✍️ Generating commit message and PR details based on the code changes...")
        diff = await self.git.staged_diff(workdir)
        info = await self.backend.generate_commit_info(prompt, diff, workdir)

        await say(f'Committing with message: "{info.commit_message}"')
        await self.git.commit(info.commit_message, workdir)
        await say("🔗 Pushing branch to remote...")
        await self.git.push(branch, workdir)
        await say("🔗 Creating Pull Request on GitHub...")
        url = await self.git.open_pull_request(info.pr_title, info.pr_body, settings.base_branch, workdir)
        logger.info("task.finish thread_id={} pr={}", thread_id, url)
        return f"Task complete! A pull request has been created: {url}"
