"""Routing of the /agent-* chat commands."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol

from loguru import logger

from agentrelay.app.controller import AgentController
from agentrelay.notify.sink import NotificationSink

Reply = Callable[[str], Awaitable[None]]

AGENT_ON = "agent-on"
AGENT_OFF = "agent-off"
AGENT_DO = "agent-do"


class TaskRunner(Protocol):
    async def run(self, prompt: str, sink: NotificationSink, thread_id: str) -> str: ...


def normalize_command(name: str) -> str:
    """`/agent_do` and `agent-do` both map to `agent-do`."""
    return name.strip().lstrip("/").split("@", 1)[0].replace("_", "-").lower()


class CommandDispatcher:
    def __init__(self, controller: AgentController, tasks: TaskRunner) -> None:
        self.controller = controller
        self.tasks = tasks

    async def dispatch(
        self,
        command: str,
        text: str,
        *,
        reply: Reply,
        sink: NotificationSink,
        thread_id: str,
    ) -> None:
        name = normalize_command(command)
        if name == AGENT_ON:
            self.controller.enable()
            await reply("✅ AI Agent is now **ON**. Ready to accept tasks.")
        elif name == AGENT_OFF:
            self.controller.disable()
            await reply("❌ AI Agent is now **OFF**. It will not process new tasks.")
        elif name == AGENT_DO:
            await self.agent_do(text, reply=reply, sink=sink, thread_id=thread_id)
        else:
            await reply(f"Unknown command: /{name}")

    async def agent_do(self, prompt: str, *, reply: Reply, sink: NotificationSink, thread_id: str) -> None:
        if not self.controller.is_enabled:
            logger.info("dispatch.rejected reason=disabled")
            await reply("Agent is currently disabled. Use `/agent-on` to enable it.")
            return
        prompt = prompt.strip()
        if not prompt:
            logger.info("dispatch.rejected reason=empty_prompt")
            await reply("Please provide a prompt. Usage: `/agent-do <your task>`")
            return

        await reply(f'🚀 Task received: "{prompt}". The AI agent is starting its work. This may take a few minutes...')
        logger.info("dispatch.task.start thread_id={} prompt={}", thread_id, prompt[:100])
        try:
            result = await self.tasks.run(prompt, sink, thread_id)
        except Exception as exc:
            logger.exception("dispatch.task.error thread_id={}", thread_id)
            await reply(
                f'🚨 An error occurred while processing your task for "{prompt}".\n\n'
                f"```\n{str(exc) or 'Unknown error occurred.'}\n```\nCheck the server logs for more details."
            )
            return
        logger.info("dispatch.task.finish thread_id={}", thread_id)
        await reply(f"✅ {result}")
