"""Telegram front-end: command intake and notification sink."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from loguru import logger
from telegram import Update
from telegram.error import BadRequest
from telegram.ext import Application, CommandHandler, ContextTypes
from telegramify_markdown import markdownify as md

from agentrelay.app.dispatch import AGENT_DO, AGENT_OFF, AGENT_ON, CommandDispatcher
from agentrelay.notify.sink import SendReceipt, deliver

MAX_MESSAGE_LENGTH = 4000
COMMANDS = {AGENT_ON: "agent_on", AGENT_OFF: "agent_off", AGENT_DO: "agent_do"}


@dataclass(frozen=True)
class TelegramConfig:
    """Telegram adapter config."""

    token: str
    allow_from: set[str]


def parse_thread_id(thread_id: str) -> tuple[int, int | None]:
    """`chat_id` or `chat_id:message_id` (reply in thread)."""
    chat, _, message = thread_id.partition(":")
    return int(chat), int(message) if message else None


class TelegramChannel:
    """Telegram adapter using long polling mode."""

    name = "telegram"

    def __init__(self, config: TelegramConfig, dispatcher: CommandDispatcher) -> None:
        self._config = config
        self._dispatcher = dispatcher
        self._app: Application | None = None
        self._running = False

    async def start(self) -> None:
        if not self._config.token:
            raise RuntimeError("telegram token is empty")
        logger.info("telegram.channel.start allow_from_count={}", len(self._config.allow_from))
        self._running = True
        self._app = Application.builder().token(self._config.token).build()
        for handler_name in COMMANDS.values():
            # Tasks run for minutes; keep polling while they do.
            self._app.add_handler(CommandHandler(handler_name, self._on_command, block=False))
        await self._app.initialize()
        await self._app.start()
        updater = self._app.updater
        if updater is None:
            return
        await updater.start_polling(drop_pending_updates=True, allowed_updates=["message"])
        logger.info("telegram.channel.polling")
        while self._running:
            await asyncio.sleep(0.5)

    async def stop(self) -> None:
        self._running = False
        if self._app is None:
            return
        updater = self._app.updater
        if updater is not None:
            await updater.stop()
        await self._app.stop()
        await self._app.shutdown()
        self._app = None
        logger.info("telegram.channel.stopped")

    async def send(self, text: str, thread_id: str) -> SendReceipt:
        if self._app is None:
            raise RuntimeError("telegram channel is not started")
        chat_id, reply_to = parse_thread_id(thread_id)

        rendered = md(text)
        if len(rendered.encode("utf-8")) > MAX_MESSAGE_LENGTH:
            rendered = f"<blockquote expandable>{rendered}</blockquote>"
            parse_mode = "HTML"
        else:
            parse_mode = "MarkdownV2"

        try:
            message = await self._app.bot.send_message(
                chat_id=chat_id, text=rendered, parse_mode=parse_mode, reply_to_message_id=reply_to
            )
        except BadRequest as exc:
            logger.warning("telegram.channel.send.plain_fallback chat_id={} error={}", chat_id, exc)
            message = await self._app.bot.send_message(
                chat_id=chat_id, text=text, parse_mode=None, reply_to_message_id=reply_to
            )
        sent_at = message.date.timestamp() if message.date is not None else time.time()
        return SendReceipt(id=str(message.message_id), timestamp=sent_at)

    def is_allowed(self, user_id: int, username: str | None) -> bool:
        if not self._config.allow_from:
            return True
        sender_tokens = {str(user_id)}
        if username:
            sender_tokens.add(username)
        return not sender_tokens.isdisjoint(self._config.allow_from)

    async def _on_command(self, update: Update, _context: ContextTypes.DEFAULT_TYPE) -> None:
        if update.message is None or update.effective_user is None:
            return
        user = update.effective_user
        if not self.is_allowed(user.id, user.username):
            await update.message.reply_text("Access denied.")
            return

        command, _, text = (update.message.text or "").partition(" ")
        thread_id = f"{update.message.chat_id}:{update.message.message_id}"
        logger.info(
            "telegram.channel.command chat_id={} sender_id={} username={} command={}",
            update.message.chat_id,
            user.id,
            user.username or "",
            command,
        )

        async def reply(reply_text: str) -> None:
            await deliver(self, reply_text, thread_id)

        await self._dispatcher.dispatch(command, text, reply=reply, sink=self, thread_id=thread_id)
