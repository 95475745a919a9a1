"""Enable/disable switch for new agent runs."""

from __future__ import annotations

from loguru import logger


class AgentController:
    def __init__(self, *, enabled: bool = True) -> None:
        self._enabled = enabled

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True
        logger.info("agent.controller.enabled")

    def disable(self) -> None:
        self._enabled = False
        logger.info("agent.controller.disabled")
