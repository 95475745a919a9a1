from agentrelay.channels.telegram import TelegramChannel, TelegramConfig

__all__ = ["TelegramChannel", "TelegramConfig"]
