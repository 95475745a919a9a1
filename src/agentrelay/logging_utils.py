"""Loguru setup for the command line entry points.

One-shot commands (`exec`, `task`) log plain lines to stderr so stdout stays
free for narration. The long-running bot (`serve`) logs through rich.
"""

from __future__ import annotations

import os
import sys
from logging import Handler
from typing import Literal, TextIO

from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

_FORMATS: dict[LogProfile, str] = {
    "default": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | run={extra[run]} | {name}:{line} | {message}",
    # RichHandler renders the level column itself
    "chat": "run={extra[run]} | {message}",
}
_active_profile: LogProfile | None = None


def _sink_for(profile: LogProfile) -> Handler | TextIO:
    if profile == "chat":
        return RichHandler(console=get_console(), show_time=False, show_path=False, markup=False)
    return sys.stderr


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> None:
    """Route loguru output for `profile`; repeated calls for the same profile are no-ops."""
    global _active_profile
    if profile == _active_profile:
        return

    logger.remove()
    logger.configure(extra={"run": "-"})
    logger.add(
        _sink_for(profile),
        level=(level or os.getenv("AGENTRELAY_LOG_LEVEL", "INFO")).upper(),
        format=_FORMATS[profile],
        backtrace=False,
        diagnose=False,
    )
    _active_profile = profile
