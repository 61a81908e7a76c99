"""Process-level loguru setup for appbridge's own diagnostics."""

from __future__ import annotations

import sys
from collections.abc import Callable
from logging import Handler
from typing import Any, Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

from appbridge.config import Settings

LogProfile = Literal["default", "rich"]

_FORMATS: dict[LogProfile, str] = {
    "default": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {name}:{function}:{line} | {extra[instance]} | {message}",
    "rich": "{extra[instance]} | {message}",
}
_configured: tuple[LogProfile, str] | None = None


def _rich_handler() -> Handler:
    return RichHandler(console=get_console(), show_time=False, show_path=False, markup=False, rich_tracebacks=False)


_DESTINATIONS: dict[LogProfile, Callable[[], Any]] = {
    "default": lambda: sys.stderr,
    "rich": _rich_handler,
}


def _default_instance(record: loguru.Record) -> None:
    record["extra"].setdefault("instance", "-")


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> None:
    """Route loguru output through `profile` at `level` (default: `APPBRIDGE_LOG_LEVEL`).

    Repeated calls with the same profile and level are no-ops.
    """

    global _configured
    resolved = (level or Settings().log_level).upper()
    if _configured == (profile, resolved):
        return

    logger.remove()
    logger.configure(patcher=_default_instance)
    logger.add(_DESTINATIONS[profile](), level=resolved, format=_FORMATS[profile], backtrace=False, diagnose=False)
    _configured = (profile, resolved)
    logger.debug("logging.configured profile={} level={}", profile, resolved)
