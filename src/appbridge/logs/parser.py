"""Turn raw backend lines and frontend console events into levelled messages."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from appbridge.types import LogLevel

_LEVEL_PATTERNS: tuple[tuple[LogLevel, re.Pattern[str]], ...] = (
    (LogLevel.ERROR, re.compile(r"\berror\b", re.IGNORECASE)),
    (LogLevel.WARN, re.compile(r"\b(warn|warning)\b", re.IGNORECASE)),
    (LogLevel.INFO, re.compile(r"\binfo\b", re.IGNORECASE)),
    (LogLevel.DEBUG, re.compile(r"\bdebug\b", re.IGNORECASE)),
    (LogLevel.TRACE, re.compile(r"\btrace\b", re.IGNORECASE)),
)

_DRIVER_NOISE = re.compile(
    r"tauri-driver|listening on|started successfully|WebKitWebDriver|native driver|chromedriver",
    re.IGNORECASE,
)
_TIMESTAMP = re.compile(r"\[\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}[.\d]*Z?\]")
_LEVEL_BRACKET = re.compile(r"\[(error|warn|warning|info|debug|trace)\]", re.IGNORECASE)
_LEADING_COLON = re.compile(r"^:\s*")

_CONSOLE_LEVELS: dict[str, LogLevel] = {
    "error": LogLevel.ERROR,
    "assert": LogLevel.ERROR,
    "warning": LogLevel.WARN,
    "warn": LogLevel.WARN,
    "info": LogLevel.INFO,
    "log": LogLevel.INFO,
    "debug": LogLevel.DEBUG,
    "trace": LogLevel.DEBUG,
    # WebDriver browser log levels.
    "severe": LogLevel.ERROR,
    "fine": LogLevel.DEBUG,
    "finer": LogLevel.DEBUG,
    "finest": LogLevel.TRACE,
}


@dataclass(frozen=True)
class ParsedLine:
    level: LogLevel
    message: str
    raw: str


def detect_level(line: str) -> LogLevel | None:
    for level, pattern in _LEVEL_PATTERNS:
        if pattern.search(line):
            return level
    return None


def is_driver_noise(line: str) -> bool:
    return _DRIVER_NOISE.search(line) is not None


def clean_message(line: str) -> str:
    cleaned = _TIMESTAMP.sub("", line)
    cleaned = _LEVEL_BRACKET.sub("", cleaned)
    return _LEADING_COLON.sub("", cleaned.strip()).strip()


def parse_log_line(line: str) -> ParsedLine | None:
    """Parse one line of native backend output.

    Returns None for blank lines, automation-driver chatter, and lines that
    are empty once timestamps and level brackets are removed. Lines without
    a recognisable level count as info.
    """

    raw = line.strip()
    if not raw or is_driver_noise(raw):
        return None
    message = clean_message(raw)
    if not message:
        return None
    return ParsedLine(level=detect_level(raw) or LogLevel.INFO, message=message, raw=raw)


def parse_log_lines(chunk: str) -> list[ParsedLine]:
    return [parsed for line in chunk.splitlines() if (parsed := parse_log_line(line)) is not None]


def console_level(kind: str) -> LogLevel:
    return _CONSOLE_LEVELS.get(kind.strip().lower(), LogLevel.INFO)


def parse_console_event(event: dict[str, Any]) -> ParsedLine | None:
    """Parse one frontend console event `{"type", "args", "stack"?}`.

    WebDriver-style entries carrying `level` and `message` are accepted too.
    """

    if "args" not in event and "message" in event:
        kind = str(event.get("level") or "info")
        message = str(event.get("message") or "").strip()
    else:
        kind = str(event.get("type") or "log")
        message = " ".join(_format_arg(arg) for arg in event.get("args") or ()).strip()

    stack = event.get("stack")
    if stack:
        message = f"{message}\n{str(stack).rstrip()}" if message else str(stack).rstrip()
    if not message:
        return None
    return ParsedLine(level=console_level(kind), message=message, raw=json.dumps(event, default=str))


def _format_arg(arg: Any) -> str:
    if isinstance(arg, str):
        return arg
    if arg is None:
        return "null"
    return json.dumps(arg, default=str)
