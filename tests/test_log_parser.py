from __future__ import annotations

import pytest

from appbridge.logs.parser import (
    clean_message,
    console_level,
    detect_level,
    parse_console_event,
    parse_log_line,
    parse_log_lines,
)
from appbridge.logs.records import LogRecord
from appbridge.types import LogLevel, SourceKind


@pytest.mark.parametrize(
    ("line", "level"),
    [
        ("[ERROR] database unreachable", LogLevel.ERROR),
        ("warning: cache is cold", LogLevel.WARN),
        ("INFO started", LogLevel.INFO),
        ("debug: tick", LogLevel.DEBUG),
        ("trace enter main", LogLevel.TRACE),
        ("an error and a warning", LogLevel.ERROR),
        ("errors everywhere", None),
    ],
)
def test_detect_level(line: str, level: LogLevel | None) -> None:
    assert detect_level(line) is level


def test_clean_message_strips_timestamp_and_level() -> None:
    assert clean_message("[2024-05-01T10:00:00.123Z] [INFO]: window ready") == "window ready"


def test_plain_lines_default_to_info() -> None:
    parsed = parse_log_line("window ready")

    assert parsed is not None
    assert parsed.level is LogLevel.INFO
    assert parsed.message == "window ready"


def test_noise_and_empty_lines_are_dropped() -> None:
    assert parse_log_line("   ") is None
    assert parse_log_line("tauri-driver listening on port 4444") is None
    assert parse_log_line("[2024-05-01T10:00:00Z] [DEBUG]") is None


def test_chunk_is_split_into_lines() -> None:
    parsed = parse_log_lines("[WARN] low memory\n\n[ERROR] crashed\n")

    assert [(item.level, item.message) for item in parsed] == [
        (LogLevel.WARN, "low memory"),
        (LogLevel.ERROR, "crashed"),
    ]


def test_console_levels() -> None:
    assert console_level("warn") is LogLevel.WARN
    assert console_level("SEVERE") is LogLevel.ERROR
    assert console_level("log") is LogLevel.INFO
    assert console_level("finest") is LogLevel.TRACE
    assert console_level("something-else") is LogLevel.INFO


def test_console_event_joins_args_and_appends_stack() -> None:
    parsed = parse_console_event({"type": "error", "args": ["failed:", {"code": 7}, None], "stack": "at main.js:1"})

    assert parsed is not None
    assert parsed.level is LogLevel.ERROR
    assert parsed.message == 'failed: {"code": 7} null\nat main.js:1'


def test_webdriver_entries_are_accepted() -> None:
    parsed = parse_console_event({"level": "WARNING", "message": "deprecated api"})

    assert parsed is not None
    assert parsed.level is LogLevel.WARN
    assert parsed.message == "deprecated api"
    assert parse_console_event({"type": "log", "args": []}) is None


def test_record_tag_includes_instance_only_when_present() -> None:
    shared = LogRecord(SourceKind.BACKEND, LogLevel.INFO, "up", framework="Tauri")
    named = LogRecord(SourceKind.FRONTEND, LogLevel.INFO, "up", instance_id="app-1", framework="Tauri")

    assert shared.render() == "[Tauri:Backend] up"
    assert named.tag == "[Tauri:Frontend:app-1]"
