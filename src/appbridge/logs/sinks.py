"""Destinations for tagged log records."""

from __future__ import annotations

import os
from collections.abc import Awaitable
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Protocol, runtime_checkable

from loguru import logger

from appbridge.config import Settings
from appbridge.logs.records import LogRecord
from appbridge.types import LogLevel

LOGURU_LEVELS: dict[LogLevel, str] = {
    LogLevel.TRACE: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARN: "WARNING",
    LogLevel.ERROR: "ERROR",
}


@runtime_checkable
class LogSink(Protocol):
    def write(self, record: LogRecord) -> Awaitable[None] | None: ...


class LoguruSink:
    """Forward records to loguru at the matching level (runner mode)."""

    def write(self, record: LogRecord) -> None:
        logger.bind(instance=record.instance_id or "-").log(LOGURU_LEVELS[record.level], "{}", record.render())


class FileLogSink:
    """Standalone-mode writer: `<base>/logs/standalone-<app>/appbridge-<timestamp>.log`."""

    def __init__(self, app_name: str, base_dir: Path | str | None = None) -> None:
        base = Path(base_dir) if base_dir is not None else Path(os.getcwd())
        self.log_dir = base / "logs" / f"standalone-{app_name}"
        stamp = datetime.now(UTC).isoformat(timespec="milliseconds").replace(":", "-").replace(".", "-")
        self.log_file = self.log_dir / f"appbridge-{stamp}.log"
        self._stream: IO[str] | None = None

    @classmethod
    def from_settings(cls, app_name: str, settings: Settings) -> FileLogSink:
        return cls(app_name, settings.log_dir)

    def write(self, record: LogRecord) -> None:
        if self._stream is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._stream = self.log_file.open("a", encoding="utf-8")
        timestamp = datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        self._stream.write(f"{timestamp} {record.level.name} appbridge: {record.render()}\n")

    def flush(self) -> None:
        if self._stream is not None:
            self._stream.flush()

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


class MemoryLogSink:
    """Keep every record in memory; used by tests and by `records_for`."""

    def __init__(self) -> None:
        self.records: list[LogRecord] = []

    def write(self, record: LogRecord) -> None:
        self.records.append(record)

    def records_for(self, instance_id: str | None) -> list[LogRecord]:
        return [record for record in self.records if record.instance_id == instance_id]

    def lines(self, instance_id: str | None = None) -> list[str]:
        records = self.records if instance_id is None else self.records_for(instance_id)
        return [record.render() for record in records]
