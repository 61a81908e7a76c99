"""Backend and frontend log capture."""

from appbridge.logs.multiplexer import LogMultiplexer
from appbridge.logs.parser import ParsedLine, parse_console_event, parse_log_line, parse_log_lines
from appbridge.logs.records import LogRecord
from appbridge.logs.sinks import FileLogSink, LoguruSink, LogSink, MemoryLogSink

__all__ = [
    "FileLogSink",
    "LogMultiplexer",
    "LogRecord",
    "LogSink",
    "LoguruSink",
    "MemoryLogSink",
    "ParsedLine",
    "parse_console_event",
    "parse_log_line",
    "parse_log_lines",
]
