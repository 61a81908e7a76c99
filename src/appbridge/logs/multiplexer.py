"""Per-instance capture of backend and frontend logs into one buffered sink."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING

from appbridge.bridge.protocol import STREAM_BACKEND, STREAM_FRONTEND
from appbridge.context import BridgeContext
from appbridge.errors import AppBridgeError, LogCaptureError
from appbridge.logs.parser import ParsedLine, parse_console_event, parse_log_lines
from appbridge.logs.records import LogRecord
from appbridge.logs.sinks import LoguruSink, LogSink
from appbridge.types import Framework, LogLevel, Message, SourceKind

if TYPE_CHECKING:
    from appbridge.session import SessionHandle


@dataclass
class _InstanceListeners:
    instance_id: str
    handle: SessionHandle
    backend: Callable[[], None] | None = None
    frontend: Callable[[], None] | None = None
    console_subscribed: bool = False
    errors: list[LogCaptureError] = field(default_factory=list)


class LogMultiplexer:
    """Tag, filter and forward the two log streams of every attached instance.

    Listener sets live per instance, so attaching or detaching one instance
    never touches another's streams. Records pass through an asyncio queue
    drained by a single writer task; stream handlers never wait on the sink.
    """

    def __init__(
        self,
        context: BridgeContext | None = None,
        sink: LogSink | None = None,
        *,
        framework: Framework | str | None = None,
        min_level: LogLevel | str | None = None,
        backend_level: LogLevel | str | None = None,
        frontend_level: LogLevel | str | None = None,
    ) -> None:
        self.context = context or BridgeContext()
        settings = self.context.settings
        self.sink: LogSink = sink if sink is not None else LoguruSink()
        self.backend_level = _pick_level(backend_level, min_level, settings.backend_level)
        self.frontend_level = _pick_level(frontend_level, min_level, settings.frontend_level)
        if settings.framework_label:
            self.framework_label = settings.framework_label
        elif framework is not None:
            self.framework_label = Framework(framework).value.capitalize()
        else:
            self.framework_label = "App"
        self.failed_writes = 0
        self.rejected_records = 0
        self._listeners: dict[str, _InstanceListeners] = {}
        self._queue: asyncio.Queue[LogRecord] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._sink_failure_reported = False
        self._queue_full_reported = False

    @property
    def instances(self) -> list[str]:
        return list(self._listeners)

    def sources(self, instance_id: str) -> set[SourceKind]:
        listeners = self._listeners.get(instance_id)
        if listeners is None:
            return set()
        active = {SourceKind.BACKEND: listeners.backend, SourceKind.FRONTEND: listeners.frontend}
        return {kind for kind, unsubscribe in active.items() if unsubscribe is not None}

    def capture_errors(self, instance_id: str) -> list[LogCaptureError]:
        listeners = self._listeners.get(instance_id)
        return list(listeners.errors) if listeners else []

    async def attach(self, handle: SessionHandle, *, backend: bool = True, frontend: bool = True) -> None:
        """Start capturing the instance behind `handle`.

        A failure on one source is logged once and leaves the other running.
        """

        instance = handle.instance_id
        if instance in self._listeners:
            raise LogCaptureError(f"Log capture is already attached for instance '{instance or '-'}'")
        listeners = _InstanceListeners(instance_id=instance, handle=handle)
        self._listeners[instance] = listeners

        if backend:
            try:
                listeners.backend = handle.transport.subscribe(STREAM_BACKEND, partial(self._on_backend, instance))
            except Exception as exc:
                self._capture_failed(listeners, SourceKind.BACKEND, exc)
        if frontend:
            try:
                listeners.frontend = handle.transport.subscribe(STREAM_FRONTEND, partial(self._on_frontend, instance))
                if handle.bridge is not None:
                    listeners.console_subscribed = await handle.bridge.subscribe_console()
            except Exception as exc:
                if listeners.frontend is not None:
                    listeners.frontend()
                    listeners.frontend = None
                self._capture_failed(listeners, SourceKind.FRONTEND, exc)
        self.context.logger.debug(
            "logs.attached instance={} backend={} frontend={}",
            instance or "-",
            listeners.backend is not None,
            listeners.frontend is not None,
        )

    async def detach(self, instance_id: str) -> None:
        """Stop capturing one instance and flush what it already produced."""

        listeners = self._listeners.pop(instance_id, None)
        if listeners is None:
            return
        for unsubscribe in (listeners.backend, listeners.frontend):
            if unsubscribe is not None:
                unsubscribe()
        bridge = listeners.handle.bridge
        if listeners.console_subscribed and bridge is not None and not bridge.closed:
            try:
                await bridge.unsubscribe_console()
            except AppBridgeError as exc:
                self.context.logger.debug("logs.unsubscribe_failed instance={} error={}", instance_id or "-", exc)
        await self.flush()
        self.context.logger.debug("logs.detached instance={}", instance_id or "-")

    async def flush(self) -> None:
        """Wait until every accepted record has been handed to the sink."""

        if self._queue is not None:
            await self._queue.join()
        flush = getattr(self.sink, "flush", None)
        if flush is not None:
            result = flush()
            if inspect.isawaitable(result):
                await result

    async def close(self) -> None:
        for instance_id in list(self._listeners):
            await self.detach(instance_id)
        await self.flush()
        if self._writer is not None:
            self._writer.cancel()
            await asyncio.gather(self._writer, return_exceptions=True)
            self._writer = None
        self._queue = None
        close = getattr(self.sink, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result

    def records_for(self, instance_id: str | None) -> list[LogRecord]:
        records_for = getattr(self.sink, "records_for", None)
        if records_for is None:
            raise LogCaptureError(f"{type(self.sink).__name__} does not keep record history")
        return records_for(instance_id or None)

    def emit(self, source_kind: SourceKind, instance_id: str, level: LogLevel, message: str) -> bool:
        """Submit one already-parsed record; returns False when it was filtered or rejected."""

        threshold = self.backend_level if source_kind is SourceKind.BACKEND else self.frontend_level
        if level < threshold:
            return False
        record = LogRecord(
            source_kind=source_kind,
            level=level,
            message=message,
            instance_id=instance_id or None,
            framework=self.framework_label,
        )
        return self._enqueue(record)

    def _on_backend(self, instance_id: str, message: Message) -> None:
        for parsed in parse_log_lines(str(message.get("line") or "")):
            self._emit_parsed(SourceKind.BACKEND, instance_id, parsed)

    def _on_frontend(self, instance_id: str, message: Message) -> None:
        parsed = parse_console_event(message)
        if parsed is not None:
            self._emit_parsed(SourceKind.FRONTEND, instance_id, parsed)

    def _emit_parsed(self, source_kind: SourceKind, instance_id: str, parsed: ParsedLine) -> None:
        self.emit(source_kind, instance_id, parsed.level, parsed.message)

    def _enqueue(self, record: LogRecord) -> bool:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.context.settings.sink_queue_size)
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._drain(self._queue), name="appbridge.logs.writer")
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self.rejected_records += 1
            if not self._queue_full_reported:
                self._queue_full_reported = True
                self.context.logger.warning("logs.queue_full size={}", self._queue.maxsize)
            return False
        return True

    async def _drain(self, queue: asyncio.Queue[LogRecord]) -> None:
        while True:
            record = await queue.get()
            try:
                await self._write(record)
            finally:
                queue.task_done()

    async def _write(self, record: LogRecord) -> None:
        settings = self.context.settings
        attempts = settings.sink_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                result = self.sink.write(record)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                if attempt < attempts:
                    await asyncio.sleep(settings.sink_retry_backoff_seconds * 2 ** (attempt - 1))
                    continue
                self.failed_writes += 1
                if not self._sink_failure_reported:
                    self._sink_failure_reported = True
                    self.context.logger.warning(
                        "logs.sink_failed sink={} attempts={} error={}", type(self.sink).__name__, attempts, exc
                    )
                return
            else:
                self._sink_failure_reported = False
                return

    def _capture_failed(self, listeners: _InstanceListeners, source_kind: SourceKind, exc: Exception) -> None:
        error = LogCaptureError(
            f"Could not capture {source_kind.value} logs for instance '{listeners.instance_id or '-'}': {exc}"
        )
        listeners.errors.append(error)
        self.context.logger.warning(
            "logs.attach_failed instance={} source={} error={}", listeners.instance_id or "-", source_kind.value, exc
        )


def _pick_level(*candidates: LogLevel | str | None) -> LogLevel:
    for candidate in candidates:
        if candidate is not None:
            return LogLevel.parse(candidate)
    return LogLevel.INFO
