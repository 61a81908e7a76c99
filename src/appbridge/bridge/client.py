"""Caller-side execution bridge with per-request correlation."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from appbridge.bridge.codec import encode_args, function_source
from appbridge.bridge.protocol import (
    CONSOLE_SUBSCRIPTION,
    STREAM_RESPONSE,
    UNKNOWN_OPERATION,
    Request,
    RequestKind,
    Response,
    new_request_id,
)
from appbridge.bridge.transport import Transport
from appbridge.context import BridgeContext
from appbridge.errors import (
    ExecutionTimeoutError,
    RemoteScriptError,
    SessionClosedError,
    TransportError,
    TransportSendError,
    UnknownOperationError,
)
from appbridge.types import Message


class ExecutionBridge:
    """Ship functions and named operations to the target and await their results.

    Any number of calls may be in flight at once. Each request gets its own
    id and future, and responses are matched by id, never by arrival order.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        context: BridgeContext | None = None,
        default_timeout: float | None = None,
    ) -> None:
        self.transport = transport
        self.context = context or BridgeContext()
        if default_timeout is None:
            default_timeout = self.context.settings.execute_timeout_seconds
        self.default_timeout = default_timeout
        self._pending: dict[str, asyncio.Future[Response]] = {}
        self._closed_reason: str | None = None
        self._unsubscribe: Callable[[], None] | None = transport.subscribe(STREAM_RESPONSE, self._on_response)

    @property
    def closed(self) -> bool:
        return self._closed_reason is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def execute(self, fn: Callable[..., Any] | str, *args: Any, timeout: float | None = None) -> Any:
        """Run `fn` inside the target and return its result."""

        self._ensure_open()
        request = Request(
            id=new_request_id(),
            kind=RequestKind.EXECUTE,
            script=function_source(fn),
            args=tuple(encode_args(args)),
        )
        return await self._round_trip(request, timeout)

    async def invoke(self, name: str, *args: Any, timeout: float | None = None) -> Any:
        """Call an operation the target registered under `name`."""

        self._ensure_open()
        request = Request(id=new_request_id(), kind=RequestKind.INVOKE, name=name, args=tuple(encode_args(args)))
        return await self._round_trip(request, timeout)

    async def subscribe_console(self, *, timeout: float | None = None) -> bool:
        self._ensure_open()
        request = Request(id=new_request_id(), kind=RequestKind.SUBSCRIBE, name=CONSOLE_SUBSCRIPTION)
        return bool(await self._round_trip(request, timeout))

    async def unsubscribe_console(self, *, timeout: float | None = None) -> bool:
        self._ensure_open()
        request = Request(id=new_request_id(), kind=RequestKind.UNSUBSCRIBE, name=CONSOLE_SUBSCRIPTION)
        return bool(await self._round_trip(request, timeout))

    def close(self, reason: str = "session closed") -> None:
        """Reject every in-flight call and refuse new ones."""

        if self.closed:
            return
        self._closed_reason = reason
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(SessionClosedError(reason))
        self.context.logger.debug("bridge.closed reason={} rejected={}", reason, len(pending))

    async def _round_trip(self, request: Request, timeout: float | None) -> Any:
        limit = self.default_timeout if timeout is None else timeout
        future: asyncio.Future[Response] = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future
        try:
            try:
                await self.transport.send(request.to_dict())
            except TransportError:
                raise
            except Exception as exc:
                raise TransportSendError(f"Failed to send request {request.id}: {exc}") from exc
            try:
                response = await asyncio.wait_for(future, timeout=limit)
            except TimeoutError:
                self.context.logger.warning("bridge.timeout id={} kind={} timeout={}", request.id, request.kind, limit)
                raise ExecutionTimeoutError(request.id, limit) from None
        finally:
            self._pending.pop(request.id, None)
        return self._unwrap(request, response)

    def _on_response(self, message: Message) -> None:
        response = Response.from_dict(message)
        future = self._pending.get(response.id)
        if future is None or future.done():
            self.context.logger.debug("bridge.late_response id={} ok={}", response.id, response.ok)
            return
        future.set_result(response)

    @staticmethod
    def _unwrap(request: Request, response: Response) -> Any:
        if response.ok:
            return response.value
        error = response.error
        if error is None:
            raise RemoteScriptError("Error", "remote call failed without an error payload")
        if error.kind == UNKNOWN_OPERATION:
            raise UnknownOperationError(error.operation or request.name or "<unknown>")
        raise RemoteScriptError(error.kind, error.message, error.stack)

    def _ensure_open(self) -> None:
        if self._closed_reason is not None:
            raise SessionClosedError(self._closed_reason)
