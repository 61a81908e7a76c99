"""Transport contract and the in-process loopback implementation."""

from __future__ import annotations

import inspect
import json
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from blinker import Signal

from appbridge.bridge.protocol import STREAMS
from appbridge.bridge.remote import RemoteRuntime
from appbridge.errors import SessionClosedError, TransportSendError
from appbridge.types import Message

StreamHandler = Callable[[Message], Awaitable[None] | None]


@runtime_checkable
class Transport(Protocol):
    """The two primitives an established automation session exposes."""

    async def send(self, message: Message) -> None: ...

    def subscribe(self, stream: str, handler: StreamHandler) -> Callable[[], None]: ...


class LoopbackTransport:
    """Transport backed by blinker signals and a `RemoteRuntime` in the same process.

    Every message is encoded to JSON text and decoded again on the way
    through, so values behave exactly as they would over a real wire.
    """

    def __init__(self, runtime: RemoteRuntime | None = None) -> None:
        self.runtime = runtime or RemoteRuntime()
        self.closed = False
        self._signals = {stream: Signal(f"appbridge.{stream}") for stream in STREAMS}
        self._disconnect = self.runtime.connect(self.publish)

    async def send(self, message: Message) -> None:
        if self.closed:
            raise SessionClosedError("loopback transport is closed")
        await self.runtime.receive(_over_the_wire(message))

    def subscribe(self, stream: str, handler: StreamHandler) -> Callable[[], None]:
        signal = self._signals.get(stream)
        if signal is None:
            raise ValueError(f"unknown stream '{stream}', expected one of {', '.join(STREAMS)}")

        async def _receiver(sender: Any, *, message: Message) -> None:
            result = handler(message)
            if inspect.isawaitable(result):
                await result

        signal.connect(_receiver, weak=False)
        return lambda: signal.disconnect(_receiver)

    async def publish(self, stream: str, message: Message) -> None:
        if self.closed:
            return
        await self._signals[stream].send_async(self, message=_over_the_wire(message))

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._disconnect()
        await self.runtime.shutdown()


def _over_the_wire(message: Message) -> Message:
    try:
        return json.loads(json.dumps(message, allow_nan=False))
    except (TypeError, ValueError) as exc:
        raise TransportSendError(f"message is not JSON-encodable: {exc}") from exc
