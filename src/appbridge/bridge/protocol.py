"""Wire messages exchanged between ExecutionBridge and a target runtime."""

from __future__ import annotations

import traceback
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from appbridge.types import JSONValue, Message

UNKNOWN_OPERATION = "UnknownOperation"
CONSOLE_SUBSCRIPTION = "console"

STREAM_RESPONSE = "response"
STREAM_BACKEND = "backend"
STREAM_FRONTEND = "frontend"
STREAMS = (STREAM_RESPONSE, STREAM_BACKEND, STREAM_FRONTEND)


class RequestKind(StrEnum):
    EXECUTE = "execute"
    INVOKE = "invoke"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Request:
    id: str
    kind: RequestKind
    args: tuple[JSONValue, ...] = ()
    script: str | None = None
    name: str | None = None

    def to_dict(self) -> Message:
        message: Message = {"id": self.id, "kind": self.kind.value, "args": list(self.args)}
        if self.script is not None:
            message["script"] = self.script
        if self.name is not None:
            message["name"] = self.name
        return message

    @classmethod
    def from_dict(cls, message: Message) -> Request:
        return cls(
            id=str(message["id"]),
            kind=RequestKind(message["kind"]),
            args=tuple(message.get("args") or ()),
            script=message.get("script"),
            name=message.get("name"),
        )


@dataclass(frozen=True)
class RemoteError:
    kind: str
    message: str
    stack: str = ""
    operation: str | None = None

    def to_dict(self) -> Message:
        payload: Message = {"kind": self.kind, "message": self.message, "stack": self.stack}
        if self.operation is not None:
            payload["operation"] = self.operation
        return payload

    @classmethod
    def from_dict(cls, payload: Message) -> RemoteError:
        return cls(
            kind=str(payload.get("kind") or "Error"),
            message=str(payload.get("message") or ""),
            stack=str(payload.get("stack") or ""),
            operation=payload.get("operation"),
        )

    @classmethod
    def from_exception(cls, exc: BaseException, *, operation: str | None = None) -> RemoteError:
        kind = UNKNOWN_OPERATION if operation is not None else type(exc).__name__
        return cls(
            kind=kind,
            message=str(exc),
            stack="".join(traceback.format_exception(exc)),
            operation=operation,
        )


@dataclass(frozen=True)
class Response:
    id: str
    ok: bool
    value: Any = None
    error: RemoteError | None = field(default=None)

    def to_dict(self) -> Message:
        message: Message = {"id": self.id, "ok": self.ok}
        if self.ok:
            message["value"] = self.value
        elif self.error is not None:
            message["error"] = self.error.to_dict()
        return message

    @classmethod
    def from_dict(cls, message: Message) -> Response:
        error = message.get("error")
        return cls(
            id=str(message["id"]),
            ok=bool(message.get("ok")),
            value=message.get("value"),
            error=RemoteError.from_dict(error) if isinstance(error, dict) else None,
        )

    @classmethod
    def success(cls, request_id: str, value: JSONValue) -> Response:
        return cls(id=request_id, ok=True, value=value)

    @classmethod
    def failure(cls, request_id: str, error: RemoteError) -> Response:
        return cls(id=request_id, ok=False, error=error)
