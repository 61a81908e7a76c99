"""Target-side runtime that reconstructs and runs shipped functions."""

from __future__ import annotations

import ast
import asyncio
import builtins
import inspect
import textwrap
import traceback
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from appbridge.bridge.codec import encode_value
from appbridge.bridge.protocol import (
    CONSOLE_SUBSCRIPTION,
    STREAM_BACKEND,
    STREAM_FRONTEND,
    STREAM_RESPONSE,
    RemoteError,
    Request,
    RequestKind,
    Response,
)
from appbridge.errors import SerializationError
from appbridge.types import Message

Publisher = Callable[[str, Message], Awaitable[None]]
Command = Callable[..., Any]

SCRIPT_FILENAME = "<appbridge-script>"


class OperationNotFound(LookupError):
    """A named operation the runtime does not know."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown remote operation '{name}'")


class RuntimeConsole:
    """Console-style logger available to shipped functions as `ctx.console`."""

    def __init__(self, runtime: RemoteRuntime) -> None:
        self._runtime = runtime

    def log(self, *args: Any) -> None:
        self._runtime.emit_console("log", *args)

    def trace(self, *args: Any) -> None:
        self._runtime.emit_console("trace", *args)

    def debug(self, *args: Any) -> None:
        self._runtime.emit_console("debug", *args)

    def info(self, *args: Any) -> None:
        self._runtime.emit_console("info", *args)

    def warn(self, *args: Any) -> None:
        self._runtime.emit_console("warning", *args)

    def error(self, *args: Any) -> None:
        self._runtime.emit_console("error", *args)


class RuntimeContext:
    """First argument handed to shipped functions that ask for it."""

    def __init__(self, runtime: RemoteRuntime) -> None:
        self._runtime = runtime
        self.console = RuntimeConsole(runtime)

    @property
    def app(self) -> dict[str, Any]:
        return dict(self._runtime.app)

    async def invoke(self, name: str, *args: Any) -> Any:
        return await self._runtime.invoke(name, *args)


class RemoteRuntime:
    """In-process stand-in for the runtime living inside the app under test.

    Requests are handled as independent tasks, so a slow call never delays
    the response of a fast one. Everything the runtime publishes (responses,
    backend lines, console events) leaves through one ordered outbox.
    """

    def __init__(self, *, app: dict[str, Any] | None = None) -> None:
        self.app: dict[str, Any] = dict(app or {})
        self.context = RuntimeContext(self)
        self.console_subscribed = False
        self._commands: dict[str, Command] = {}
        self._publishers: list[Publisher] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._outbox: asyncio.Queue[tuple[str, Message]] | None = None
        self._pump: asyncio.Task[None] | None = None

    def command(self, name: str | None = None) -> Callable[[Command], Command]:
        """Register a named operation reachable through `invoke`."""

        def decorator(func: Command) -> Command:
            self.register(name or func.__name__, func)
            return func

        return decorator

    def register(self, name: str, func: Command) -> None:
        self._commands[name] = func

    @property
    def commands(self) -> list[str]:
        return sorted(self._commands)

    def connect(self, publisher: Publisher) -> Callable[[], None]:
        self._publishers.append(publisher)
        return lambda: self._publishers.remove(publisher)

    async def receive(self, message: Message) -> None:
        request = Request.from_dict(message)
        task = asyncio.create_task(self._handle(request), name=f"appbridge.remote.{request.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def invoke(self, name: str, *args: Any) -> Any:
        func = self._commands.get(name)
        if func is None:
            raise OperationNotFound(name)
        result = func(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def emit_backend(self, line: str) -> None:
        """Publish one line of native process output."""

        self._post(STREAM_BACKEND, {"line": line})

    def emit_console(self, kind: str, *args: Any, stack: str | None = None) -> None:
        if not self.console_subscribed:
            return
        event: Message = {"type": kind, "args": [_console_arg(arg) for arg in args]}
        errors = [arg for arg in args if isinstance(arg, BaseException)]
        if stack is None and errors:
            stack = "".join(traceback.format_exception(errors[0]))
        if stack:
            event["stack"] = stack
        self._post(STREAM_FRONTEND, event)

    async def drain(self) -> None:
        """Wait until every published message has been delivered."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        if self._outbox is not None:
            await self._outbox.join()

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        if self._pump is not None:
            tasks.append(self._pump)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._pump = None
        self._outbox = None
        self.console_subscribed = False

    async def _handle(self, request: Request) -> None:
        try:
            value = await self._dispatch(request)
            response = Response.success(request.id, encode_value(value, "result"))
        except OperationNotFound as exc:
            response = Response.failure(request.id, RemoteError.from_exception(exc, operation=exc.name))
        except Exception as exc:
            logger.debug("remote.request_failed id={} kind={} error={}", request.id, request.kind.value, exc)
            response = Response.failure(request.id, RemoteError.from_exception(exc))
        self._post(STREAM_RESPONSE, response.to_dict())

    async def _dispatch(self, request: Request) -> Any:
        match request.kind:
            case RequestKind.EXECUTE:
                return await self._execute(request.script or "", request.args)
            case RequestKind.INVOKE:
                return await self.invoke(request.name or "", *request.args)
            case RequestKind.SUBSCRIBE | RequestKind.UNSUBSCRIBE:
                if request.name != CONSOLE_SUBSCRIPTION:
                    raise OperationNotFound(f"{request.kind.value}:{request.name}")
                self.console_subscribed = request.kind is RequestKind.SUBSCRIBE
                return True

    async def _execute(self, script: str, args: tuple[Any, ...]) -> Any:
        target = reconstruct(script)
        if not callable(target):
            return target
        if _wants_context(target, args):
            result = target(self.context, *args)
        else:
            result = target(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _post(self, stream: str, message: Message) -> None:
        if self._outbox is None:
            self._outbox = asyncio.Queue()
        if self._pump is None or self._pump.done():
            self._pump = asyncio.create_task(self._run_pump(self._outbox), name="appbridge.remote.pump")
        self._outbox.put_nowait((stream, message))

    async def _run_pump(self, outbox: asyncio.Queue[tuple[str, Message]]) -> None:
        while True:
            stream, message = await outbox.get()
            try:
                for publisher in list(self._publishers):
                    await publisher(stream, message)
            except Exception:
                logger.opt(exception=True).warning("remote.publish_failed stream={}", stream)
            finally:
                outbox.task_done()


def reconstruct(script: str) -> Any:
    """Turn shipped source back into a callable.

    A single expression is evaluated (a lambda yields the function, any
    other expression yields its value). Otherwise the source is executed
    and the last top-level function it defines is returned.
    """

    source = textwrap.dedent(script).strip()
    tree = ast.parse(source, filename=SCRIPT_FILENAME)
    namespace: dict[str, Any] = {"__builtins__": builtins, "__name__": "__appbridge__"}
    if len(tree.body) == 1 and isinstance(tree.body[0], ast.Expr):
        expression = ast.Expression(body=tree.body[0].value)
        return eval(compile(expression, SCRIPT_FILENAME, "eval"), namespace)

    functions = [node.name for node in tree.body if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))]
    if not functions:
        raise SyntaxError("script must be an expression or define a function")
    exec(compile(tree, SCRIPT_FILENAME, "exec"), namespace)
    return namespace[functions[-1]]


def _wants_context(func: Callable[..., Any], args: tuple[Any, ...]) -> bool:
    """The context goes first unless the function only has room for the caller's arguments."""

    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return True
    try:
        signature.bind(None, *args)
    except TypeError:
        pass
    else:
        return True
    try:
        signature.bind(*args)
    except TypeError:
        return True
    return False


def _console_arg(arg: Any) -> Any:
    if isinstance(arg, BaseException):
        return f"{type(arg).__name__}: {arg}"
    try:
        return encode_value(arg)
    except SerializationError:
        return repr(arg)
