"""Session hook dispatch with per-plugin fault isolation."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

import pluggy
from loguru import logger

if TYPE_CHECKING:
    from appbridge.bridge.transport import Transport
    from appbridge.config import Settings
    from appbridge.logs.sinks import LogSink
    from appbridge.session import SessionHandle
    from appbridge.types import TargetDescriptor


class HookRuntime:
    """Call the session hooks of every registered plugin.

    A plugin that raises is skipped: its error is remembered per hook in
    `last_errors` and reported to the `on_error` observers. Only the caller
    decides whether a missing result is fatal.
    """

    def __init__(self, plugin_manager: pluggy.PluginManager) -> None:
        self._plugin_manager = plugin_manager
        self.last_errors: dict[str, Exception] = {}

    async def establish_session(
        self,
        *,
        capabilities: dict[str, Any],
        target: TargetDescriptor,
        instance_id: str,
    ) -> Transport | None:
        results = await self._dispatch(
            "establish_session",
            {"capabilities": capabilities, "target": target, "instance_id": instance_id},
            first=True,
        )
        return results[0] if results else None

    async def session_started(self, handle: SessionHandle) -> None:
        await self._dispatch("session_started", {"handle": handle})

    async def release_session(self, handle: SessionHandle) -> None:
        await self._dispatch("release_session", {"handle": handle})

    def provide_log_sink(self, settings: Settings) -> LogSink | None:
        """First sink any plugin offers. Runs synchronously; async implementations are skipped."""

        for plugin_name, function, kwargs in self._implementations("provide_log_sink", {"settings": settings}):
            try:
                sink = function(**kwargs)
            except Exception as error:
                self.last_errors["provide_log_sink"] = error
                logger.opt(exception=True).warning("hook.failed hook=provide_log_sink plugin={}", plugin_name)
                continue
            if inspect.isawaitable(sink):
                if inspect.iscoroutine(sink):
                    sink.close()
                logger.warning("hook.async_not_supported hook=provide_log_sink plugin={}", plugin_name)
                continue
            if sink is not None:
                return sink
        return None

    async def notify_error(self, *, stage: str, error: Exception) -> None:
        """Tell every `on_error` observer; an observer that fails is only logged."""

        for plugin_name, function, kwargs in self._implementations("on_error", {"stage": stage, "error": error}):
            try:
                result = function(**kwargs)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.opt(exception=True).warning("hook.on_error_failed stage={} plugin={}", stage, plugin_name)

    async def _dispatch(self, hook_name: str, arguments: dict[str, Any], *, first: bool = False) -> list[Any]:
        results: list[Any] = []
        for plugin_name, function, kwargs in self._implementations(hook_name, arguments):
            try:
                value = function(**kwargs)
                if inspect.isawaitable(value):
                    value = await value
            except Exception as error:
                self.last_errors[hook_name] = error
                await self.notify_error(stage=f"{hook_name}:{plugin_name}", error=error)
                continue
            if first:
                if value is not None:
                    return [value]
                continue
            results.append(value)
        return results

    def _implementations(self, hook_name: str, arguments: dict[str, Any]) -> list[tuple[str, Any, dict[str, Any]]]:
        """Implementations in call order (last registered first), each with the arguments it accepts."""

        caller = getattr(self._plugin_manager.hook, hook_name, None)
        if caller is None:
            return []
        return [
            (
                impl.plugin_name or "<unknown>",
                impl.function,
                {name: arguments[name] for name in impl.argnames if name in arguments},
            )
            for impl in reversed(caller.get_hookimpls())
        ]
