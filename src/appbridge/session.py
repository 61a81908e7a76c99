"""Session lifecycle: discover, compose, establish, capture, tear down."""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import pluggy

from appbridge.bridge.client import ExecutionBridge
from appbridge.bridge.transport import Transport
from appbridge.capabilities import CapabilitySet, Layer, compose
from appbridge.config import Settings
from appbridge.context import BridgeContext
from appbridge.errors import AppBridgeError, LifecycleError, SessionClosedError, SessionEstablishError
from appbridge.hook_runtime import HookRuntime
from appbridge.hookspecs import APPBRIDGE_HOOK_NAMESPACE, AppBridgeHookSpecs
from appbridge.locator.base import BinaryLocator
from appbridge.logs.multiplexer import LogMultiplexer
from appbridge.logs.sinks import LogSink
from appbridge.types import ResolvedBinary, TargetDescriptor

LayerInput = Layer | Mapping[str, Any]


class LifecycleState(StrEnum):
    IDLE = "idle"
    LAUNCHING = "launching"
    ACTIVE = "active"
    TEARING_DOWN = "tearing_down"


_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.IDLE: frozenset({LifecycleState.LAUNCHING}),
    LifecycleState.LAUNCHING: frozenset({LifecycleState.ACTIVE, LifecycleState.IDLE}),
    LifecycleState.ACTIVE: frozenset({LifecycleState.TEARING_DOWN}),
    LifecycleState.TEARING_DOWN: frozenset({LifecycleState.IDLE}),
}


@dataclass
class SessionHandle:
    """One live connection to a running target instance."""

    session_id: str
    instance_id: str
    target: TargetDescriptor
    transport: Transport
    bridge: ExecutionBridge | None = None
    closed: bool = False

    def ensure_open(self) -> None:
        if self.closed:
            raise SessionClosedError(f"session {self.session_id} was torn down")


class SessionLifecycleController:
    """Drive one session through Idle, Launching, Active and TearingDown.

    The host automation driver is reached only through the pluggy hooks in
    `AppBridgeHookSpecs`; this class never imports driver code.
    """

    def __init__(
        self,
        target: TargetDescriptor,
        layers: Iterable[LayerInput] = (),
        *,
        plugins: Iterable[object] = (),
        settings: Settings | None = None,
        context: BridgeContext | None = None,
        instance_id: str = "",
        sink: LogSink | None = None,
        multiplexer: LogMultiplexer | None = None,
        locator: BinaryLocator | None = None,
    ) -> None:
        self.target = target
        self.layers: list[LayerInput] = list(layers)
        self.instance_id = instance_id
        self.context = context or BridgeContext(settings=settings or Settings(), instance_id=instance_id)
        self._plugin_manager = pluggy.PluginManager(APPBRIDGE_HOOK_NAMESPACE)
        self._plugin_manager.add_hookspecs(AppBridgeHookSpecs)
        for index, plugin in enumerate(plugins):
            self._plugin_manager.register(plugin, name=getattr(plugin, "name", None) or f"plugin-{index}")
        self._hook_runtime = HookRuntime(self._plugin_manager)
        self.locator = locator or BinaryLocator(self.context)

        self._owns_multiplexer = multiplexer is None
        if multiplexer is None:
            if sink is None:
                sink = self._hook_runtime.provide_log_sink(self.context.settings)
            multiplexer = LogMultiplexer(self.context, sink, framework=target.framework)
        self.multiplexer = multiplexer
        self.state = LifecycleState.IDLE
        self.resolved: ResolvedBinary | None = None
        self.capabilities: CapabilitySet | None = None
        self.handle: SessionHandle | None = None
        self.bridge: ExecutionBridge | None = None

    async def start(self) -> SessionHandle:
        self._transition(LifecycleState.LAUNCHING)
        log = self.context.logger
        try:
            self.resolved = await self.locator.resolve(self.target)
            self.capabilities = compose(self.layers, self.resolved, target=self.target)
            transport = await self._hook_runtime.establish_session(
                capabilities=self.capabilities.to_dict(),
                target=self.target,
                instance_id=self.instance_id,
            )
            if transport is None:
                cause = self._hook_runtime.last_errors.get("establish_session")
                raise SessionEstablishError("No plugin established an automation session") from cause

            self.bridge = ExecutionBridge(transport, context=self.context)
            self.handle = SessionHandle(
                session_id=uuid.uuid4().hex,
                instance_id=self.instance_id,
                target=self.target,
                transport=transport,
                bridge=self.bridge,
            )
            settings = self.context.settings
            if settings.capture_backend_logs or settings.capture_frontend_logs:
                await self.multiplexer.attach(
                    self.handle,
                    backend=settings.capture_backend_logs,
                    frontend=settings.capture_frontend_logs,
                )
            await self._hook_runtime.session_started(self.handle)
        except Exception as exc:
            log.warning("session.start_failed instance={} error={}", self.instance_id or "-", exc)
            await self._hook_runtime.notify_error(stage="start", error=exc)
            try:
                await self._release("session start failed")
            finally:
                self._transition(LifecycleState.IDLE)
            raise

        self._transition(LifecycleState.ACTIVE)
        log.info("session.active instance={} app={}", self.instance_id or "-", self.capabilities.app_target)
        return self.handle

    async def stop(self, reason: str = "session stopped") -> None:
        if self.state is LifecycleState.IDLE:
            return
        self._transition(LifecycleState.TEARING_DOWN)
        try:
            await self._release(reason)
        finally:
            self._transition(LifecycleState.IDLE)
            self.context.logger.info("session.stopped instance={} reason={}", self.instance_id or "-", reason)

    async def execute(self, fn: Callable[..., Any] | str, *args: Any, timeout: float | None = None) -> Any:
        return await self._active_bridge().execute(fn, *args, timeout=timeout)

    async def invoke(self, name: str, *args: Any, timeout: float | None = None) -> Any:
        return await self._active_bridge().invoke(name, *args, timeout=timeout)

    async def __aenter__(self) -> SessionLifecycleController:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def _active_bridge(self) -> ExecutionBridge:
        if self.state is not LifecycleState.ACTIVE or self.bridge is None:
            raise SessionClosedError(f"session is {self.state.value}")
        return self.bridge

    async def _release(self, reason: str) -> None:
        handle = self.handle
        if handle is not None and handle.instance_id in self.multiplexer.instances:
            try:
                await self.multiplexer.detach(handle.instance_id)
            except AppBridgeError as exc:
                self.context.logger.warning("session.detach_failed instance={} error={}", self.instance_id or "-", exc)
        if self.bridge is not None:
            self.bridge.close(reason)
        if handle is not None:
            handle.closed = True
            await self._hook_runtime.release_session(handle)
            await _close_transport(handle.transport)
        if self._owns_multiplexer:
            await self.multiplexer.close()

    def _transition(self, new_state: LifecycleState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise LifecycleError(f"Cannot move session from {self.state.value} to {new_state.value}")
        self.context.logger.debug("session.state from={} to={}", self.state.value, new_state.value)
        self.state = new_state


class InstanceGroup:
    """Several named sessions started together and sharing one log multiplexer."""

    def __init__(
        self,
        targets: Mapping[str, TargetDescriptor],
        layers: Sequence[LayerInput] = (),
        *,
        instance_layers: Mapping[str, Sequence[LayerInput]] | None = None,
        plugins: Iterable[object] = (),
        settings: Settings | None = None,
        sink: LogSink | None = None,
    ) -> None:
        if not targets:
            raise ValueError("InstanceGroup needs at least one instance")
        plugins = list(plugins)
        self.context = BridgeContext(settings=settings or Settings())
        first = next(iter(targets.values()))
        self.multiplexer = LogMultiplexer(self.context, sink, framework=first.framework)
        extra_layers = instance_layers or {}
        self.controllers: dict[str, SessionLifecycleController] = {
            name: SessionLifecycleController(
                target,
                [*layers, *extra_layers.get(name, ())],
                plugins=plugins,
                context=self.context.child(name),
                instance_id=name,
                multiplexer=self.multiplexer,
            )
            for name, target in targets.items()
        }

    def instance(self, name: str) -> SessionLifecycleController:
        try:
            return self.controllers[name]
        except KeyError:
            raise KeyError(f"no instance named '{name}', known: {', '.join(self.controllers)}") from None

    async def start(self) -> None:
        results = await asyncio.gather(
            *(controller.start() for controller in self.controllers.values()),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            await self.stop()
            raise failures[0]

    async def stop(self) -> None:
        results = await asyncio.gather(
            *(controller.stop("instance group stopped") for controller in self.controllers.values()),
            return_exceptions=True,
        )
        await self.multiplexer.close()
        for result in results:
            if isinstance(result, BaseException):
                self.context.logger.warning("session.group_stop_failed error={}", result)

    async def __aenter__(self) -> InstanceGroup:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()


async def _close_transport(transport: Transport) -> None:
    close = getattr(transport, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result
