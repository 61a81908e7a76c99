from __future__ import annotations

from pathlib import Path

import pytest
from fixtures_plugins.loopback_hooks import LoopbackSessionHooks, make_executable

from appbridge.context import BridgeContext
from appbridge.errors import CompositionError, LifecycleError, SessionClosedError, SessionEstablishError
from appbridge.hookspecs import hookimpl
from appbridge.logs import MemoryLogSink
from appbridge.session import InstanceGroup, LifecycleState, SessionLifecycleController
from appbridge.types import BuildMode, Framework, Platform, TargetDescriptor

LAYERS = [{"platformName": "linux"}, {"flutter:options": {"dartDefines": {"ENV": "test"}}}]


def _target(root: Path, *, build: bool = True) -> TargetDescriptor:
    if build:
        make_executable(root / "build" / "linux" / "x64" / "release" / "bundle" / "myapp")
    return TargetDescriptor(
        platform=Platform.LINUX,
        framework=Framework.FLUTTER,
        project_root=root,
        app_name="myapp",
        build_mode=BuildMode.RELEASE,
        arch="x64",
    )


class BrokenDriver:
    name = "broken"

    @hookimpl
    def establish_session(self, capabilities, target, instance_id):
        raise RuntimeError("driver down")


class SinkProvider:
    name = "sink-provider"

    def __init__(self) -> None:
        self.sink = MemoryLogSink()

    @hookimpl
    def provide_log_sink(self, settings):
        return self.sink


@pytest.mark.asyncio
async def test_session_lifecycle(tmp_path: Path, quiet_context: BridgeContext) -> None:
    hooks = LoopbackSessionHooks()
    controller = SessionLifecycleController(
        _target(tmp_path), LAYERS, plugins=[hooks], settings=quiet_context.settings, sink=MemoryLogSink()
    )

    handle = await controller.start()

    assert controller.state is LifecycleState.ACTIVE
    assert hooks.started == [""]
    options = hooks.capabilities[""]["flutter:options"]
    assert options["app"].endswith("build/linux/x64/release/bundle/myapp")
    assert options["dartDefines"] == {"ENV": "test"}
    assert await controller.execute(lambda ctx, a, b: a * b, 6, 7) == 42

    await controller.stop()

    assert controller.state is LifecycleState.IDLE
    assert handle.closed
    assert hooks.released == [""]
    with pytest.raises(SessionClosedError):
        await controller.execute(lambda: 1)
    with pytest.raises(SessionClosedError):
        handle.ensure_open()


@pytest.mark.asyncio
async def test_backend_output_reaches_the_sink(tmp_path: Path, quiet_context: BridgeContext) -> None:
    hooks = LoopbackSessionHooks()
    sink = MemoryLogSink()

    async with SessionLifecycleController(
        _target(tmp_path), LAYERS, plugins=[hooks], settings=quiet_context.settings, sink=sink
    ) as controller:
        runtime = hooks.runtimes[""]
        runtime.emit_backend("[INFO] engine ready")
        await runtime.drain()
        await controller.multiplexer.flush()

        assert sink.lines() == ["[Flutter:Backend] engine ready"]

    assert controller.state is LifecycleState.IDLE


@pytest.mark.asyncio
async def test_missing_build_fails_start_and_reports_stage(tmp_path: Path, quiet_context: BridgeContext) -> None:
    hooks = LoopbackSessionHooks()
    controller = SessionLifecycleController(
        _target(tmp_path, build=False), LAYERS, plugins=[hooks], settings=quiet_context.settings
    )

    with pytest.raises(CompositionError, match="flutter build linux"):
        await controller.start()

    assert controller.state is LifecycleState.IDLE
    assert [stage for stage, _ in hooks.errors] == ["start"]
    assert hooks.started == []


@pytest.mark.asyncio
async def test_no_driver_plugin(tmp_path: Path, quiet_context: BridgeContext) -> None:
    controller = SessionLifecycleController(_target(tmp_path), LAYERS, settings=quiet_context.settings)

    with pytest.raises(SessionEstablishError):
        await controller.start()

    assert controller.state is LifecycleState.IDLE


@pytest.mark.asyncio
async def test_driver_failure_is_the_cause(tmp_path: Path, quiet_context: BridgeContext) -> None:
    controller = SessionLifecycleController(
        _target(tmp_path), LAYERS, plugins=[BrokenDriver()], settings=quiet_context.settings
    )

    with pytest.raises(SessionEstablishError) as excinfo:
        await controller.start()

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert str(excinfo.value.__cause__) == "driver down"


class UnclosableSink(MemoryLogSink):
    def close(self) -> None:
        raise OSError("sink stuck")


@pytest.mark.asyncio
async def test_failed_cleanup_still_returns_to_idle(tmp_path: Path, quiet_context: BridgeContext) -> None:
    controller = SessionLifecycleController(
        _target(tmp_path), LAYERS, plugins=[BrokenDriver()], settings=quiet_context.settings, sink=UnclosableSink()
    )

    with pytest.raises(OSError, match="sink stuck"):
        await controller.start()

    assert controller.state is LifecycleState.IDLE
    await controller.stop()
    assert controller.state is LifecycleState.IDLE


@pytest.mark.asyncio
async def test_second_start_is_illegal(tmp_path: Path, quiet_context: BridgeContext) -> None:
    controller = SessionLifecycleController(
        _target(tmp_path), LAYERS, plugins=[LoopbackSessionHooks()], settings=quiet_context.settings
    )
    await controller.start()

    with pytest.raises(LifecycleError):
        await controller.start()

    assert controller.state is LifecycleState.ACTIVE
    await controller.stop()
    await controller.stop()
    assert controller.state is LifecycleState.IDLE


def test_sink_comes_from_plugin(tmp_path: Path, quiet_context: BridgeContext) -> None:
    provider = SinkProvider()

    controller = SessionLifecycleController(
        _target(tmp_path), LAYERS, plugins=[provider], settings=quiet_context.settings
    )

    assert controller.multiplexer.sink is provider.sink


@pytest.mark.asyncio
async def test_instance_group_keeps_logs_apart(tmp_path: Path, quiet_context: BridgeContext) -> None:
    hooks = LoopbackSessionHooks()
    sink = MemoryLogSink()
    target = _target(tmp_path)
    group = InstanceGroup(
        {"a": target, "b": target},
        LAYERS,
        plugins=[hooks],
        settings=quiet_context.settings,
        sink=sink,
    )

    async with group:
        for name in ("a", "b"):
            hooks.runtimes[name].emit_backend(f"[WARN] hello from {name}")
            await hooks.runtimes[name].drain()
        await group.multiplexer.flush()

        assert await group.instance("b").execute(lambda ctx: ctx.app["instance"]) == "b"
        assert sink.lines("a") == ["[Flutter:Backend:a] hello from a"]
        assert sink.lines("b") == ["[Flutter:Backend:b] hello from b"]
        with pytest.raises(KeyError):
            group.instance("c")

    assert sorted(hooks.released) == ["a", "b"]
    assert all(controller.state is LifecycleState.IDLE for controller in group.controllers.values())
