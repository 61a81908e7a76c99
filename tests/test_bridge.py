from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fixtures_plugins.loopback_hooks import make_bridge

from appbridge.bridge import RemoteRuntime
from appbridge.bridge.codec import encode_value, function_source
from appbridge.errors import (
    ClosureCaptureError,
    ExecutionTimeoutError,
    RemoteScriptError,
    SerializationError,
    SessionClosedError,
    TransportError,
    UnknownOperationError,
)

MULTIPLIER = 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "value",
    [42, "s", True, None, 1.5, [1, 2, 3], {"a": {"b": 1}}, list(range(1000))],
)
async def test_json_values_come_back_unchanged(value: Any) -> None:
    bridge, transport = make_bridge()

    result = await bridge.execute(lambda ctx, v: v, value)

    assert result == value
    assert type(result) is type(value)
    await transport.close()


@pytest.mark.asyncio
async def test_function_without_context_parameter() -> None:
    bridge, transport = make_bridge()

    assert await bridge.execute(lambda: 42) == 42
    assert await bridge.execute("lambda: [1, 2, 3]") == [1, 2, 3]
    await transport.close()


@pytest.mark.asyncio
async def test_extra_arguments_follow_the_context() -> None:
    bridge, transport = make_bridge()

    assert await bridge.execute(lambda ctx, a, b: a + b, 10, 20) == 30
    assert await bridge.execute(lambda ctx, pair: pair, (1, "two")) == [1, "two"]
    await transport.close()


@pytest.mark.asyncio
async def test_context_is_passed_to_functions_with_optional_parameters() -> None:
    bridge, transport = make_bridge()

    assert await bridge.execute(lambda ctx, suffix="!": ctx.app["version"] + suffix, "?") == "1.2.3?"
    assert await bridge.execute(lambda ctx, suffix="!": ctx.app["version"] + suffix) == "1.2.3!"
    assert await bridge.execute(lambda ctx, *rest: [ctx.app["version"], *rest], 1, 2) == ["1.2.3", 1, 2]
    assert await bridge.execute(lambda value: value * 2, 21) == 42
    await transport.close()


@pytest.mark.asyncio
async def test_context_exposes_app_metadata() -> None:
    bridge, transport = make_bridge()

    assert await bridge.execute(lambda ctx: ctx.app["version"]) == "1.2.3"
    await transport.close()


@pytest.mark.asyncio
async def test_synchronous_raise_surfaces_original_message() -> None:
    bridge, transport = make_bridge()

    def boom() -> None:
        raise ValueError("boom")

    with pytest.raises(RemoteScriptError) as excinfo:
        await bridge.execute(boom)

    assert "boom" in str(excinfo.value)
    assert excinfo.value.kind == "ValueError"
    assert "ValueError" in excinfo.value.remote_stack
    await transport.close()


@pytest.mark.asyncio
async def test_async_failure_surfaces_original_message() -> None:
    bridge, transport = make_bridge()

    async def fails(ctx):
        raise RuntimeError("async boom")

    with pytest.raises(RemoteScriptError, match="async boom"):
        await bridge.execute(fails)
    await transport.close()


@pytest.mark.asyncio
async def test_concurrent_calls_are_matched_by_id() -> None:
    bridge, transport = make_bridge()
    finished: list[str] = []

    async def slow(ctx):
        import asyncio

        await asyncio.sleep(0.05)
        return "slow"

    async def call(fn: Any) -> Any:
        result = await bridge.execute(fn)
        finished.append(result)
        return result

    results = await asyncio.gather(call(slow), call(lambda: "fast"))

    assert results == ["slow", "fast"]
    assert finished == ["fast", "slow"]
    await transport.close()


@pytest.mark.asyncio
async def test_timeout_rejects_and_leaves_nothing_pending() -> None:
    bridge, transport = make_bridge()

    async def hang(ctx):
        import asyncio

        await asyncio.sleep(10)

    with pytest.raises(ExecutionTimeoutError):
        await bridge.execute(hang, timeout=0.05)

    assert bridge.pending_count == 0
    assert await bridge.execute(lambda: "still usable") == "still usable"
    await transport.close()


@pytest.mark.asyncio
async def test_unknown_operation_is_distinct_from_script_errors() -> None:
    bridge, transport = make_bridge()

    with pytest.raises(UnknownOperationError) as excinfo:
        await bridge.invoke("does_not_exist")

    assert excinfo.value.operation == "does_not_exist"
    assert "does_not_exist" in str(excinfo.value)
    assert isinstance(excinfo.value, TransportError)
    assert not isinstance(excinfo.value, RemoteScriptError)
    await transport.close()


@pytest.mark.asyncio
async def test_unknown_operation_from_inside_a_script() -> None:
    bridge, transport = make_bridge()

    async def call_missing(ctx):
        return await ctx.invoke("nope")

    with pytest.raises(UnknownOperationError) as excinfo:
        await bridge.execute(call_missing)

    assert excinfo.value.operation == "nope"
    await transport.close()


@pytest.mark.asyncio
async def test_registered_commands_are_invocable() -> None:
    runtime = RemoteRuntime()

    @runtime.command("add")
    def add(a: int, b: int) -> int:
        return a + b

    bridge, transport = make_bridge(runtime)

    assert await bridge.invoke("add", 2, 3) == 5
    assert await bridge.execute("lambda ctx: ctx.invoke('add', 4, 5)") == 9
    await transport.close()


@pytest.mark.asyncio
async def test_closed_bridge_fails_fast() -> None:
    bridge, transport = make_bridge()
    bridge.close("teardown")

    with pytest.raises(SessionClosedError, match="teardown"):
        await bridge.execute(lambda: 1)
    await transport.close()


@pytest.mark.asyncio
async def test_close_rejects_in_flight_calls() -> None:
    bridge, transport = make_bridge()

    async def hang(ctx):
        import asyncio

        await asyncio.sleep(10)

    task = asyncio.create_task(bridge.execute(hang))
    await asyncio.sleep(0.01)
    bridge.close("teardown")

    with pytest.raises(SessionClosedError):
        await task
    assert bridge.pending_count == 0
    await transport.close()


@pytest.mark.asyncio
async def test_unserializable_arguments_are_rejected_before_sending() -> None:
    bridge, transport = make_bridge()

    with pytest.raises(SerializationError) as excinfo:
        await bridge.execute(lambda ctx, v: v, {"a": [1, object()]})

    assert excinfo.value.path == "args[0].a[1]"
    assert bridge.pending_count == 0
    await transport.close()


@pytest.mark.asyncio
async def test_unserializable_results_are_rejected_remotely() -> None:
    bridge, transport = make_bridge()

    with pytest.raises(RemoteScriptError) as excinfo:
        await bridge.execute(lambda: {1, 2})

    assert excinfo.value.kind == "SerializationError"
    assert "set" in str(excinfo.value)
    await transport.close()


@pytest.mark.asyncio
async def test_closures_are_rejected() -> None:
    bridge, transport = make_bridge()
    offset = 5

    with pytest.raises(ClosureCaptureError) as captured:
        await bridge.execute(lambda ctx, x: x + offset, 1)
    with pytest.raises(ClosureCaptureError) as global_ref:
        await bridge.execute(lambda ctx, x: x * MULTIPLIER, 1)

    assert captured.value.names == ["offset"]
    assert global_ref.value.names == ["MULTIPLIER"]
    await transport.close()


def test_encode_value_rejects_non_json_values() -> None:
    for value, detail in [
        (float("nan"), "finite"),
        ({1: "x"}, "keys"),
        (b"raw", "binary"),
        (print, "functions"),
        ({"a", "b"}, "sets"),
    ]:
        with pytest.raises(SerializationError, match=detail):
            encode_value(value)


def test_encode_value_detects_cycles() -> None:
    looped: list[Any] = []
    looped.append(looped)

    with pytest.raises(SerializationError, match="circular"):
        encode_value(looped)


def test_function_source_strips_decorators_and_indentation() -> None:
    def passthrough(fn: Any) -> Any:
        return fn

    @passthrough
    def shipped(ctx, value):
        return value * 2

    source = function_source(shipped)

    assert source.startswith("def shipped(ctx, value):")
    assert "@passthrough" not in source
