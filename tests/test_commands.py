from __future__ import annotations

import pytest
from fixtures_plugins.loopback_hooks import make_bridge

from appbridge.bridge import RemoteRuntime
from appbridge.bridge.commands import (
    CommandCall,
    execute_command,
    execute_command_with_timeout,
    execute_commands,
    execute_commands_parallel,
    get_app_info,
    get_runtime_version,
    is_runtime_available,
)


def _runtime() -> RemoteRuntime:
    runtime = RemoteRuntime(app={"name": "demo"})

    @runtime.command()
    def greet(name: str) -> str:
        return f"hello {name}"

    @runtime.command()
    def fail() -> None:
        raise RuntimeError("command failed")

    @runtime.command()
    async def slow() -> str:
        import asyncio

        await asyncio.sleep(10)
        return "late"

    runtime.register("get_runtime_version", lambda: "2.0.1")
    runtime.register("get_app_info", lambda: {"name": "demo", "platform": "linux"})
    return runtime


@pytest.mark.asyncio
async def test_execute_command_returns_data() -> None:
    bridge, transport = make_bridge(_runtime())

    result = await execute_command(bridge, "greet", "world")

    assert result.success
    assert result.data == "hello world"
    assert result.error is None
    await transport.close()


@pytest.mark.asyncio
async def test_failures_become_results() -> None:
    bridge, transport = make_bridge(_runtime())

    failed = await execute_command(bridge, "fail")
    missing = await execute_command(bridge, "missing")

    assert not failed.success
    assert "command failed" in failed.error
    assert not missing.success
    assert "missing" in missing.error
    await transport.close()


@pytest.mark.asyncio
async def test_timeout_is_reported_as_failure() -> None:
    bridge, transport = make_bridge(_runtime())

    result = await execute_command_with_timeout(bridge, "slow", 0.05)

    assert not result.success
    assert "timed out" in result.error
    await transport.close()


@pytest.mark.asyncio
async def test_sequence_stops_at_first_failure() -> None:
    bridge, transport = make_bridge(_runtime())
    calls = [CommandCall("greet", ("a",)), CommandCall("fail"), CommandCall("greet", ("b",))]

    results = await execute_commands(bridge, calls)

    assert [result.success for result in results] == [True, False]
    assert results[0].data == "hello a"
    await transport.close()


@pytest.mark.asyncio
async def test_parallel_runs_every_call() -> None:
    bridge, transport = make_bridge(_runtime())
    calls = [CommandCall("greet", ("a",)), CommandCall("fail"), CommandCall("slow", timeout=0.05)]

    results = await execute_commands_parallel(bridge, calls)

    assert [result.success for result in results] == [True, False, False]
    await transport.close()


@pytest.mark.asyncio
async def test_runtime_probe_and_metadata() -> None:
    bridge, transport = make_bridge(_runtime())

    assert await is_runtime_available(bridge) is True
    assert (await get_runtime_version(bridge)).data == "2.0.1"
    assert (await get_app_info(bridge)).data == {"name": "demo", "platform": "linux"}

    bridge.close()
    assert await is_runtime_available(bridge) is False
    await transport.close()
