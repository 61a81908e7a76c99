"""Fixed convenience operations built on `ExecutionBridge.execute`."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from appbridge.bridge.client import ExecutionBridge
from appbridge.errors import AppBridgeError

INVOKE_SCRIPT = """
async def run_command(ctx, name, args):
    return await ctx.invoke(name, *args)
"""
PROBE_SCRIPT = "lambda ctx: hasattr(ctx, 'invoke')"

VERSION_COMMAND = "get_runtime_version"
APP_INFO_COMMAND = "get_app_info"


@dataclass(frozen=True)
class CommandResult:
    success: bool
    data: Any = None
    error: str | None = None


@dataclass(frozen=True)
class CommandCall:
    command: str
    args: tuple[Any, ...] = field(default_factory=tuple)
    timeout: float | None = None


async def execute_command(bridge: ExecutionBridge, command: str, *args: Any) -> CommandResult:
    """Invoke a registered target command, reporting failure as a result instead of raising."""

    logger.debug("commands.execute command={} args={}", command, len(args))
    try:
        data = await bridge.execute(INVOKE_SCRIPT, command, list(args))
    except AppBridgeError as exc:
        logger.error("commands.failed command={} error={}", command, exc)
        return CommandResult(success=False, error=str(exc))
    return CommandResult(success=True, data=data)


async def execute_command_with_timeout(
    bridge: ExecutionBridge,
    command: str,
    timeout: float,
    *args: Any,
) -> CommandResult:
    try:
        data = await bridge.execute(INVOKE_SCRIPT, command, list(args), timeout=timeout)
    except AppBridgeError as exc:
        logger.error("commands.failed command={} timeout={} error={}", command, timeout, exc)
        return CommandResult(success=False, error=str(exc))
    return CommandResult(success=True, data=data)


async def _run(bridge: ExecutionBridge, call: CommandCall) -> CommandResult:
    if call.timeout is not None:
        return await execute_command_with_timeout(bridge, call.command, call.timeout, *call.args)
    return await execute_command(bridge, call.command, *call.args)


async def execute_commands(bridge: ExecutionBridge, calls: Iterable[CommandCall]) -> list[CommandResult]:
    """Run commands one after another, stopping after the first failure."""

    results: list[CommandResult] = []
    for call in calls:
        result = await _run(bridge, call)
        results.append(result)
        if not result.success:
            logger.warning("commands.sequence_stopped command={} error={}", call.command, result.error)
            break
    return results


async def execute_commands_parallel(bridge: ExecutionBridge, calls: Iterable[CommandCall]) -> list[CommandResult]:
    return list(await asyncio.gather(*(_run(bridge, call) for call in calls)))


async def is_runtime_available(bridge: ExecutionBridge) -> bool:
    try:
        return bool(await bridge.execute(PROBE_SCRIPT))
    except AppBridgeError as exc:
        logger.debug("commands.runtime_unavailable error={}", exc)
        return False


async def get_runtime_version(bridge: ExecutionBridge) -> CommandResult:
    return await execute_command(bridge, VERSION_COMMAND)


async def get_app_info(bridge: ExecutionBridge) -> CommandResult:
    return await execute_command(bridge, APP_INFO_COMMAND)
