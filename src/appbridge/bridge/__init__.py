"""Execution bridge: ship functions to the target and correlate their results."""

from appbridge.bridge.client import ExecutionBridge
from appbridge.bridge.codec import encode_value, function_source
from appbridge.bridge.commands import (
    CommandCall,
    CommandResult,
    execute_command,
    execute_command_with_timeout,
    execute_commands,
    execute_commands_parallel,
    get_app_info,
    get_runtime_version,
    is_runtime_available,
)
from appbridge.bridge.remote import RemoteRuntime, RuntimeContext
from appbridge.bridge.transport import LoopbackTransport, Transport

__all__ = [
    "CommandCall",
    "CommandResult",
    "ExecutionBridge",
    "LoopbackTransport",
    "RemoteRuntime",
    "RuntimeContext",
    "Transport",
    "encode_value",
    "execute_command",
    "execute_command_with_timeout",
    "execute_commands",
    "execute_commands_parallel",
    "function_source",
    "get_app_info",
    "get_runtime_version",
    "is_runtime_available",
]
