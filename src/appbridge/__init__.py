"""Locate native app builds, compose session capabilities, run code inside the app and capture its logs."""

from appbridge.bridge import ExecutionBridge, LoopbackTransport, RemoteRuntime
from appbridge.capabilities import CapabilityComposer, CapabilitySet, Layer, compose, deep_merge
from appbridge.config import Settings, get_settings
from appbridge.context import BridgeContext
from appbridge.hookspecs import hookimpl, hookspec
from appbridge.locator import BinaryLocator
from appbridge.logs import LogMultiplexer, LogRecord
from appbridge.session import InstanceGroup, LifecycleState, SessionHandle, SessionLifecycleController
from appbridge.types import (
    BuildMode,
    DiscoveryAttempt,
    FailureReason,
    Framework,
    LogLevel,
    Platform,
    ResolvedBinary,
    SourceKind,
    TargetDescriptor,
)

__all__ = [
    "BinaryLocator",
    "BridgeContext",
    "BuildMode",
    "CapabilityComposer",
    "CapabilitySet",
    "DiscoveryAttempt",
    "ExecutionBridge",
    "FailureReason",
    "Framework",
    "InstanceGroup",
    "Layer",
    "LifecycleState",
    "LogLevel",
    "LogMultiplexer",
    "LogRecord",
    "LoopbackTransport",
    "Platform",
    "RemoteRuntime",
    "ResolvedBinary",
    "SessionHandle",
    "SessionLifecycleController",
    "Settings",
    "SourceKind",
    "TargetDescriptor",
    "compose",
    "deep_merge",
    "get_settings",
    "hookimpl",
    "hookspec",
]
__version__ = "0.1.0"
