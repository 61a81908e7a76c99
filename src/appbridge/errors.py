"""Application-level exception types for appbridge."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from appbridge.types import ResolvedBinary


class AppBridgeError(Exception):
    """Base exception for appbridge."""


class ConfigurationError(AppBridgeError):
    """Raised when settings or capability layers are invalid."""


class DiscoveryError(AppBridgeError):
    """Raised when no runnable binary could be located for a target."""

    def __init__(self, resolved: ResolvedBinary, remediation: str | None = None) -> None:
        self.resolved = resolved
        self.remediation = remediation
        message = resolved.describe()
        if remediation:
            message = f"{message}\nTry building the app first: {remediation}"
        super().__init__(message)


class CompositionError(AppBridgeError):
    """Raised when the merged capabilities carry no usable app target."""

    def __init__(self, message: str, *, resolved: ResolvedBinary | None = None, remediation: str | None = None) -> None:
        self.resolved = resolved
        self.remediation = remediation
        super().__init__(message)


class RemoteExecutionError(AppBridgeError):
    """Base exception for failures of one execute or invoke round trip."""


class RemoteScriptError(RemoteExecutionError):
    """An exception raised inside the target runtime, reconstructed locally."""

    def __init__(self, kind: str, message: str, remote_stack: str = "") -> None:
        self.kind = kind
        self.remote_message = message
        self.remote_stack = remote_stack
        super().__init__(message)

    def __str__(self) -> str:
        return self.remote_message


class TransportError(RemoteExecutionError):
    """The round trip failed before a remote result was produced."""


class ExecutionTimeoutError(TransportError):
    """Raised when a request gets no response within its timeout."""

    def __init__(self, request_id: str, timeout: float) -> None:
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Request {request_id} timed out after {timeout:g}s")


class SessionClosedError(TransportError):
    """Raised for operations on a torn-down session."""

    def __init__(self, reason: str = "session closed") -> None:
        self.reason = reason
        super().__init__(f"Session closed: {reason}")


class UnknownOperationError(TransportError):
    """Raised when the target runtime has no operation with the requested name."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Unknown remote operation '{operation}'")


class TransportSendError(TransportError):
    """Raised when the transport refuses or fails to send a request."""


class SerializationError(AppBridgeError):
    """Raised when a value cannot cross the execution boundary."""

    def __init__(self, path: str, value_type: str, detail: str = "") -> None:
        self.path = path
        self.value_type = value_type
        text = f"Value at {path} of type '{value_type}' cannot be serialized"
        if detail:
            text = f"{text}: {detail}"
        super().__init__(text)


class ClosureCaptureError(AppBridgeError):
    """Raised when a shipped function depends on names that do not exist remotely."""

    def __init__(self, function_name: str, names: list[str]) -> None:
        self.function_name = function_name
        self.names = names
        joined = ", ".join(names)
        super().__init__(
            f"Function '{function_name}' refers to outer names that are not available remotely: {joined}. "
            "Pass them as explicit arguments instead."
        )


class LogCaptureError(AppBridgeError):
    """Raised (and usually only logged) when log capture for one source fails."""


class LifecycleError(AppBridgeError):
    """Raised on an illegal session lifecycle transition."""


class SessionEstablishError(AppBridgeError):
    """Raised when no plugin could establish an automation session."""
