"""Pluggy hook namespace and session hook specifications."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from appbridge.bridge.transport import Transport
    from appbridge.config import Settings
    from appbridge.session import SessionHandle
    from appbridge.types import TargetDescriptor

APPBRIDGE_HOOK_NAMESPACE = "appbridge"
hookspec = pluggy.HookspecMarker(APPBRIDGE_HOOK_NAMESPACE)
hookimpl = pluggy.HookimplMarker(APPBRIDGE_HOOK_NAMESPACE)


class AppBridgeHookSpecs:
    """Hook contract between the session core and the host automation driver."""

    @hookspec(firstresult=True)
    def establish_session(
        self,
        capabilities: dict[str, Any],
        target: TargetDescriptor,
        instance_id: str,
    ) -> Transport | None:
        """Open one automation session and return its transport."""

    @hookspec
    def session_started(self, handle: SessionHandle) -> None:
        """Observe a session that just became active."""

    @hookspec
    def release_session(self, handle: SessionHandle) -> None:
        """Release driver resources held for one session."""

    @hookspec(firstresult=True)
    def provide_log_sink(self, settings: Settings) -> Any:
        """Provide the sink that receives tagged log records."""

    @hookspec
    def on_error(self, stage: str, error: Exception) -> None:
        """Observe errors from any lifecycle stage."""
