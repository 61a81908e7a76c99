"""Tagged log records emitted by the multiplexer."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from appbridge.types import LogLevel, SourceKind


@dataclass(frozen=True)
class LogRecord:
    source_kind: SourceKind
    level: LogLevel
    message: str
    instance_id: str | None = None
    framework: str = "App"
    monotonic_timestamp: float = field(default_factory=time.monotonic)

    @property
    def tag(self) -> str:
        """Fixed bracketed prefix, e.g. `[Tauri:Backend:app-1]`."""

        parts = [self.framework, self.source_kind.value.capitalize()]
        if self.instance_id:
            parts.append(self.instance_id)
        return f"[{':'.join(parts)}]"

    def render(self) -> str:
        return f"{self.tag} {self.message}"
