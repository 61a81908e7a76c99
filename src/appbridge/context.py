"""Per-session context threaded through discovery and log capture."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger as root_logger

from appbridge.config import Settings

if TYPE_CHECKING:
    from loguru import Logger

    from appbridge.types import ResolvedBinary, TargetDescriptor


@dataclass
class BridgeContext:
    """State owned by exactly one session lifecycle, never shared process-wide."""

    settings: Settings = field(default_factory=Settings)
    instance_id: str = ""
    binary_cache: dict[TargetDescriptor, ResolvedBinary] = field(default_factory=dict)
    _logger: Any = field(default=None, repr=False)

    @property
    def logger(self) -> Logger:
        if self._logger is None:
            self._logger = root_logger.bind(instance=self.instance_id or "-")
        return self._logger

    def child(self, instance_id: str) -> BridgeContext:
        """Derive a context for another instance that shares settings but nothing mutable."""

        return BridgeContext(settings=self.settings, instance_id=instance_id)
