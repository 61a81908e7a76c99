from __future__ import annotations

import pytest

from appbridge.config import Settings
from appbridge.context import BridgeContext


@pytest.fixture
def quiet_context(monkeypatch: pytest.MonkeyPatch) -> BridgeContext:
    for name in ("APPBRIDGE_BACKEND_LOG_LEVEL", "APPBRIDGE_FRONTEND_LOG_LEVEL", "APPBRIDGE_FRAMEWORK_LABEL"):
        monkeypatch.delenv(name, raising=False)
    return BridgeContext(settings=Settings(sink_retry_backoff_seconds=0))
