import pytest
from pydantic import ValidationError

from appbridge.config import Settings, get_settings
from appbridge.types import LogLevel


def test_levels_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APPBRIDGE_BACKEND_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("APPBRIDGE_FRONTEND_LOG_LEVEL", "trace")

    settings = Settings()

    assert settings.backend_log_level == "warn"
    assert settings.backend_level is LogLevel.WARN
    assert settings.frontend_level is LogLevel.TRACE


def test_unknown_level_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APPBRIDGE_BACKEND_LOG_LEVEL", "loud")

    with pytest.raises(ValidationError):
        Settings()


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APPBRIDGE_EXECUTE_TIMEOUT_SECONDS", "5")

    assert Settings().execute_timeout_seconds == 5.0
    assert get_settings(execute_timeout_seconds=1.5).execute_timeout_seconds == 1.5
