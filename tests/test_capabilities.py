from __future__ import annotations

from pathlib import Path

import pytest

from appbridge.capabilities import CapabilityComposer, Layer, compose, deep_merge
from appbridge.errors import CompositionError, ConfigurationError
from appbridge.types import (
    DiscoveryAttempt,
    FailureReason,
    Framework,
    Platform,
    ResolvedBinary,
    TargetDescriptor,
)

TARGET = TargetDescriptor(
    platform=Platform.LINUX,
    framework=Framework.FLUTTER,
    project_root=Path("/work/app"),
    app_name="myapp",
    arch="x64",
)
FOUND = ResolvedBinary(absolute_path=Path("/work/app/build/linux/x64/release/bundle/myapp"), verified_executable=True)
MISSING = ResolvedBinary(
    absolute_path=None,
    verified_executable=False,
    discovery_attempts=(
        DiscoveryAttempt(Path("/work/app/build/linux/x64/release/bundle/myapp"), FailureReason.NOT_FOUND, "File not found"),
    ),
)


def test_rightmost_layer_wins_for_shared_key() -> None:
    layers = [Layer("defaults", {"timeout": 1}), Layer("service", {"timeout": 2}), Layer("user", {"timeout": 3})]

    caps = compose(layers, FOUND, target=TARGET)

    assert caps["timeout"] == 3


def test_key_defined_only_in_first_layer_survives() -> None:
    layers = [{"browserName": "flutter", "retries": [1, 2]}, {"other": True}, {}]

    caps = compose(layers, FOUND, target=TARGET)

    assert caps["browserName"] == "flutter"
    assert caps["retries"] == [1, 2]


def test_nested_mappings_merge_and_arrays_replace() -> None:
    base = {"flutter:options": {"dartDefines": {"A": "1"}, "x-args": ["--one", "--two"]}}
    override = {"flutter:options": {"dartDefines": {"B": "2"}, "x-args": ["--three"]}}

    merged = deep_merge(base, override)

    assert merged["flutter:options"]["dartDefines"] == {"A": "1", "B": "2"}
    assert merged["flutter:options"]["x-args"] == ["--three"]
    assert base["flutter:options"]["dartDefines"] == {"A": "1"}


def test_discovered_binary_is_injected_when_not_set() -> None:
    caps = compose([{"platformName": "linux"}], FOUND, target=TARGET)

    assert caps["flutter:options"]["app"] == str(FOUND.absolute_path)
    assert caps.app_target == str(FOUND.absolute_path)


def test_explicit_app_target_wins_even_when_discovery_failed() -> None:
    layers = [{"flutter:options": {"app": "/opt/custom/myapp"}}]

    caps = compose(layers, MISSING, target=TARGET)

    assert caps.app_target == "/opt/custom/myapp"


def test_explicit_app_target_is_not_replaced_by_discovery() -> None:
    layers = [{"flutter:options": {"app": "/opt/custom/myapp"}}]

    caps = compose(layers, FOUND, target=TARGET)

    assert caps.app_target == "/opt/custom/myapp"


def test_missing_binary_without_explicit_target_fails_with_paths_and_remedy() -> None:
    with pytest.raises(CompositionError) as excinfo:
        compose([{"platformName": "linux"}], MISSING, target=TARGET)

    message = str(excinfo.value)
    assert "/work/app/build/linux/x64/release/bundle/myapp" in message
    assert "not_found" in message
    assert excinfo.value.remediation == "flutter build linux --release"
    assert "flutter build linux --release" in message


def test_unknown_option_must_be_vendor_prefixed() -> None:
    with pytest.raises(ConfigurationError):
        compose([{"flutter:options": {"bogus": 1}}], FOUND, target=TARGET)

    caps = compose(
        [{"flutter:options": {"x-vendor": 1, "extensions": {"anything": {"goes": True}}}}],
        FOUND,
        target=TARGET,
    )
    assert caps["flutter:options"]["x-vendor"] == 1


def test_tauri_block_uses_application_key() -> None:
    target = TargetDescriptor(platform=Platform.WINDOWS, framework=Framework.TAURI, project_root=Path("/work/app"))

    caps = CapabilityComposer(target).compose([Layer("service", {"tauri:options": {"args": ["--flag"]}})], FOUND)

    assert caps["tauri:options"] == {"args": ["--flag"], "application": str(FOUND.absolute_path)}


def test_declared_framework_options_are_accepted() -> None:
    tauri = TargetDescriptor(platform=Platform.LINUX, framework=Framework.TAURI, project_root=Path("/work/app"))
    electron = TargetDescriptor(platform=Platform.LINUX, framework=Framework.ELECTRON, project_root=Path("/work/app"))

    caps = compose([{"tauri:options": {"webviewOptions": {"width": 800, "height": 600}}}], FOUND, target=tauri)
    assert caps["tauri:options"]["webviewOptions"] == {"width": 800, "height": 600}

    caps = compose(
        [{"electron:options": {"captureMainProcessLogs": True, "rendererLogLevel": "warn", "logDir": "./logs"}}],
        FOUND,
        target=electron,
    )
    assert caps["electron:options"]["logDir"] == "./logs"

    with pytest.raises(ConfigurationError):
        compose([{"tauri:options": {"webviewOptions": {"width": "wide"}}}], FOUND, target=tauri)


def test_capability_set_cannot_be_changed_through_reads() -> None:
    caps = compose([{"nested": {"list": [1]}}], FOUND, target=TARGET)

    caps["nested"]["list"].append(2)
    exported = caps.to_dict()
    exported["nested"]["list"].append(3)

    assert caps["nested"] == {"list": [1]}
    with pytest.raises(TypeError):
        caps["nested"] = {}  # type: ignore[index]
