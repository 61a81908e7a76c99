"""Layered session capability composition."""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from appbridge.errors import CompositionError, ConfigurationError
from appbridge.locator.platforms import remediation_for
from appbridge.types import Framework, ResolvedBinary, TargetDescriptor

VENDOR_PREFIX = "x-"

APP_TARGET_KEYS: dict[Framework, tuple[str, str]] = {
    Framework.TAURI: ("tauri:options", "application"),
    Framework.ELECTRON: ("electron:options", "appBinaryPath"),
    Framework.FLUTTER: ("flutter:options", "app"),
}


class _FrameworkOptions(BaseModel):
    """Known option shape for one framework, plus a free-form `extensions` map."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    extensions: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _only_vendor_extras(self) -> _FrameworkOptions:
        unknown = sorted(key for key in (self.model_extra or {}) if not key.startswith(VENDOR_PREFIX))
        if unknown:
            raise ValueError(f"unknown option(s) {', '.join(unknown)}; put them under 'extensions' or prefix 'x-'")
        return self


class WebviewOptions(BaseModel):
    width: int | None = None
    height: int | None = None


class TauriOptions(_FrameworkOptions):
    application: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    driver_port: int | None = Field(default=None, alias="driverPort")
    webview_options: WebviewOptions | None = Field(default=None, alias="webviewOptions")


class ElectronOptions(_FrameworkOptions):
    app_binary_path: str | None = Field(default=None, alias="appBinaryPath")
    app_entry_point: str | None = Field(default=None, alias="appEntryPoint")
    app_args: list[str] = Field(default_factory=list, alias="appArgs")
    capture_main_process_logs: bool = Field(default=False, alias="captureMainProcessLogs")
    capture_renderer_logs: bool = Field(default=False, alias="captureRendererLogs")
    main_process_log_level: str | None = Field(default=None, alias="mainProcessLogLevel")
    renderer_log_level: str | None = Field(default=None, alias="rendererLogLevel")
    log_dir: str | None = Field(default=None, alias="logDir")


class FlutterOptions(_FrameworkOptions):
    app: str | None = None
    flavor: str | None = None
    dart_defines: dict[str, str] = Field(default_factory=dict, alias="dartDefines")
    device_id: str | None = Field(default=None, alias="deviceId")


OPTION_MODELS: dict[Framework, type[_FrameworkOptions]] = {
    Framework.TAURI: TauriOptions,
    Framework.ELECTRON: ElectronOptions,
    Framework.FLUTTER: FlutterOptions,
}


@dataclass(frozen=True)
class Layer:
    """One named, partially specified capability layer."""

    name: str
    values: Mapping[str, Any] = field(default_factory=dict)


def deep_merge(*layers: Mapping[str, Any]) -> dict[str, Any]:
    """Merge mappings left to right; the rightmost value wins per key.

    Nested mappings merge recursively. Lists and scalars are replaced
    wholesale, never concatenated. Inputs are not mutated.
    """

    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            existing = merged.get(key)
            if isinstance(existing, dict) and isinstance(value, Mapping):
                merged[key] = deep_merge(existing, value)
            elif isinstance(value, Mapping):
                merged[key] = deep_merge(value)
            else:
                merged[key] = copy.deepcopy(value)
    return merged


class CapabilitySet(Mapping[str, Any]):
    """Immutable result of one composition.

    Reads hand out deep copies, so nothing reachable from a caller can
    change the set after it was handed to session establishment.
    """

    def __init__(self, values: Mapping[str, Any], *, framework: Framework) -> None:
        self._values = MappingProxyType(copy.deepcopy(dict(values)))
        self.framework = framework

    def __getitem__(self, key: str) -> Any:
        return copy.deepcopy(self._values[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"CapabilitySet({self.to_dict()!r})"

    @property
    def app_target(self) -> str | None:
        block_key, field_key = APP_TARGET_KEYS[self.framework]
        block = self._values.get(block_key)
        if not isinstance(block, Mapping):
            return None
        return block.get(field_key)

    def to_dict(self) -> dict[str, Any]:
        """Return a fresh mutable copy suitable for handing to a transport."""

        return copy.deepcopy(dict(self._values))


class CapabilityComposer:
    """Merge capability layers for one target and inject the discovered binary."""

    def __init__(self, target: TargetDescriptor) -> None:
        self.target = target

    def compose(
        self,
        layers: Iterable[Layer | Mapping[str, Any]],
        resolved: ResolvedBinary,
    ) -> CapabilitySet:
        values = [layer.values if isinstance(layer, Layer) else layer for layer in layers]
        merged = deep_merge(*values)
        block_key, field_key = APP_TARGET_KEYS[self.target.framework]
        block = merged.get(block_key)
        if block is not None and not isinstance(block, dict):
            raise ConfigurationError(f"Capability '{block_key}' must be a mapping, got {type(block).__name__}")

        explicit = block.get(field_key) if block else None
        if explicit in (None, ""):
            if not resolved.success:
                raise self._composition_error(resolved)
            if merged.get(block_key) is None:
                merged[block_key] = {}
            merged[block_key][field_key] = str(resolved.absolute_path)
            logger.debug("capabilities.inject key={}.{} path={}", block_key, field_key, resolved.absolute_path)
        else:
            logger.debug("capabilities.explicit_target key={}.{} value={}", block_key, field_key, explicit)

        self._validate_block(merged, block_key)
        return CapabilitySet(merged, framework=self.target.framework)

    def _validate_block(self, merged: dict[str, Any], block_key: str) -> None:
        model = OPTION_MODELS[self.target.framework]
        try:
            model.model_validate(merged[block_key])
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid '{block_key}' capability: {exc}") from exc

    def _composition_error(self, resolved: ResolvedBinary) -> CompositionError:
        block_key, field_key = APP_TARGET_KEYS[self.target.framework]
        remediation = remediation_for(self.target)
        message = (
            f"No '{block_key}.{field_key}' capability was set and no app binary could be found.\n"
            f"{resolved.describe()}\n"
            f"Build the app with: {remediation}\n"
            f"or set '{block_key}.{field_key}' explicitly."
        )
        return CompositionError(message, resolved=resolved, remediation=remediation)


def compose(
    layers: Iterable[Layer | Mapping[str, Any]],
    resolved: ResolvedBinary,
    *,
    target: TargetDescriptor,
) -> CapabilitySet:
    return CapabilityComposer(target).compose(layers, resolved)

