"""Framework-neutral data model shared by the locator, composer, bridge and log capture."""

from __future__ import annotations

import platform as host_platform
import sys
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from pathlib import Path
from typing import Any, TypeAlias

JSONValue: TypeAlias = "None | bool | int | float | str | list[JSONValue] | dict[str, JSONValue]"
Message: TypeAlias = dict[str, Any]


class Platform(StrEnum):
    LINUX = "linux"
    WINDOWS = "windows"
    MACOS = "macos"
    ANDROID = "android"
    IOS = "ios"

    @classmethod
    def host(cls) -> Platform:
        if sys.platform.startswith("win"):
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MACOS
        return cls.LINUX

    @property
    def is_posix_desktop(self) -> bool:
        return self in (Platform.LINUX, Platform.MACOS)


class Framework(StrEnum):
    TAURI = "tauri"
    ELECTRON = "electron"
    FLUTTER = "flutter"


class BuildMode(StrEnum):
    DEBUG = "debug"
    PROFILE = "profile"
    RELEASE = "release"

    @property
    def title(self) -> str:
        return self.value.capitalize()


class FailureReason(StrEnum):
    NOT_FOUND = "not_found"
    NOT_EXECUTABLE = "not_executable"
    IS_DIRECTORY = "is_directory"
    MALFORMED_BUNDLE = "malformed_bundle"
    PERMISSION_DENIED = "permission_denied"
    WRONG_EXTENSION = "wrong_extension"


class GenerationErrorKind(StrEnum):
    UNSUPPORTED_PLATFORM = "unsupported_platform"
    NO_BUILD_TOOL = "no_build_tool"
    CONFIG_MISSING = "config_missing"
    CONFIG_INVALID = "config_invalid"


class LogLevel(IntEnum):
    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4

    @classmethod
    def parse(cls, value: str | LogLevel) -> LogLevel:
        if isinstance(value, LogLevel):
            return value
        normalized = value.strip().upper()
        if normalized == "WARNING":
            normalized = "WARN"
        try:
            return cls[normalized]
        except KeyError:
            raise ValueError(f"unknown log level: {value!r}") from None

    @property
    def label(self) -> str:
        return self.name.lower()


class SourceKind(StrEnum):
    BACKEND = "backend"
    FRONTEND = "frontend"


def host_arch() -> str:
    machine = host_platform.machine().lower()
    if machine in {"arm64", "aarch64", "armv8", "armv8l"}:
        return "arm64"
    return "x64"


@dataclass(frozen=True)
class TargetDescriptor:
    """Everything needed to find one native build of the app under test."""

    platform: Platform
    framework: Framework
    project_root: Path
    build_mode: BuildMode = BuildMode.RELEASE
    binary_override: Path | None = None
    app_name: str | None = None
    flavors: tuple[str, ...] = ()
    arch: str = field(default_factory=host_arch)
    build_tool: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "platform", Platform(self.platform))
        object.__setattr__(self, "framework", Framework(self.framework))
        object.__setattr__(self, "build_mode", BuildMode(self.build_mode))
        object.__setattr__(self, "project_root", Path(self.project_root))
        if self.binary_override is not None:
            object.__setattr__(self, "binary_override", Path(self.binary_override))
        object.__setattr__(self, "flavors", tuple(self.flavors))


@dataclass(frozen=True)
class DiscoveryAttempt:
    """One validated candidate path and why it was rejected."""

    candidate_path: Path
    failure_reason: FailureReason
    detail: str = ""


@dataclass(frozen=True)
class GenerationError:
    """A problem found while producing candidate paths."""

    kind: GenerationErrorKind
    message: str
    build_tool: str | None = None


@dataclass(frozen=True)
class ResolvedBinary:
    """Outcome of one discovery run, including every rejected candidate."""

    absolute_path: Path | None
    verified_executable: bool
    discovery_attempts: tuple[DiscoveryAttempt, ...] = ()
    generation_errors: tuple[GenerationError, ...] = ()

    @property
    def success(self) -> bool:
        return self.verified_executable and self.absolute_path is not None

    def describe(self) -> str:
        if self.success:
            return f"Found app binary: {self.absolute_path}"
        lines = ["Could not find a runnable app binary."]
        for error in self.generation_errors:
            lines.append(f"  ! {error.kind.value}: {error.message}")
        if self.discovery_attempts:
            lines.append("Checked paths:")
            for attempt in self.discovery_attempts:
                detail = f" ({attempt.detail})" if attempt.detail else ""
                lines.append(f"  - {attempt.candidate_path}: {attempt.failure_reason.value}{detail}")
        elif not self.generation_errors:
            lines.append("  no candidate paths were generated")
        return "\n".join(lines)
