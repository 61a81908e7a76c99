"""Framework-specific candidate path generation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from appbridge.locator.metadata import AppMetadata
from appbridge.locator.platforms import (
    cargo_profile_dir,
    electron_os_name,
    executable_name,
    rust_triple,
    sanitize_app_name,
)
from appbridge.types import (
    BuildMode,
    Framework,
    GenerationError,
    GenerationErrorKind,
    Platform,
    TargetDescriptor,
)


@dataclass(frozen=True)
class PathGeneration:
    """Ordered candidate paths plus the problems met while producing them."""

    paths: tuple[Path, ...]
    errors: tuple[GenerationError, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        return bool(self.paths)


class CandidateGenerator(ABC):
    """Produce the build-output paths one framework's tooling writes to."""

    framework: Framework
    platforms: frozenset[Platform] = frozenset(Platform)

    def generate(self, target: TargetDescriptor, metadata: AppMetadata) -> PathGeneration:
        errors = list(metadata.errors)
        if target.platform not in self.platforms:
            errors.append(
                GenerationError(
                    kind=GenerationErrorKind.UNSUPPORTED_PLATFORM,
                    message=f"{self.framework.value} builds are not supported on {target.platform.value}",
                )
            )
            return PathGeneration(paths=(), errors=tuple(errors))
        if not metadata.name:
            return PathGeneration(paths=(), errors=tuple(errors))

        root = target.project_root.resolve()
        relative = self.candidates(target, metadata)
        return PathGeneration(paths=_unique(root / path for path in relative), errors=tuple(errors))

    @abstractmethod
    def candidates(self, target: TargetDescriptor, metadata: AppMetadata) -> list[Path]:
        """Return candidate paths relative to the project root, most common first."""


class TauriCandidates(CandidateGenerator):
    framework = Framework.TAURI

    def candidates(self, target: TargetDescriptor, metadata: AppMetadata) -> list[Path]:
        name = metadata.name or ""
        profile = cargo_profile_dir(target.build_mode)

        if target.platform is Platform.ANDROID:
            apk_root = Path("src-tauri/gen/android/app/build/outputs/apk")
            apks = [
                apk_root / flavor / profile / f"app-{flavor}-{profile}.apk"
                for flavor in (*target.flavors, "universal")
            ]
            apks.append(apk_root / "universal" / profile / f"app-universal-{profile}-unsigned.apk")
            return apks
        if target.platform is Platform.IOS:
            apple_root = Path("src-tauri/gen/apple/build")
            return [
                apple_root / "arm64-sim" / f"{name}.app",
                apple_root / "x86_64-sim" / f"{name}.app",
                apple_root / "arm64" / f"{name}.app",
            ]

        if target.platform is Platform.MACOS:
            binary = Path("bundle") / "macos" / f"{name}.app"
        else:
            binary = Path(executable_name(name, target.platform))

        triple = rust_triple(target.platform, target.arch)
        paths: list[Path] = []
        # Cargo workspaces put the target dir at the workspace root.
        for target_dir in (Path("src-tauri/target"), Path("target")):
            paths.append(target_dir / profile / binary)
            if triple:
                paths.append(target_dir / triple / profile / binary)
        return paths


class ElectronCandidates(CandidateGenerator):
    framework = Framework.ELECTRON
    platforms = frozenset({Platform.LINUX, Platform.WINDOWS, Platform.MACOS})

    def candidates(self, target: TargetDescriptor, metadata: AppMetadata) -> list[Path]:
        paths: list[Path] = []
        for tool in metadata.build_tools:
            if tool == "forge":
                paths.extend(self._forge(target, metadata.name or ""))
            elif tool == "builder":
                paths.extend(self._builder(target, metadata.name or "", metadata.output_dir or "dist"))
        return paths

    @staticmethod
    def _forge(target: TargetDescriptor, name: str) -> list[Path]:
        os_name = electron_os_name(target.platform)
        out_dir = Path("out") / f"{name}-{os_name}-{target.arch}"
        if target.platform is Platform.MACOS:
            return [out_dir / f"{name}.app" / "Contents" / "MacOS" / name]
        if target.platform is Platform.WINDOWS:
            return [out_dir / f"{name}.exe"]
        return [out_dir / name, out_dir / sanitize_app_name(name, target.platform)]

    @staticmethod
    def _builder(target: TargetDescriptor, name: str, output_dir: str) -> list[Path]:
        dist = Path(output_dir)
        if target.platform is Platform.MACOS:
            dirs = ["mac-arm64", "mac", "mac-universal"] if target.arch == "arm64" else ["mac", "mac-universal"]
            return [dist / d / f"{name}.app" / "Contents" / "MacOS" / name for d in dirs]
        if target.platform is Platform.WINDOWS:
            unpacked = "win-arm64-unpacked" if target.arch == "arm64" else "win-unpacked"
            return [dist / unpacked / f"{name}.exe"]
        unpacked = "linux-arm64-unpacked" if target.arch == "arm64" else "linux-unpacked"
        return [dist / unpacked / sanitize_app_name(name, target.platform), dist / unpacked / name]


class FlutterCandidates(CandidateGenerator):
    framework = Framework.FLUTTER

    def candidates(self, target: TargetDescriptor, metadata: AppMetadata) -> list[Path]:
        name = metadata.name or ""
        mode = target.build_mode
        flavors = target.flavors

        if target.platform is Platform.LINUX:
            binary = sanitize_app_name(name, target.platform)
            return [Path("build/linux") / target.arch / mode.value / "bundle" / binary]
        if target.platform is Platform.WINDOWS:
            exe = executable_name(name, target.platform)
            return [
                Path("build/windows") / target.arch / "runner" / mode.title / exe,
                Path("build/windows/runner") / mode.title / exe,
            ]
        if target.platform is Platform.MACOS:
            products = Path("build/macos/Build/Products")
            return [products / config / f"{name}.app" for config in _flavored(mode.title, flavors)]
        if target.platform is Platform.ANDROID:
            apk_dir = Path("build/app/outputs/flutter-apk")
            paths = [apk_dir / f"app-{flavor}-{mode.value}.apk" for flavor in flavors]
            paths.append(apk_dir / f"app-{mode.value}.apk")
            return paths
        ios = Path("build/ios")
        paths = []
        if mode is BuildMode.DEBUG:
            paths.append(ios / "iphonesimulator" / "Runner.app")
        paths.extend(ios / f"{config}-iphoneos" / "Runner.app" for config in _flavored(mode.title, flavors))
        if mode is not BuildMode.DEBUG:
            paths.append(ios / "iphonesimulator" / "Runner.app")
        return paths


GENERATORS: dict[Framework, CandidateGenerator] = {
    Framework.TAURI: TauriCandidates(),
    Framework.ELECTRON: ElectronCandidates(),
    Framework.FLUTTER: FlutterCandidates(),
}


def _flavored(config: str, flavors: tuple[str, ...]) -> list[str]:
    return [f"{config}-{flavor}" for flavor in flavors] + [config]


def _unique(paths: Iterable[Path]) -> tuple[Path, ...]:
    seen: dict[Path, None] = {}
    for path in paths:
        seen.setdefault(path, None)
    return tuple(seen)
