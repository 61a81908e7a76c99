"""Read app names and build-tool settings from project metadata files."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from appbridge.types import Framework, GenerationError, GenerationErrorKind, TargetDescriptor

TAURI_CONFIG_FILES = ("src-tauri/tauri.conf.json", "src-tauri/Tauri.toml")
FORGE_CONFIG_FILES = ("forge.config.js", "forge.config.cjs", "forge.config.mjs", "forge.config.ts")
BUILDER_CONFIG_FILES = (
    "electron-builder.json",
    "electron-builder.json5",
    "electron-builder.yml",
    "electron-builder.yaml",
    "electron-builder.toml",
    "electron-builder.js",
    "electron-builder.cjs",
)


@dataclass(frozen=True)
class AppMetadata:
    """What the build tool's project files say about the app."""

    name: str | None
    build_tools: tuple[str, ...] = ()
    output_dir: str | None = None
    config_file: Path | None = None
    errors: tuple[GenerationError, ...] = field(default_factory=tuple)


def read_app_metadata(target: TargetDescriptor) -> AppMetadata:
    """Read metadata for the target's framework, never raising on bad files."""

    if target.framework is Framework.TAURI:
        metadata = _read_tauri(target.project_root)
    elif target.framework is Framework.ELECTRON:
        metadata = _read_electron(target.project_root, target.build_tool)
    else:
        metadata = _read_flutter(target.project_root)
    if target.app_name:
        return AppMetadata(
            name=target.app_name,
            build_tools=metadata.build_tools,
            output_dir=metadata.output_dir,
            config_file=metadata.config_file,
            errors=tuple(e for e in metadata.errors if e.kind is not GenerationErrorKind.CONFIG_MISSING),
        )
    return metadata


def _read_tauri(root: Path) -> AppMetadata:
    for relative in TAURI_CONFIG_FILES:
        config_path = root / relative
        if not _is_file(config_path):
            continue
        try:
            if config_path.suffix == ".toml":
                config = tomllib.loads(config_path.read_text(encoding="utf-8"))
            else:
                config = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            return AppMetadata(
                name=None,
                config_file=config_path,
                errors=(_error(GenerationErrorKind.CONFIG_INVALID, f"Failed to parse {config_path}: {exc}"),),
            )
        name = _tauri_name(config) or _cargo_package_name(root / "src-tauri" / "Cargo.toml")
        if not name:
            return AppMetadata(
                name=None,
                config_file=config_path,
                errors=(_error(GenerationErrorKind.CONFIG_INVALID, f"No productName found in {config_path}"),),
            )
        return AppMetadata(name=name, build_tools=("cargo",), config_file=config_path)

    return AppMetadata(
        name=None,
        errors=(_error(GenerationErrorKind.CONFIG_MISSING, f"Tauri config not found under {root / 'src-tauri'}"),),
    )


def _tauri_name(config: Any) -> str | None:
    if not isinstance(config, dict):
        return None
    package = config.get("package")
    candidates = (
        config.get("productName"),
        package.get("productName") if isinstance(package, dict) else None,
        config.get("mainBinaryName"),
    )
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _cargo_package_name(cargo_toml: Path) -> str | None:
    try:
        data = tomllib.loads(cargo_toml.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    package = data.get("package")
    if isinstance(package, dict) and isinstance(package.get("name"), str):
        return package["name"]
    return None


def _read_electron(root: Path, requested_tool: str | None) -> AppMetadata:
    package_path = root / "package.json"
    if not _is_file(package_path):
        return AppMetadata(
            name=None,
            errors=(_error(GenerationErrorKind.CONFIG_MISSING, f"package.json not found in {root}"),),
        )
    try:
        package = json.loads(package_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return AppMetadata(
            name=None,
            config_file=package_path,
            errors=(_error(GenerationErrorKind.CONFIG_INVALID, f"Failed to parse {package_path}: {exc}"),),
        )
    if not isinstance(package, dict):
        package = {}

    name = package.get("productName") or package.get("name")
    errors: list[GenerationError] = []
    if not isinstance(name, str) or not name.strip():
        name = None
        errors.append(_error(GenerationErrorKind.CONFIG_INVALID, f"No productName or name in {package_path}"))

    if requested_tool:
        tools: tuple[str, ...] = (requested_tool,)
    else:
        detected: list[str] = []
        config = package.get("config")
        if (isinstance(config, dict) and "forge" in config) or _any_file(root, FORGE_CONFIG_FILES):
            detected.append("forge")
        if "build" in package or _any_file(root, BUILDER_CONFIG_FILES):
            detected.append("builder")
        tools = tuple(detected)
        if not tools:
            errors.append(
                _error(
                    GenerationErrorKind.NO_BUILD_TOOL,
                    "No Electron Forge or electron-builder configuration found",
                )
            )

    output_dir = _builder_output_dir(root, package) if "builder" in tools else None
    return AppMetadata(
        name=name.strip() if name else None,
        build_tools=tools,
        output_dir=output_dir,
        config_file=package_path,
        errors=tuple(errors),
    )


def _builder_output_dir(root: Path, package: dict[str, Any]) -> str | None:
    sources: list[Any] = [package.get("build")]
    for relative in ("electron-builder.json", "electron-builder.yml", "electron-builder.yaml"):
        path = root / relative
        if not _is_file(path):
            continue
        try:
            text = path.read_text(encoding="utf-8")
            sources.append(json.loads(text) if path.suffix == ".json" else yaml.safe_load(text))
        except (OSError, ValueError, yaml.YAMLError):
            continue
    for source in sources:
        if not isinstance(source, dict):
            continue
        directories = source.get("directories")
        if isinstance(directories, dict) and isinstance(directories.get("output"), str):
            return directories["output"]
    return None


def _read_flutter(root: Path) -> AppMetadata:
    pubspec = root / "pubspec.yaml"
    if not _is_file(pubspec):
        return AppMetadata(
            name=None,
            errors=(_error(GenerationErrorKind.CONFIG_MISSING, f"pubspec.yaml not found in {root}"),),
        )
    try:
        payload = yaml.safe_load(pubspec.read_text(encoding="utf-8"))
    except (OSError, ValueError, yaml.YAMLError) as exc:
        return AppMetadata(
            name=None,
            config_file=pubspec,
            errors=(_error(GenerationErrorKind.CONFIG_INVALID, f"Failed to parse {pubspec}: {exc}"),),
        )
    name = payload.get("name") if isinstance(payload, dict) else None
    if not isinstance(name, str) or not name.strip():
        return AppMetadata(
            name=None,
            config_file=pubspec,
            errors=(_error(GenerationErrorKind.CONFIG_INVALID, f"No name in {pubspec}"),),
        )
    return AppMetadata(name=name.strip(), build_tools=("flutter",), config_file=pubspec)


def _any_file(root: Path, names: tuple[str, ...]) -> bool:
    return any(_is_file(root / name) for name in names)


def _error(kind: GenerationErrorKind, message: str) -> GenerationError:
    return GenerationError(kind=kind, message=message)


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False
