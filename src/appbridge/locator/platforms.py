"""Platform naming conventions for build outputs."""

from __future__ import annotations

from appbridge.types import BuildMode, Framework, Platform, TargetDescriptor

_ELECTRON_OS_NAMES: dict[Platform, str] = {
    Platform.LINUX: "linux",
    Platform.WINDOWS: "win32",
    Platform.MACOS: "darwin",
}

_RUST_TRIPLES: dict[tuple[Platform, str], str] = {
    (Platform.LINUX, "x64"): "x86_64-unknown-linux-gnu",
    (Platform.LINUX, "arm64"): "aarch64-unknown-linux-gnu",
    (Platform.WINDOWS, "x64"): "x86_64-pc-windows-msvc",
    (Platform.WINDOWS, "arm64"): "aarch64-pc-windows-msvc",
    (Platform.MACOS, "x64"): "x86_64-apple-darwin",
    (Platform.MACOS, "arm64"): "aarch64-apple-darwin",
}


def sanitize_app_name(app_name: str, platform: Platform) -> str:
    """Normalise a display name to the platform's binary file name convention.

    Linux build tools emit lower-case, hyphenated executables; every other
    platform keeps the display name as-is.
    """

    if platform is Platform.LINUX:
        return "-".join(app_name.strip().lower().split())
    return app_name.strip()


def executable_name(app_name: str, platform: Platform) -> str:
    name = sanitize_app_name(app_name, platform)
    if platform is Platform.WINDOWS:
        return f"{name}.exe"
    return name


def electron_os_name(platform: Platform) -> str | None:
    return _ELECTRON_OS_NAMES.get(platform)


def rust_triple(platform: Platform, arch: str) -> str | None:
    return _RUST_TRIPLES.get((platform, arch))


def cargo_profile_dir(mode: BuildMode) -> str:
    return "debug" if mode is BuildMode.DEBUG else "release"


def remediation_for(target: TargetDescriptor, build_tool: str | None = None) -> str:
    """Return the command that most likely produces the missing build."""

    if target.framework is Framework.TAURI:
        if target.platform in (Platform.ANDROID, Platform.IOS):
            command = f"cargo tauri {target.platform.value} build"
        else:
            command = "cargo tauri build"
        if target.build_mode is BuildMode.DEBUG:
            command += " --debug"
        return command
    if target.framework is Framework.ELECTRON:
        if (build_tool or target.build_tool) == "builder":
            return "npx electron-builder --dir"
        return "npx electron-forge package"
    flutter_target = {
        Platform.LINUX: "linux",
        Platform.WINDOWS: "windows",
        Platform.MACOS: "macos",
        Platform.ANDROID: "apk",
        Platform.IOS: "ios",
    }[target.platform]
    command = f"flutter build {flutter_target} --{target.build_mode.value}"
    if target.flavors:
        command += f" --flavor {target.flavors[0]}"
    return command
