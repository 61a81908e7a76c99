"""Two-phase binary discovery: generate candidate paths, then validate them in order."""

from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path

from appbridge.context import BridgeContext
from appbridge.errors import DiscoveryError
from appbridge.locator.candidates import GENERATORS, CandidateGenerator, PathGeneration
from appbridge.locator.metadata import read_app_metadata
from appbridge.locator.platforms import remediation_for
from appbridge.types import (
    DiscoveryAttempt,
    FailureReason,
    Framework,
    Platform,
    ResolvedBinary,
    TargetDescriptor,
)


class BinaryLocator:
    """Find the runnable build of a target, reporting every rejected candidate.

    `resolve()` never raises for missing or broken builds; the returned
    `ResolvedBinary` carries the full attempt log so callers can render an
    actionable message.
    """

    def __init__(
        self,
        context: BridgeContext | None = None,
        *,
        generators: dict[Framework, CandidateGenerator] | None = None,
    ) -> None:
        self.context = context or BridgeContext()
        self._generators: dict[Framework, CandidateGenerator] = dict(GENERATORS)
        if generators:
            self._generators.update(generators)

    async def resolve(self, target: TargetDescriptor, *, use_cache: bool = True) -> ResolvedBinary:
        caching = use_cache and self.context.settings.cache_binaries
        if caching and target in self.context.binary_cache:
            return self.context.binary_cache[target]

        resolved = await asyncio.to_thread(self.resolve_blocking, target)
        if caching:
            self.context.binary_cache[target] = resolved
        return resolved

    async def require(self, target: TargetDescriptor, *, use_cache: bool = True) -> Path:
        """Like `resolve`, but raise `DiscoveryError` when no candidate is runnable."""

        resolved = await self.resolve(target, use_cache=use_cache)
        if resolved.absolute_path is None or not resolved.verified_executable:
            raise DiscoveryError(resolved, remediation_for(target))
        return resolved.absolute_path

    def resolve_blocking(self, target: TargetDescriptor) -> ResolvedBinary:
        log = self.context.logger
        if target.binary_override is not None:
            override = target.binary_override
            if not override.is_absolute():
                override = target.project_root / override
            log.debug("locator.override path={}", override)
            return self._validate((override.resolve(),), target.platform, PathGeneration(paths=(override,)))

        generation = self.generate_paths(target)
        for error in generation.errors:
            log.debug("locator.generation_error kind={} message={}", error.kind.value, error.message)
        if not generation.success:
            return ResolvedBinary(
                absolute_path=None,
                verified_executable=False,
                generation_errors=generation.errors,
            )
        resolved = self._validate(generation.paths, target.platform, generation)
        if resolved.success:
            log.info("locator.found path={} rejected={}", resolved.absolute_path, len(resolved.discovery_attempts))
        else:
            log.warning("locator.not_found framework={} candidates={}", target.framework.value, len(generation.paths))
        return resolved

    def generate_paths(self, target: TargetDescriptor) -> PathGeneration:
        generator: CandidateGenerator = self._generators[target.framework]
        metadata = read_app_metadata(target)
        return generator.generate(target, metadata)

    @staticmethod
    def _validate(paths: tuple[Path, ...], platform: Platform, generation: PathGeneration) -> ResolvedBinary:
        attempts: list[DiscoveryAttempt] = []
        for candidate in paths:
            failure = check_candidate(candidate, platform)
            if failure is None:
                return ResolvedBinary(
                    absolute_path=candidate,
                    verified_executable=True,
                    discovery_attempts=tuple(attempts),
                    generation_errors=generation.errors,
                )
            attempts.append(failure)
        return ResolvedBinary(
            absolute_path=None,
            verified_executable=False,
            discovery_attempts=tuple(attempts),
            generation_errors=generation.errors,
        )


def check_candidate(path: Path, platform: Platform) -> DiscoveryAttempt | None:
    """Return None when `path` is runnable on `platform`, else the reason it is not."""

    try:
        info = path.stat()
    except FileNotFoundError:
        return DiscoveryAttempt(path, FailureReason.NOT_FOUND, "File not found")
    except PermissionError:
        return DiscoveryAttempt(path, FailureReason.PERMISSION_DENIED, "Permission denied")
    except OSError as exc:
        return DiscoveryAttempt(path, FailureReason.NOT_FOUND, exc.strerror or str(exc))

    if path.suffix == ".app":
        return _check_bundle(path, info, platform)
    if stat.S_ISDIR(info.st_mode):
        return DiscoveryAttempt(path, FailureReason.IS_DIRECTORY, "Path is a directory, not a file")
    if platform is Platform.ANDROID:
        if path.suffix != ".apk":
            return DiscoveryAttempt(path, FailureReason.WRONG_EXTENSION, "Expected an .apk package")
        return None
    if platform is Platform.WINDOWS:
        if path.suffix.lower() != ".exe":
            return DiscoveryAttempt(path, FailureReason.WRONG_EXTENSION, "Expected an .exe file")
        return None
    if not os.access(path, os.X_OK):
        return DiscoveryAttempt(path, FailureReason.NOT_EXECUTABLE, "File is not executable")
    return None


def _check_bundle(path: Path, info: os.stat_result, platform: Platform) -> DiscoveryAttempt | None:
    if not stat.S_ISDIR(info.st_mode):
        return DiscoveryAttempt(path, FailureReason.MALFORMED_BUNDLE, "App bundle is not a directory")
    try:
        if platform is Platform.IOS:
            if not (path / "Info.plist").is_file():
                return DiscoveryAttempt(path, FailureReason.MALFORMED_BUNDLE, "Missing Info.plist")
            return None
        contents = path / "Contents"
        if not (contents / "Info.plist").is_file():
            return DiscoveryAttempt(path, FailureReason.MALFORMED_BUNDLE, "Missing Contents/Info.plist")
        macos_dir = contents / "MacOS"
        if not macos_dir.is_dir():
            return DiscoveryAttempt(path, FailureReason.MALFORMED_BUNDLE, "Missing Contents/MacOS")
        executables = [entry for entry in macos_dir.iterdir() if entry.is_file() and os.access(entry, os.X_OK)]
    except PermissionError:
        return DiscoveryAttempt(path, FailureReason.PERMISSION_DENIED, "Permission denied")
    if not executables:
        return DiscoveryAttempt(path, FailureReason.MALFORMED_BUNDLE, "No executable in Contents/MacOS")
    return None
