"""appbridge command line: inspect discovery and capability composition."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.table import Table

from appbridge.capabilities import Layer, compose
from appbridge.context import BridgeContext
from appbridge.errors import CompositionError, ConfigurationError
from appbridge.locator import BinaryLocator, remediation_for
from appbridge.logging_utils import configure_logging
from appbridge.types import BuildMode, Framework, Platform, ResolvedBinary, TargetDescriptor, host_arch

app = typer.Typer(
    name="appbridge",
    help="Locate native app builds and compose automation session capabilities.",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    configure_logging(profile="rich", level="DEBUG" if verbose else "ERROR")


@app.command("locate")
def locate(
    framework: Framework = typer.Option(..., "--framework", "-f", help="Build tool family"),
    project: Path = typer.Option(Path("."), "--project", "-p", help="Project root"),  # noqa: B008
    platform: Platform | None = typer.Option(None, "--platform", help="Target platform, defaults to the host"),
    mode: BuildMode = typer.Option(BuildMode.RELEASE, "--mode", "-m", help="Build mode"),
    app_name: str | None = typer.Option(None, "--app-name", help="Skip metadata lookup and use this name"),
    binary: Path | None = typer.Option(None, "--binary", help="Explicit binary to validate"),  # noqa: B008
    flavor: list[str] = typer.Option([], "--flavor", help="Build flavor, repeatable"),  # noqa: B008
    arch: str | None = typer.Option(None, "--arch", help="x64 or arm64, defaults to the host"),
) -> None:
    """Show every candidate path and why it was accepted or rejected."""

    target = _target(framework, project, platform, mode, app_name, binary, flavor, arch)
    resolved = _resolve(target)
    _print_attempts(resolved)
    if not resolved.success:
        typer.echo(f"Build the app with: {remediation_for(target)}", err=True)
        raise typer.Exit(1)
    typer.echo(str(resolved.absolute_path))


@app.command("capabilities")
def capabilities(
    layers: list[Path] = typer.Argument(..., help="JSON or YAML layer files, least specific first"),  # noqa: B008
    framework: Framework = typer.Option(..., "--framework", "-f", help="Build tool family"),
    project: Path = typer.Option(Path("."), "--project", "-p", help="Project root"),  # noqa: B008
    platform: Platform | None = typer.Option(None, "--platform", help="Target platform, defaults to the host"),
    mode: BuildMode = typer.Option(BuildMode.RELEASE, "--mode", "-m", help="Build mode"),
    app_name: str | None = typer.Option(None, "--app-name", help="Skip metadata lookup and use this name"),
    binary: Path | None = typer.Option(None, "--binary", help="Explicit binary to validate"),  # noqa: B008
    flavor: list[str] = typer.Option([], "--flavor", help="Build flavor, repeatable"),  # noqa: B008
    arch: str | None = typer.Option(None, "--arch", help="x64 or arm64, defaults to the host"),
) -> None:
    """Merge capability layer files for a target and print the result as JSON."""

    target = _target(framework, project, platform, mode, app_name, binary, flavor, arch)
    try:
        loaded = [Layer(name=path.name, values=_read_layer(path)) for path in layers]
        composed = compose(loaded, _resolve(target), target=target)
    except (CompositionError, ConfigurationError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from None
    typer.echo(json.dumps(composed.to_dict(), indent=2, sort_keys=True))


def _target(
    framework: Framework,
    project: Path,
    platform: Platform | None,
    mode: BuildMode,
    app_name: str | None,
    binary: Path | None,
    flavors: list[str],
    arch: str | None,
) -> TargetDescriptor:
    return TargetDescriptor(
        platform=platform or Platform.host(),
        framework=framework,
        project_root=project,
        build_mode=mode,
        binary_override=binary,
        app_name=app_name,
        flavors=tuple(flavors),
        arch=arch or host_arch(),
    )


def _resolve(target: TargetDescriptor) -> ResolvedBinary:
    return asyncio.run(BinaryLocator(BridgeContext()).resolve(target))


def _read_layer(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read layer file {path}: {exc.strerror}") from exc
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Layer file {path} is not valid: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Layer file {path} must contain a mapping")
    return data


def _print_attempts(resolved: ResolvedBinary) -> None:
    console = Console(stderr=True)
    for error in resolved.generation_errors:
        console.print(f"[yellow]{error.kind.value}[/yellow]: {error.message}")
    if not resolved.discovery_attempts and not resolved.success:
        return
    table = Table(title="Candidate paths")
    table.add_column("Path", overflow="fold")
    table.add_column("Result")
    table.add_column("Detail")
    for attempt in resolved.discovery_attempts:
        table.add_row(str(attempt.candidate_path), attempt.failure_reason.value, attempt.detail)
    if resolved.success:
        table.add_row(str(resolved.absolute_path), "ok", "")
    console.print(table)

