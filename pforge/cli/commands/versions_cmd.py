from __future__ import annotations

import json
from enum import StrEnum
from pathlib import Path
from typing import cast

import typer

from pforge.cli.commands.common import confirm_path, exit_with_error
from pforge.cli.context import build_context
from pforge.cli.render import render_updates, render_versions
from pforge.core.errors import ErrorCode
from pforge.core.result import Err
from pforge.services.release.model import VersionUpdateStatus
from pforge.services.release.version import VersionBump
from pforge.services.release.writer import (
    always_confirm,
    get_project_versions,
    set_project_versions,
)


class Bump(StrEnum):
    major = "major"
    minor = "minor"
    build = "build"
    revision = "revision"


def versions(
    path: Path | None = typer.Argument(None, help="Repository root (default: current directory)"),
    module: str | None = typer.Option(None, "--module", help="Only files named after this module"),
    exclude_dir: list[str] = typer.Option([], "--exclude-dir", help="Extra directory names to skip"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
) -> None:
    """List project files and the versions they declare."""
    ctx = build_context(path, json_output=json_output)
    excludes = [*ctx.config.release.exclude_directories, *exclude_dir]

    found = get_project_versions(ctx.root, module_name=module, exclude_directories=excludes)
    if isinstance(found, Err):
        exit_with_error(found.error, ctx.console)
    files = found.value

    if json_output:
        payload = [
            {"name": f.name, "kind": str(f.kind), "version": f.version, "path": str(f.path)}
            for f in files
        ]
        typer.echo(json.dumps(payload, indent=2))
        return

    if not files:
        ctx.console.warning(f"no versioned project files under {ctx.root}")
        return
    render_versions(ctx.console, files)


def set_version(
    path: Path | None = typer.Argument(None, help="Repository root (default: current directory)"),
    new_version: str | None = typer.Option(None, "--version", help="Exact version to write"),
    bump: Bump | None = typer.Option(None, "--bump", help="Version component to increment"),
    module: str | None = typer.Option(None, "--module", help="Only files named after this module"),
    exclude_dir: list[str] = typer.Option([], "--exclude-dir", help="Extra directory names to skip"),
    what_if: bool = typer.Option(False, "--what-if", help="Show the target version, change nothing"),
    confirm: bool = typer.Option(False, "--confirm", help="Ask before each file"),
) -> None:
    """Set or bump the version in every project file."""
    if (new_version is None) == (bump is None):
        typer.echo("error: pass exactly one of --version or --bump", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    ctx = build_context(path)
    excludes = [*ctx.config.release.exclude_directories, *exclude_dir]

    def decline(file: Path, action: str) -> bool:
        ctx.console.print(f"what if: {action} in {file}")
        return False

    gate = decline if what_if else (confirm_path if confirm else always_confirm)
    updated = set_project_versions(
        ctx.root,
        new_version=new_version,
        bump=cast(VersionBump, bump.value) if bump is not None else None,
        module_name=module,
        exclude_directories=excludes,
        confirm=gate,
        console=ctx.console,
    )
    if isinstance(updated, Err):
        exit_with_error(updated.error, ctx.console)

    results = updated.value
    render_updates(ctx.console, results)
    if any(r.status == VersionUpdateStatus.ERROR for r in results):
        raise typer.Exit(code=int(ErrorCode.IO_ERROR))
