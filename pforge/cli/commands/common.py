from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer

from pforge.core.errors import ErrorCode
from pforge.core.result import Err
from pforge.core.secrets import SecretRef, resolve_secret
from pforge.output.console import ConsoleProtocol, Style
from pforge.services.release.errors import ReleaseError


def exit_release(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def exit_with_error(error: ReleaseError, console: ConsoleProtocol) -> NoReturn:
    console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
    raise typer.Exit(code=int(release_error_code(error.kind)))


def release_error_code(kind: str | None) -> ErrorCode:
    if kind in {"tool_unavailable"}:
        return ErrorCode.ENV_ERROR
    if kind in {"pack_failed", "sign_failed"}:
        return ErrorCode.BUILD_ERROR
    if kind in {
        "version_source_unavailable",
        "publish_failed",
        "release_creation_failed",
        "asset_upload_failed",
        "timeout",
    }:
        return ErrorCode.NETWORK_ERROR
    if kind == "io_error":
        return ErrorCode.IO_ERROR
    return ErrorCode.USER_ERROR


def parse_map_items(items: list[str]) -> list[tuple[str, str]]:
    """``Name=Version`` items as pairs; validation happens in the version map."""
    pairs: list[tuple[str, str]] = []
    for item in items:
        name, _, version = item.partition("=")
        pairs.append((name, version))
    return pairs


def secret_option(
    *,
    inline: str | None,
    file: Path | None,
    env: str | None,
    label: str,
) -> str | None:
    resolved = resolve_secret(SecretRef(inline=inline, file_path=file, env_name=env))
    if isinstance(resolved, Err):
        exit_release(f"{label}: {resolved.error.message}", code=ErrorCode.USER_ERROR)
    return resolved.value


def confirm_path(path: Path, action: str) -> bool:
    return typer.confirm(f"{action} in {path}?", default=True)
