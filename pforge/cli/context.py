from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from pforge.core.config import PforgeConfig, load_config_or_default
from pforge.core.errors import ErrorCode
from pforge.core.result import Err
from pforge.output.console import ConsoleProtocol, RichConsole
from pforge.platform.detection import Platform, detect_platform

VERBOSE_ENV = "PFORGE_VERBOSE"


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    platform: Platform
    config: PforgeConfig
    console: ConsoleProtocol


def build_context(path: Path | None = None, *, json_output: bool = False) -> CLIContext:
    """Resolve the repository root and load its ``pforge.toml``.

    With ``json_output`` the console writes to stderr so stdout carries only
    the JSON document.
    """
    try:
        root = (path or Path.cwd()).expanduser().resolve()
    except OSError as e:
        typer.echo(f"error: invalid path: {e}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    if not root.is_dir():
        typer.echo(f"error: path not found: {root}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    config_result = load_config_or_default(root)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(
        root=root,
        platform=detect_platform(),
        config=config_result.value,
        console=RichConsole(verbose=os.environ.get(VERBOSE_ENV) == "1", stderr=json_output),
    )
