from __future__ import annotations

import os

import typer

from pforge import __version__
from pforge.cli.commands.github_cmd import github_release
from pforge.cli.commands.release_cmd import release
from pforge.cli.commands.versions_cmd import set_version, versions
from pforge.cli.context import VERBOSE_ENV

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(versions)
app.command("set-version")(set_version)
app.command()(release)
app.command("github-release")(github_release)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", callback=_print_version, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output."),
) -> None:
    del version
    if verbose:
        os.environ[VERBOSE_ENV] = "1"


def main() -> None:
    app()
