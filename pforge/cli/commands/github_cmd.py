from __future__ import annotations

import json
from pathlib import Path

import typer

from pforge import __version__
from pforge.cli.commands.common import (
    exit_release,
    exit_with_error,
    release_error_code,
    secret_option,
)
from pforge.cli.context import build_context
from pforge.cli.render import render_github
from pforge.core.errors import ErrorCode
from pforge.core.result import Err
from pforge.platform.http import RealHttpClient
from pforge.services.release.github import GitHubReleasePublisher
from pforge.services.release.model import GitHubReleaseRequest
from pforge.services.release.timeouts import HTTP_TIMEOUT_SECONDS


def github_release(
    tag: str = typer.Option(..., "--tag", help="Tag to release"),
    owner: str | None = typer.Option(None, "--owner", help="GitHub owner (default: pforge.toml)"),
    repo: str | None = typer.Option(None, "--repo", help="GitHub repository (default: pforge.toml)"),
    name: str | None = typer.Option(None, "--name", help="Release title (default: the tag)"),
    notes: str | None = typer.Option(None, "--notes", help="Release body"),
    notes_file: Path | None = typer.Option(None, "--notes-file", help="Read the release body from a file"),
    generate_notes: bool = typer.Option(False, "--generate-notes", help="Let GitHub write the notes"),
    commitish: str | None = typer.Option(None, "--commitish", help="Branch or SHA for a new tag"),
    draft: bool = typer.Option(False, "--draft", help="Create a draft release"),
    prerelease: bool = typer.Option(False, "--prerelease", help="Mark as prerelease"),
    no_reuse: bool = typer.Option(False, "--no-reuse", help="Fail when the tag already has a release"),
    asset: list[Path] = typer.Option([], "--asset", help="File to attach; repeatable"),
    token: str | None = typer.Option(None, "--token", help="GitHub token"),
    token_file: Path | None = typer.Option(None, "--token-file", help="Read the token from a file"),
    token_env: str | None = typer.Option(
        "GITHUB_TOKEN", "--token-env", help="Read the token from an env var"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Create or reuse a GitHub release and upload assets to it."""
    ctx = build_context(json_output=json_output)

    body = notes
    if notes_file is not None:
        try:
            body = notes_file.read_text(encoding="utf-8")
        except OSError as e:
            exit_release(f"cannot read notes file: {e}", code=ErrorCode.IO_ERROR)

    request = GitHubReleaseRequest(
        owner=owner or ctx.config.github.owner or "",
        repo=repo or ctx.config.github.repo or "",
        tag=tag,
        name=name,
        notes=body,
        commitish=commitish,
        draft=draft,
        prerelease=prerelease,
        generate_notes=generate_notes,
        reuse_existing=not no_reuse,
        assets=tuple(asset),
    )
    resolved_token = secret_option(inline=token, file=token_file, env=token_env, label="token")

    publisher = GitHubReleasePublisher(
        http=RealHttpClient(timeout=HTTP_TIMEOUT_SECONDS, user_agent=f"pforge/{__version__}"),
        console=ctx.console,
    )
    sent = publisher.publish(request, resolved_token)
    if isinstance(sent, Err):
        exit_with_error(sent.error, ctx.console)
    result = sent.value

    if json_output:
        payload = {
            "release_created": result.release_created,
            "all_assets_uploaded": result.all_assets_uploaded,
            "release_url": result.release_url,
            "reused_existing": result.reused_existing,
            "uploaded": list(result.uploaded),
            "skipped": list(result.skipped),
            "error_message": result.error_message,
            "error_kind": result.error_kind,
        }
        typer.echo(json.dumps(payload, indent=2))
    else:
        render_github(ctx.console, result)

    if not result.succeeded:
        if result.error_message:
            ctx.console.error(result.error_message)
        raise typer.Exit(code=int(release_error_code(result.error_kind or "release_creation_failed")))
