from __future__ import annotations

import json
from enum import StrEnum
from pathlib import Path

import typer

from pforge import __version__
from pforge.cli.commands.common import (
    confirm_path,
    exit_release,
    exit_with_error,
    parse_map_items,
    release_error_code,
    secret_option,
)
from pforge.cli.context import CLIContext, build_context
from pforge.cli.render import render_release
from pforge.core.errors import ErrorCode
from pforge.core.result import Err
from pforge.platform.http import RealHttpClient
from pforge.services.release.model import (
    BuildConfiguration,
    GitHubReleaseOptions,
    PackageCredential,
    PublishOptions,
    ReleaseSpec,
    RepositoryReleaseResult,
    SigningOptions,
)
from pforge.services.release.orchestrator import RepositoryReleaseService, run_release
from pforge.services.release.timeouts import HTTP_TIMEOUT_SECONDS
from pforge.services.release.version_map import parse_version_map
from pforge.services.release.writer import always_confirm


class StoreLocation(StrEnum):
    CurrentUser = "CurrentUser"
    LocalMachine = "LocalMachine"


class Configuration(StrEnum):
    Release = "Release"
    Debug = "Debug"


def _signing(
    ctx: CLIContext,
    *,
    thumbprint: str | None,
    store_location: StoreLocation,
    pfx: Path | None,
    pfx_base64: str | None,
    pfx_base64_env: str | None,
    pfx_password: str | None,
    pfx_password_env: str | None,
    timestamp_server: str | None,
) -> SigningOptions | None:
    encoded = secret_option(inline=pfx_base64, file=None, env=pfx_base64_env, label="certificate")
    password = secret_option(
        inline=pfx_password, file=None, env=pfx_password_env, label="certificate password"
    )
    if not (thumbprint or pfx or encoded):
        return None
    return SigningOptions(
        thumbprint=thumbprint.strip() if thumbprint else None,
        pfx_path=pfx.expanduser().resolve() if pfx else None,
        pfx_base64=encoded,
        pfx_password=password,
        store_location="LocalMachine" if store_location == StoreLocation.LocalMachine else "CurrentUser",
        timestamp_server=timestamp_server or ctx.config.release.timestamp_server,
    )


def _print_json(result: RepositoryReleaseResult) -> None:
    typer.echo(json.dumps(result.to_dict(), indent=2))


def release(
    path: Path | None = typer.Argument(None, help="Repository root (default: current directory)"),
    expected_version: str | None = typer.Option(
        None, "--version", help="Target version for every project (1.2.3 or 1.2.X)"
    ),
    version_map: list[str] = typer.Option(
        [], "--map", help="Per-project target version (Name=1.2.X); repeatable"
    ),
    map_as_include: bool = typer.Option(
        False, "--map-as-include", help="Only release projects listed in --map"
    ),
    map_wildcards: bool = typer.Option(False, "--map-wildcards", help="Allow * and ? in --map names"),
    include: list[str] = typer.Option([], "--include", help="Project name to release; repeatable"),
    exclude: list[str] = typer.Option([], "--exclude", help="Project name to skip; repeatable"),
    exclude_dir: list[str] = typer.Option([], "--exclude-dir", help="Extra directory names to skip"),
    source: list[str] = typer.Option([], "--source", help="Package source for version lookup"),
    username: str | None = typer.Option(None, "--username", help="Package source user name"),
    secret: str | None = typer.Option(None, "--secret", help="Package source secret"),
    secret_file: Path | None = typer.Option(None, "--secret-file", help="Read the secret from a file"),
    secret_env: str | None = typer.Option(None, "--secret-env", help="Read the secret from an env var"),
    include_prerelease: bool = typer.Option(
        False, "--include-prerelease", help="Count prerelease versions as published"
    ),
    configuration: Configuration | None = typer.Option(
        None, "--configuration", help="Build configuration"
    ),
    output: Path | None = typer.Option(None, "--output", help="Package output directory"),
    skip_pack: bool = typer.Option(False, "--skip-pack", help="Use packages that already exist"),
    pack_dependencies: bool = typer.Option(
        False, "--pack-dependencies", help="Also release referenced projects"
    ),
    release_zip: bool = typer.Option(False, "--release-zip", help="Zip bin/<configuration> per project"),
    thumbprint: str | None = typer.Option(None, "--certificate-thumbprint", help="Windows store cert"),
    store_location: StoreLocation = typer.Option(
        StoreLocation.CurrentUser, "--certificate-store", help="Windows certificate store"
    ),
    pfx: Path | None = typer.Option(None, "--certificate-pfx", help="PFX certificate file"),
    pfx_base64: str | None = typer.Option(None, "--certificate-pfx-base64", help="PFX as Base64"),
    pfx_base64_env: str | None = typer.Option(
        None, "--certificate-pfx-base64-env", help="Env var holding the PFX as Base64"
    ),
    pfx_password: str | None = typer.Option(None, "--certificate-password", help="PFX password"),
    pfx_password_env: str | None = typer.Option(
        None, "--certificate-password-env", help="Env var holding the PFX password"
    ),
    timestamp_server: str | None = typer.Option(None, "--timestamp-server", help="RFC 3161 server"),
    publish: bool = typer.Option(False, "--publish", help="Push packages after packing"),
    publish_source: str | None = typer.Option(None, "--publish-source", help="Feed to push to"),
    api_key: str | None = typer.Option(None, "--api-key", help="Publish API key"),
    api_key_file: Path | None = typer.Option(None, "--api-key-file", help="Read the API key from a file"),
    api_key_env: str | None = typer.Option(None, "--api-key-env", help="Read the API key from an env var"),
    skip_duplicate: bool = typer.Option(
        False, "--skip-duplicate", help="Allow versions that are already published"
    ),
    fail_fast: bool = typer.Option(False, "--fail-fast", help="Stop at the first pack/sign/push failure"),
    github: bool = typer.Option(False, "--github-release", help="Create a GitHub release per project"),
    owner: str | None = typer.Option(None, "--owner", help="GitHub owner"),
    repo: str | None = typer.Option(None, "--repo", help="GitHub repository"),
    token: str | None = typer.Option(None, "--token", help="GitHub token"),
    token_file: Path | None = typer.Option(None, "--token-file", help="Read the token from a file"),
    token_env: str | None = typer.Option(None, "--token-env", help="Read the token from an env var"),
    tag_template: str | None = typer.Option(
        None, "--tag-template", help="Tag format with {project} and {version}"
    ),
    draft: bool = typer.Option(False, "--draft", help="Create draft releases"),
    prerelease: bool = typer.Option(False, "--prerelease", help="Mark releases as prerelease"),
    what_if: bool = typer.Option(False, "--what-if", help="Plan only; change nothing"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before releasing"),
    confirm: bool = typer.Option(False, "--confirm", help="Ask before each project file write"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Version, pack, sign and publish every packable project."""
    ctx = build_context(path, json_output=json_output)
    cfg = ctx.config.release

    vmap = parse_version_map(
        parse_map_items(version_map), as_include=map_as_include, use_wildcards=map_wildcards
    )
    if isinstance(vmap, Err):
        exit_with_error(vmap.error, ctx.console)

    source_secret = secret_option(inline=secret, file=secret_file, env=secret_env, label="secret")
    credential = (
        PackageCredential(username=username.strip() if username else None, secret=source_secret)
        if source_secret
        else None
    )

    publish_options: PublishOptions | None = None
    if publish:
        key = secret_option(inline=api_key, file=api_key_file, env=api_key_env, label="api key")
        publish_options = PublishOptions(
            source=publish_source or cfg.publish_source,
            api_key=key or "",
            skip_duplicate=skip_duplicate or cfg.skip_duplicate,
            fail_fast=fail_fast,
        )

    github_options: GitHubReleaseOptions | None = None
    if github:
        gh_token = secret_option(inline=token, file=token_file, env=token_env, label="token")
        gh_owner = owner or ctx.config.github.owner
        gh_repo = repo or ctx.config.github.repo
        if not (gh_owner and gh_repo and gh_token):
            exit_release(
                "--github-release needs --owner, --repo and a token", code=ErrorCode.USER_ERROR
            )
        github_options = GitHubReleaseOptions(
            owner=gh_owner,
            repo=gh_repo,
            token=gh_token,
            tag_template=tag_template or ctx.config.github.tag_template,
            draft=draft,
            prerelease=prerelease,
        )

    build_configuration: BuildConfiguration = (
        "Debug" if (configuration or cfg.configuration) == "Debug" else "Release"
    )
    output_path = output or (Path(cfg.output_path) if cfg.output_path else None)
    if output_path is not None and not output_path.is_absolute():
        output_path = ctx.root / output_path

    spec = ReleaseSpec(
        root=ctx.root,
        expected_version=expected_version,
        version_map=vmap.value,
        include_projects=tuple(include),
        exclude_projects=tuple(exclude),
        exclude_directories=(*cfg.exclude_directories, *exclude_dir),
        sources=tuple(source) or cfg.sources,
        credential=credential,
        include_prerelease=include_prerelease or cfg.include_prerelease,
        configuration=build_configuration,
        output_path=output_path,
        skip_pack=skip_pack,
        pack_dependencies=pack_dependencies,
        signing=_signing(
            ctx,
            thumbprint=thumbprint,
            store_location=store_location,
            pfx=pfx,
            pfx_base64=pfx_base64,
            pfx_base64_env=pfx_base64_env,
            pfx_password=pfx_password,
            pfx_password_env=pfx_password_env,
            timestamp_server=timestamp_server,
        ),
        publish=publish_options,
        github=github_options,
        create_release_zip=release_zip,
        what_if=what_if,
    )

    service = RepositoryReleaseService(
        console=ctx.console,
        http=RealHttpClient(timeout=HTTP_TIMEOUT_SECONDS, user_agent=f"pforge/{__version__}"),
        confirm=confirm_path if confirm else always_confirm,
        platform=ctx.platform,
    )

    def confirm_run(plan: RepositoryReleaseResult) -> bool:
        render_release(ctx.console, plan)
        if not plan.success:
            ctx.console.warning("the plan has failed projects; they will be reported again")
        return typer.confirm("Proceed with the release?", default=False)

    if what_if or yes:
        result = service.execute(spec)
    else:
        result = run_release(service, spec, confirm_run=confirm_run)
        if result.what_if and result.projects:
            ctx.console.warning("release cancelled; nothing was changed")

    if json_output:
        _print_json(result)
    else:
        render_release(ctx.console, result)

    if not result.success:
        if result.error_message:
            ctx.console.error(result.error_message)
        raise typer.Exit(code=int(release_error_code(result.error_kind)))
