"""Summary tables for CLI output."""

from __future__ import annotations

from collections.abc import Sequence

from pforge.output.console import ConsoleProtocol, Style
from pforge.services.release.model import (
    DiscoveredFile,
    GitHubReleaseResult,
    ProjectStatus,
    RepositoryReleaseResult,
    VersionUpdateResult,
)


def render_versions(console: ConsoleProtocol, files: Sequence[DiscoveredFile]) -> None:
    console.table(
        "Project versions",
        ["Name", "Kind", "Version", "Path"],
        [[f.name, str(f.kind), f.version or "-", str(f.path)] for f in files],
    )


def render_updates(console: ConsoleProtocol, results: Sequence[VersionUpdateResult]) -> None:
    console.table(
        "Version updates",
        ["File", "Kind", "Old", "New", "Status", "Error"],
        [
            [r.path.name, str(r.kind), r.old_version or "-", r.new_version, str(r.status), r.error or ""]
            for r in results
        ],
    )


def render_release(console: ConsoleProtocol, result: RepositoryReleaseResult) -> None:
    title = "Release plan" if result.what_if else "Release summary"
    console.table(
        title,
        ["Project", "Packable", "Version", "Packages", "Status", "Error"],
        [
            [
                p.name,
                "yes" if p.packable else "no",
                f"{p.old_version or '-'} -> {p.new_version or '-'}",
                ", ".join(pkg.name for pkg in p.packages),
                str(p.status),
                p.error or "",
            ]
            for p in result.projects
        ],
    )

    counts = {status: 0 for status in ProjectStatus}
    for p in result.projects:
        counts[p.status] += 1
    console.table(
        "Totals",
        ["Projects", *(str(s) for s in ProjectStatus), "Published"],
        [
            [
                str(len(result.projects)),
                *(str(counts[s]) for s in ProjectStatus),
                str(len(result.published_packages)),
            ]
        ],
    )

    for p in result.projects:
        for warning in p.warnings:
            console.print(f"{p.name}: {warning}", Style.DIM)
    if result.resolved_version:
        console.print(f"version: {result.resolved_version}", Style.BOLD)


def render_github(console: ConsoleProtocol, result: GitHubReleaseResult) -> None:
    state = "reused" if result.reused_existing else ("created" if result.release_created else "failed")
    console.print(f"release: {state}", Style.BOLD)
    if result.release_url:
        console.print(f"url: {result.release_url}")
    for name in result.uploaded:
        console.success(f"uploaded {name}")
    for name in result.skipped:
        console.print(f"already attached: {name}", Style.DIM)
