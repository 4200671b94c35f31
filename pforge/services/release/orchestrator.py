"""Repository-wide release: resolve, write, pack, sign, publish.

One ``execute`` call handles every packable csproj under a root. Project
failures are recorded on that project's outcome and the loop moves on,
unless ``publish.fail_fast`` is set, which stops at the first pack, sign,
release zip or push failure. With ``what_if`` the whole resolution runs but nothing is
written, built or sent, and the result has the same shape as a real run.
"""

from __future__ import annotations

import graphlib
import zipfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path

from pforge.core.result import Err, Ok, Result
from pforge.output.console import ConsoleProtocol
from pforge.platform.detection import Platform, detect_platform
from pforge.platform.http import HttpClient
from pforge.services.release.dotnet import DotNetCli, find_packages, planned_package
from pforge.services.release.errors import ReleaseError, ReleaseErrorKind
from pforge.services.release.github import GitHubReleasePublisher
from pforge.services.release.model import (
    DiscoveredFile,
    GitHubReleaseRequest,
    ProjectReleaseOutcome,
    ProjectStatus,
    ReleaseSpec,
    RepositoryReleaseResult,
    SigningOptions,
    SourceKind,
    VersionUpdateStatus,
)
from pforge.services.release.nuget import PackageVersionSource
from pforge.services.release.pattern import parse_version_spec
from pforge.services.release.resolver import ProjectVersionInput, VersionResolver
from pforge.services.release.scanner import discover, is_packable, project_references, sort_key
from pforge.services.release.signing import PackageSigner, validate_signing
from pforge.services.release.version import parse_numeric_version
from pforge.services.release.writer import ConfirmGate, always_confirm, write_version

SignerFactory = Callable[[SigningOptions], PackageSigner]

# (plan) -> proceed with the real run?
RunGate = Callable[[RepositoryReleaseResult], bool]


@dataclass
class _Project:
    """Mutable per-project state for the duration of one run."""

    name: str
    csproj: Path
    packable: bool
    current_version: str | None
    dependencies: list[str] = field(default_factory=list)
    new_version: str | None = None
    packages: list[Path] = field(default_factory=list)
    status: ProjectStatus = ProjectStatus.PLANNED
    error: str | None = None
    error_kind: ReleaseErrorKind | None = None
    warnings: list[str] = field(default_factory=list)
    release_zip: Path | None = None
    github_release_url: str | None = None

    @property
    def active(self) -> bool:
        return self.packable and self.status not in (ProjectStatus.FAILED, ProjectStatus.SKIPPED)

    def fail(self, error: ReleaseError) -> None:
        self.status = ProjectStatus.FAILED
        self.error = str(error)
        self.error_kind = error.kind

    def freeze(self) -> ProjectReleaseOutcome:
        return ProjectReleaseOutcome(
            name=self.name,
            csproj_path=self.csproj,
            packable=self.packable,
            old_version=self.current_version,
            new_version=self.new_version,
            packages=tuple(self.packages),
            status=self.status,
            error=self.error,
            error_kind=self.error_kind,
            warnings=tuple(self.warnings),
            dependencies=tuple(self.dependencies),
            release_zip=self.release_zip,
            github_release_url=self.github_release_url,
        )


class _StopRun(Exception):
    """Raised inside the project loop when fail-fast trips."""


def publish_order(projects: Sequence[_Project], console: ConsoleProtocol) -> list[_Project]:
    """Dependencies before dependents; name order when references form a cycle."""
    by_name = {p.name.casefold(): p for p in projects}
    sorter: graphlib.TopologicalSorter[str] = graphlib.TopologicalSorter()
    for p in sorted(projects, key=lambda x: x.name.casefold()):
        deps = sorted(d.casefold() for d in p.dependencies if d.casefold() in by_name)
        sorter.add(p.name.casefold(), *deps)
    try:
        ordered = list(sorter.static_order())
    except graphlib.CycleError as e:
        cycle = " -> ".join(str(n) for n in e.args[1])
        console.warning(f"project references form a cycle ({cycle}); publishing in name order")
        return sorted(projects, key=lambda x: x.name.casefold())
    return [by_name[name] for name in ordered]


def create_release_zip(
    csproj: Path, *, name: str, version: str, configuration: str
) -> Result[Path, ReleaseError]:
    """Zip ``bin/<configuration>`` of a project, leaving packages out."""
    release_dir = csproj.parent / "bin" / configuration
    if not release_dir.is_dir():
        return Err(ReleaseError(kind="io_error", message=f"release path not found: {release_dir}"))

    zip_path = release_dir / f"{name}.{version}.zip"
    try:
        zip_path.unlink(missing_ok=True)
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for file in sorted(release_dir.rglob("*"), key=sort_key):
                if not file.is_file() or file == zip_path:
                    continue
                if file.suffix.lower() in (".nupkg", ".snupkg"):
                    continue
                archive.write(file, file.relative_to(release_dir).as_posix())
    except OSError as e:
        return Err(ReleaseError(kind="io_error", message=f"failed to create release zip: {e}"))
    return Ok(zip_path)


@dataclass
class RepositoryReleaseService:
    console: ConsoleProtocol
    http: HttpClient
    dotnet: DotNetCli = field(default_factory=DotNetCli)
    signer_factory: SignerFactory = PackageSigner
    confirm: ConfirmGate = always_confirm
    platform: Platform = field(default_factory=detect_platform)

    def execute(self, spec: ReleaseSpec) -> RepositoryReleaseResult:
        validated = self._validate(spec)
        if isinstance(validated, Err):
            self.console.error(str(validated.error))
            return RepositoryReleaseResult(
                projects=(),
                resolved_version=None,
                published_packages=(),
                success=False,
                what_if=spec.what_if,
                error_message=validated.error.message,
                error_kind=validated.error.kind,
            )
        root = validated.value

        self.console.header("Release plan" if spec.what_if else "Release")
        projects = self._select(spec, root)
        if not projects:
            self.console.warning(f"no projects found under {root}")

        registry = PackageVersionSource(http=self.http, console=self.console, base_dir=root)
        resolver = VersionResolver(
            registry=registry,
            console=self.console,
            sources=spec.sources,
            credential=spec.credential,
            include_prerelease=spec.include_prerelease,
        )
        self._resolve(spec, projects, resolver)

        published: list[str] = []
        if spec.what_if:
            self._plan(spec, projects, published)
            return self._aggregate(spec, projects, published)

        try:
            self._build(spec, projects)
            if spec.publish is not None:
                self._publish(spec, projects, registry, published)
        except _StopRun:
            for p in projects:
                if p.active and p.status == ProjectStatus.PLANNED:
                    p.status = ProjectStatus.SKIPPED
                    p.warnings.append("not processed: stopped after an earlier failure")
        else:
            if spec.github is not None:
                self._github_releases(spec, projects)

        return self._aggregate(spec, projects, published)

    # Validation

    def _validate(self, spec: ReleaseSpec) -> Result[Path, ReleaseError]:
        """Run-level checks; nothing here touches the network or project files."""
        try:
            root = spec.root.expanduser().resolve()
        except OSError as e:
            return Err(ReleaseError(kind="invalid_input", message=f"invalid root path: {e}"))
        if not root.is_dir():
            return Err(ReleaseError(kind="invalid_input", message=f"Root path not found: {root}"))

        if spec.expected_version and spec.expected_version.strip():
            parsed = parse_version_spec(spec.expected_version)
            if isinstance(parsed, Err):
                return parsed

        if spec.publish is not None:
            if not spec.publish.api_key:
                return Err(
                    ReleaseError(
                        kind="invalid_input",
                        message="PublishApiKey is required when publishing.",
                        hint="pass --api-key, --api-key-file or --api-key-env",
                    )
                )
            if not spec.publish.source:
                return Err(ReleaseError(kind="invalid_input", message="a publish source is required"))

        if spec.signing is not None:
            checked = validate_signing(spec.signing, self.platform)
            if isinstance(checked, Err):
                return checked

        if spec.github is not None:
            gh = spec.github
            if not (gh.owner and gh.repo and gh.token):
                return Err(
                    ReleaseError(
                        kind="invalid_input",
                        message="GitHub owner, repo and token are required for GitHub releases",
                    )
                )
        return Ok(root)

    # Selection

    def _select(self, spec: ReleaseSpec, root: Path) -> list[_Project]:
        discovered = discover(root, spec.exclude_directories, kinds=frozenset({SourceKind.CSPROJ}))
        include = {n.strip().casefold() for n in spec.include_projects if n.strip()}
        exclude = {n.strip().casefold() for n in spec.exclude_projects if n.strip()}

        candidates = [f for f in discovered if f.name.casefold() not in exclude]
        selected = [f for f in candidates if not include or f.name.casefold() in include]

        vmap = spec.version_map
        if not vmap.is_empty:
            mode = "include-only" if vmap.as_include else "override"
            wildcards = ", wildcards enabled" if vmap.use_wildcards else ""
            self.console.info(f"expected version map: {len(vmap.entries)} entries ({mode}{wildcards})")
            for pattern in vmap.unmatched_patterns(f.name for f in selected):
                self.console.warning(f"expected version map entry matches no project: {pattern}")
            if vmap.as_include:
                dropped = sorted({f.name for f in selected if not vmap.includes(f.name)})
                selected = [f for f in selected if vmap.includes(f.name)]
                if dropped:
                    self.console.info(f"excluded by expected version map: {', '.join(dropped)}")

        def key(f: DiscoveredFile) -> str:
            return sort_key(f.path)

        by_path = {key(f): f for f in candidates}
        references: dict[str, list[DiscoveredFile]] = {}
        for f in candidates:
            refs = (by_path.get(sort_key(r)) for r in project_references(f.path))
            references[key(f)] = [r for r in refs if r is not None]

        if spec.pack_dependencies:
            chosen = {key(f) for f in selected}
            queue = list(selected)
            while queue:
                current = queue.pop()
                for dep in references[key(current)]:
                    if key(dep) in chosen:
                        continue
                    chosen.add(key(dep))
                    queue.append(dep)
                    self.console.info(f"adding dependency {dep.name} (referenced by {current.name})")
            selected = [f for f in candidates if key(f) in chosen]

        projects = [
            _Project(
                name=f.name,
                csproj=f.path,
                packable=is_packable(f.path),
                current_version=f.version,
                dependencies=[d.name for d in references[key(f)]],
            )
            for f in sorted(selected, key=key)
        ]

        groups: dict[str, list[_Project]] = {}
        for p in projects:
            groups.setdefault(p.name.casefold(), []).append(p)
        for group in groups.values():
            if len(group) < 2:
                continue
            paths = ", ".join(str(p.csproj) for p in group)
            for p in group:
                p.fail(
                    ReleaseError(
                        kind="duplicate_project",
                        message=f"Duplicate project name '{p.name}' found at: {paths}",
                    )
                )
                self.console.error(p.error or "")

        for p in projects:
            if not p.packable and p.status != ProjectStatus.FAILED:
                p.status = ProjectStatus.SKIPPED
                p.warnings.append("IsPackable is false")
                self.console.debug(f"{p.name}: not packable, skipped")
        return projects

    # Stages

    def _resolve(self, spec: ReleaseSpec, projects: list[_Project], resolver: VersionResolver) -> None:
        active = [p for p in projects if p.active]
        resolved = resolver.resolve_all(
            [ProjectVersionInput(p.name, p.current_version) for p in active],
            expected_version=spec.expected_version,
            version_map=spec.version_map,
        )
        for p in active:
            outcome = resolved[p.name]
            if isinstance(outcome, Err):
                p.fail(outcome.error)
                self.console.error(f"{p.name}: {outcome.error}")
                continue
            p.new_version = outcome.value.version
            self.console.debug(
                f"{p.name}: {p.current_version or '-'} -> {p.new_version} ({outcome.value.origin})"
            )

    def _plan(self, spec: ReleaseSpec, projects: list[_Project], published: list[str]) -> None:
        for p in projects:
            if not p.active or p.new_version is None:
                continue
            package = planned_package(
                p.csproj,
                name=p.name,
                version=p.new_version,
                configuration=spec.configuration,
                output=spec.output_path,
            )
            p.packages = [package]
            if spec.publish is not None:
                published.append(package.name)
            self.console.print(f"{p.name}: {p.current_version or '-'} -> {p.new_version}")

    def _stage_failed(self, spec: ReleaseSpec, project: _Project, error: ReleaseError) -> None:
        project.fail(error)
        self.console.error(f"{project.name}: {error}")
        if spec.publish is not None and spec.publish.fail_fast:
            raise _StopRun()

    def _build(self, spec: ReleaseSpec, projects: list[_Project]) -> None:
        signer = self.signer_factory(spec.signing) if spec.signing is not None else None
        can_sign = signer is not None and signer.available()
        if signer is not None and not can_sign:
            self.console.warning("dotnet not found; packages will not be signed")

        for p in projects:
            if not p.active or p.new_version is None:
                continue

            update = write_version(
                DiscoveredFile(p.csproj, SourceKind.CSPROJ, p.current_version),
                p.new_version,
                confirm=self.confirm,
                console=self.console,
                insert_missing=True,
            )
            if update.status == VersionUpdateStatus.ERROR:
                p.fail(ReleaseError(kind="io_error", message=f"version update failed: {update.error}"))
                self.console.error(f"{p.name}: {p.error}")
                continue
            if update.status == VersionUpdateStatus.SKIPPED:
                p.status = ProjectStatus.SKIPPED
                p.warnings.append("version update declined")
                continue
            if update.status == VersionUpdateStatus.UPDATED:
                self.console.success(f"{p.name}: {p.current_version or '-'} -> {p.new_version}")

            if not spec.skip_pack:
                packed = self.dotnet.pack(p.csproj, configuration=spec.configuration, output=spec.output_path)
                if isinstance(packed, Err):
                    self._stage_failed(spec, p, packed.error)
                    continue

            p.packages = find_packages(
                p.csproj,
                name=p.name,
                version=p.new_version,
                configuration=spec.configuration,
                output=spec.output_path,
            )
            if not p.packages:
                self._stage_failed(
                    spec,
                    p,
                    ReleaseError(kind="pack_failed", message=f"no packages found for {p.name} {p.new_version}"),
                )
                continue

            if signer is not None and not can_sign:
                p.warnings.append("signing skipped: dotnet not found")
            elif signer is not None:
                for package in p.packages:
                    signed = signer.sign(package)
                    if isinstance(signed, Err):
                        self._stage_failed(spec, p, signed.error)
                        break
                if p.status == ProjectStatus.FAILED:
                    continue

            if spec.create_release_zip:
                zipped = create_release_zip(
                    p.csproj, name=p.name, version=p.new_version, configuration=spec.configuration
                )
                if isinstance(zipped, Err):
                    self._stage_failed(spec, p, zipped.error)
                    continue
                p.release_zip = zipped.value

            if spec.publish is None:
                p.status = ProjectStatus.RELEASED

    def _publish(
        self,
        spec: ReleaseSpec,
        projects: list[_Project],
        registry: PackageVersionSource,
        published: list[str],
    ) -> None:
        publish = spec.publish
        assert publish is not None
        ready = [p for p in projects if p.active and p.packages and p.new_version]

        for p in publish_order(ready, self.console):
            missing = [pkg for pkg in p.packages if not pkg.is_file()]
            if missing:
                self._stage_failed(
                    spec,
                    p,
                    ReleaseError(kind="publish_failed", message=f"package not found: {missing[0]}"),
                )
                continue

            target = parse_numeric_version(p.new_version or "")
            latest = registry.latest(p.name, sources=(publish.source,), credential=spec.credential)
            if isinstance(latest, Err):
                p.warnings.append(f"publish preflight skipped: {latest.error.message}")
                self.console.warning(f"{p.name}: publish preflight skipped: {latest.error.message}")
            elif (
                latest.value is not None
                and target is not None
                and latest.value >= target
                and not publish.skip_duplicate
            ):
                self._stage_failed(
                    spec,
                    p,
                    ReleaseError(
                        kind="publish_failed",
                        message=f"version {p.new_version} is not above published {latest.value}",
                        hint="raise the expected version or pass --skip-duplicate",
                    ),
                )
                continue

            for package in p.packages:
                pushed = self.dotnet.push(
                    package,
                    source=publish.source,
                    api_key=publish.api_key,
                    skip_duplicate=publish.skip_duplicate,
                )
                if isinstance(pushed, Err):
                    self._stage_failed(spec, p, pushed.error)
                    break
                published.append(package.name)
                self.console.success(f"published {package.name}")
            else:
                p.status = ProjectStatus.RELEASED

    def _github_releases(self, spec: ReleaseSpec, projects: list[_Project]) -> None:
        gh = spec.github
        assert gh is not None
        publisher = GitHubReleasePublisher(http=self.http, console=self.console)
        for p in projects:
            if p.status != ProjectStatus.RELEASED or not p.new_version:
                continue
            assets = tuple(p.packages) + ((p.release_zip,) if p.release_zip else ())
            request = GitHubReleaseRequest(
                owner=gh.owner,
                repo=gh.repo,
                tag=gh.tag_template.format(project=p.name, version=p.new_version),
                generate_notes=gh.generate_notes,
                draft=gh.draft,
                prerelease=gh.prerelease,
                reuse_existing=gh.reuse_existing,
                assets=assets,
            )
            sent = publisher.publish(request, gh.token)
            if isinstance(sent, Err):
                p.fail(sent.error)
                continue
            result = sent.value
            p.github_release_url = result.release_url
            if not result.succeeded:
                p.fail(
                    ReleaseError(
                        kind=result.error_kind or "release_creation_failed",
                        message=result.error_message or "GitHub release failed",
                    )
                )

    def _aggregate(
        self, spec: ReleaseSpec, projects: list[_Project], published: list[str]
    ) -> RepositoryReleaseResult:
        versions = {p.new_version for p in projects if p.new_version}
        failed = [p for p in projects if p.status == ProjectStatus.FAILED]
        return RepositoryReleaseResult(
            projects=tuple(p.freeze() for p in projects),
            resolved_version=versions.pop() if len(versions) == 1 else None,
            published_packages=tuple(dict.fromkeys(published)),
            success=not failed,
            what_if=spec.what_if,
            error_message=(
                f"One or more projects failed: {', '.join(p.name for p in failed)}" if failed else None
            ),
            error_kind=failed[0].error_kind if failed else None,
        )


def run_release(
    service: RepositoryReleaseService,
    spec: ReleaseSpec,
    *,
    confirm_run: RunGate,
) -> RepositoryReleaseResult:
    """Plan, ask once, then execute.

    A plan-only request, a plan with nothing to do, or a declined
    confirmation all return the plan, and nothing on disk is modified.
    """
    plan = service.execute(replace(spec, what_if=True))
    if spec.what_if or not plan.projects:
        return plan
    if not confirm_run(plan):
        return plan
    return service.execute(replace(spec, what_if=False))
