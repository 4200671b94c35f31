"""Target version resolution for the projects of one release run.

Precedence per project: expected-version map entry, then the repository
wide expected version, then the version already declared in the project
file. X-patterns are stepped against the highest published version. A
repository-wide X-pattern is stepped once, against the highest version
published by any participating project, so every project ends up on the
same number.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from pforge.core.result import Err, Ok, Result
from pforge.output.console import ConsoleProtocol
from pforge.services.release.errors import ReleaseError
from pforge.services.release.model import PackageCredential
from pforge.services.release.nuget import PackageVersionSource
from pforge.services.release.pattern import ExactVersion, XPattern, parse_version_spec, step_version
from pforge.services.release.version import NumericVersion
from pforge.services.release.version_map import ProjectVersionMap

VersionOrigin = Literal["map", "global", "current"]


@dataclass(frozen=True, slots=True)
class ProjectVersionInput:
    name: str
    current_version: str | None


@dataclass(frozen=True, slots=True)
class ResolvedVersion:
    version: str
    origin: VersionOrigin
    latest_published: str | None = None


@dataclass
class VersionResolver:
    registry: PackageVersionSource
    console: ConsoleProtocol
    sources: tuple[str, ...] = ()
    credential: PackageCredential | None = None
    include_prerelease: bool = False
    _latest_cache: dict[str, Result[NumericVersion | None, ReleaseError]] = field(
        default_factory=dict
    )

    def latest_published(self, package_id: str) -> Result[NumericVersion | None, ReleaseError]:
        key = package_id.casefold()
        if key not in self._latest_cache:
            self._latest_cache[key] = self.registry.latest(
                package_id,
                sources=self.sources,
                credential=self.credential,
                include_prerelease=self.include_prerelease,
            )
        return self._latest_cache[key]

    def _step(
        self,
        pattern: XPattern,
        latest: NumericVersion | None,
        *,
        label: str,
        origin: VersionOrigin,
    ) -> Result[ResolvedVersion, ReleaseError]:
        if latest is None:
            self.console.warning(f"{label}: no current package version found; using 0 baseline")
        stepped = step_version(pattern, latest)
        if isinstance(stepped, Err):
            return stepped
        return Ok(
            ResolvedVersion(
                version=str(stepped.value),
                origin=origin,
                latest_published=str(latest) if latest is not None else None,
            )
        )

    def resolve_all(
        self,
        projects: Sequence[ProjectVersionInput],
        *,
        expected_version: str | None,
        version_map: ProjectVersionMap,
    ) -> dict[str, Result[ResolvedVersion, ReleaseError]]:
        """Resolve every project; failures stay attached to their project."""
        out: dict[str, Result[ResolvedVersion, ReleaseError]] = {}
        global_users: list[ProjectVersionInput] = []

        global_spec = None
        if expected_version is not None and expected_version.strip():
            parsed = parse_version_spec(expected_version)
            if isinstance(parsed, Err):
                return {p.name: parsed for p in projects}
            global_spec = parsed.value

        for project in projects:
            mapped = version_map.lookup(project.name)
            if mapped is not None:
                out[project.name] = self.resolve_one(project.name, mapped)
                continue
            if global_spec is None:
                out[project.name] = self._from_current(project)
                continue
            if isinstance(global_spec, ExactVersion):
                out[project.name] = Ok(ResolvedVersion(version=global_spec.text, origin="global"))
                continue
            global_users.append(project)

        if global_users and isinstance(global_spec, XPattern):
            shared = self._resolve_shared(global_spec, global_users)
            for project in global_users:
                out[project.name] = shared

        return {p.name: out[p.name] for p in projects}

    def resolve_one(self, project_name: str, spec_text: str) -> Result[ResolvedVersion, ReleaseError]:
        parsed = parse_version_spec(spec_text)
        if isinstance(parsed, Err):
            return parsed
        spec = parsed.value
        if isinstance(spec, ExactVersion):
            return Ok(ResolvedVersion(version=spec.text, origin="map"))

        latest = self.latest_published(project_name)
        if isinstance(latest, Err):
            return latest
        return self._step(spec, latest.value, label=project_name, origin="map")

    def _resolve_shared(
        self, pattern: XPattern, projects: Sequence[ProjectVersionInput]
    ) -> Result[ResolvedVersion, ReleaseError]:
        highest: NumericVersion | None = None
        for project in projects:
            latest = self.latest_published(project.name)
            if isinstance(latest, Err):
                return Err(
                    ReleaseError(
                        kind=latest.error.kind,
                        message=f"repository version {pattern.text} unresolved: {latest.error.message}",
                        hint=latest.error.hint,
                    )
                )
            if latest.value is not None and (highest is None or latest.value > highest):
                highest = latest.value
        return self._step(pattern, highest, label="repository", origin="global")

    def _from_current(self, project: ProjectVersionInput) -> Result[ResolvedVersion, ReleaseError]:
        if project.current_version:
            return Ok(ResolvedVersion(version=project.current_version, origin="current"))
        return Err(
            ReleaseError(
                kind="version_unresolved",
                message=f"{project.name}: no expected version given and none declared in the project",
                hint="pass --version or add <Version> to the project file",
            )
        )
