from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

from pforge.services.release.errors import ReleaseErrorKind
from pforge.services.release.version_map import ProjectVersionMap

BuildConfiguration = Literal["Release", "Debug"]


class SourceKind(Enum):
    CSPROJ = "Csproj"
    POWERSHELL_MODULE = "PowerShellModule"
    BUILD_SCRIPT = "BuildScript"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class DiscoveredFile:
    path: Path
    kind: SourceKind
    version: str | None  # None when no version declaration was found

    @property
    def name(self) -> str:
        return self.path.stem


class VersionUpdateStatus(Enum):
    UPDATED = "Updated"
    NO_CHANGE = "NoChange"
    SKIPPED = "Skipped"
    ERROR = "Error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class VersionUpdateResult:
    path: Path
    kind: SourceKind
    old_version: str | None
    new_version: str
    status: VersionUpdateStatus
    error: str | None = None


class ProjectStatus(Enum):
    PLANNED = "Planned"
    RELEASED = "Released"
    SKIPPED = "Skipped"
    FAILED = "Failed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ProjectReleaseOutcome:
    name: str
    csproj_path: Path
    packable: bool
    old_version: str | None
    new_version: str | None
    packages: tuple[Path, ...] = ()
    status: ProjectStatus = ProjectStatus.PLANNED
    error: str | None = None
    error_kind: ReleaseErrorKind | None = None
    warnings: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    release_zip: Path | None = None
    github_release_url: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == ProjectStatus.FAILED

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "csproj_path": str(self.csproj_path),
            "packable": self.packable,
            "old_version": self.old_version,
            "new_version": self.new_version,
            "packages": [str(p) for p in self.packages],
            "status": str(self.status),
            "error": self.error,
            "error_kind": self.error_kind,
            "warnings": list(self.warnings),
            "dependencies": list(self.dependencies),
            "release_zip": str(self.release_zip) if self.release_zip else None,
            "github_release_url": self.github_release_url,
        }


@dataclass(frozen=True, slots=True)
class RepositoryReleaseResult:
    """Snapshot of one plan or execute run over a repository."""

    projects: tuple[ProjectReleaseOutcome, ...]
    resolved_version: str | None
    published_packages: tuple[str, ...]
    success: bool
    what_if: bool
    error_message: str | None = None
    error_kind: ReleaseErrorKind | None = None

    @property
    def failed_projects(self) -> tuple[ProjectReleaseOutcome, ...]:
        return tuple(p for p in self.projects if p.failed)

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "what_if": self.what_if,
            "resolved_version": self.resolved_version,
            "published_packages": list(self.published_packages),
            "error_message": self.error_message,
            "error_kind": self.error_kind,
            "projects": [p.to_dict() for p in self.projects],
        }


@dataclass(frozen=True, slots=True)
class PackageCredential:
    """Registry credential; a secret alone is sent as an API key header."""

    username: str | None = None
    secret: str | None = None


@dataclass(frozen=True, slots=True)
class SigningOptions:
    """Package signing input.

    ``thumbprint`` selects a certificate from the OS store (Windows only).
    ``pfx_path`` or ``pfx_base64`` supply the certificate on other systems.
    """

    thumbprint: str | None = None
    pfx_path: Path | None = None
    pfx_base64: str | None = None
    pfx_password: str | None = None
    store_location: Literal["CurrentUser", "LocalMachine"] = "CurrentUser"
    timestamp_server: str = "http://timestamp.digicert.com"


@dataclass(frozen=True, slots=True)
class PublishOptions:
    source: str
    api_key: str
    skip_duplicate: bool = False
    fail_fast: bool = False


@dataclass(frozen=True, slots=True)
class GitHubReleaseOptions:
    """Per-project GitHub release created after a successful publish."""

    owner: str
    repo: str
    token: str
    tag_template: str = "{project}-v{version}"
    draft: bool = False
    prerelease: bool = False
    generate_notes: bool = True
    reuse_existing: bool = True


@dataclass(frozen=True, slots=True)
class ReleaseSpec:
    """Complete input for one repository release run.

    Built once per invocation; ``what_if`` is flipped with
    ``dataclasses.replace`` between the plan and execute passes.
    """

    root: Path
    expected_version: str | None = None
    version_map: ProjectVersionMap = field(default_factory=ProjectVersionMap)
    include_projects: tuple[str, ...] = ()
    exclude_projects: tuple[str, ...] = ()
    exclude_directories: tuple[str, ...] = ()
    sources: tuple[str, ...] = ()
    credential: PackageCredential | None = None
    include_prerelease: bool = False
    configuration: BuildConfiguration = "Release"
    output_path: Path | None = None
    skip_pack: bool = False
    pack_dependencies: bool = False
    signing: SigningOptions | None = None
    publish: PublishOptions | None = None
    github: GitHubReleaseOptions | None = None
    create_release_zip: bool = False
    what_if: bool = False


@dataclass(frozen=True, slots=True)
class GitHubReleaseRequest:
    owner: str
    repo: str
    tag: str
    name: str | None = None
    notes: str | None = None
    commitish: str | None = None
    draft: bool = False
    prerelease: bool = False
    generate_notes: bool = False
    reuse_existing: bool = True
    assets: tuple[Path, ...] = ()


@dataclass(frozen=True, slots=True)
class GitHubReleaseResult:
    """Outcome of a create-or-reuse call.

    ``all_assets_uploaded`` is None when no assets were requested.
    """

    release_created: bool
    all_assets_uploaded: bool | None
    release_url: str | None = None
    upload_url: str | None = None
    reused_existing: bool = False
    uploaded: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    error_message: str | None = None
    error_kind: ReleaseErrorKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.release_created and self.all_assets_uploaded is not False
