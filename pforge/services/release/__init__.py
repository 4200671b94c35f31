from pforge.services.release.errors import ReleaseError, ReleaseErrorKind
from pforge.services.release.github import GitHubReleasePublisher
from pforge.services.release.model import (
    GitHubReleaseOptions,
    GitHubReleaseRequest,
    GitHubReleaseResult,
    PackageCredential,
    ProjectReleaseOutcome,
    ProjectStatus,
    PublishOptions,
    ReleaseSpec,
    RepositoryReleaseResult,
    SigningOptions,
)
from pforge.services.release.orchestrator import RepositoryReleaseService, run_release
from pforge.services.release.version_map import ProjectVersionMap, parse_version_map
from pforge.services.release.writer import get_project_versions, set_project_versions

__all__ = [
    "GitHubReleaseOptions",
    "GitHubReleasePublisher",
    "GitHubReleaseRequest",
    "GitHubReleaseResult",
    "PackageCredential",
    "ProjectReleaseOutcome",
    "ProjectStatus",
    "ProjectVersionMap",
    "PublishOptions",
    "ReleaseError",
    "ReleaseErrorKind",
    "ReleaseSpec",
    "RepositoryReleaseResult",
    "RepositoryReleaseService",
    "SigningOptions",
    "get_project_versions",
    "parse_version_map",
    "run_release",
    "set_project_versions",
]
