"""Version write-back into csproj files, module manifests and build scripts.

``apply_version`` is a pure text transform. ``write_version`` adds the file
I/O around it: confirm gate per file, atomic replace, BOM preserved.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from pathlib import Path

from pforge.core.result import Err, Ok, Result
from pforge.output.console import ConsoleProtocol
from pforge.platform.files import atomic_write_text, read_text_keep_bom
from pforge.services.release.errors import ReleaseError
from pforge.services.release.model import (
    DiscoveredFile,
    SourceKind,
    VersionUpdateResult,
    VersionUpdateStatus,
)
from pforge.services.release.scanner import (
    csproj_tag_re,
    discover,
    filter_by_module,
    find_current_version,
    top_level_matches,
)
from pforge.services.release.version import VersionBump, bump_version, parse_numeric_version

# (path, action description) -> proceed?
ConfirmGate = Callable[[Path, str], bool]

CSPROJ_VERSION_TAGS = (
    "Version",
    "VersionPrefix",
    "PackageVersion",
    "AssemblyVersion",
    "FileVersion",
    "InformationalVersion",
)

_MODULE_VERSION_RE = re.compile(r"ModuleVersion\s*=\s*(['\"])([\d\.]+)\1", re.IGNORECASE)
_PROPERTY_GROUP_RE = re.compile(r"<PropertyGroup[^>]*>", re.IGNORECASE)


def always_confirm(path: Path, action: str) -> bool:
    del path, action
    return True


def has_version_tag(content: str) -> bool:
    return any(csproj_tag_re(tag).search(content) for tag in CSPROJ_VERSION_TAGS)


def insert_version_prefix(content: str, version: str) -> str:
    """Add ``<VersionPrefix>`` to the first ``<PropertyGroup>``.

    The new line follows the file's line breaks and the group's indentation.
    Without any property group a new one goes before ``</Project>``.
    """
    newline = "\r\n" if "\r\n" in content else "\n"
    group = _PROPERTY_GROUP_RE.search(content)
    if group is None:
        block = (
            f"  <PropertyGroup>{newline}"
            f"    <VersionPrefix>{version}</VersionPrefix>{newline}  </PropertyGroup>{newline}"
        )
        close = content.lower().rfind("</project>")
        if close == -1:
            return content + newline + block
        return content[:close] + block + content[close:]
    line_start = content.rfind("\n", 0, group.start()) + 1
    line = content[line_start : group.start()]
    indent = line[: len(line) - len(line.lstrip(" \t"))]
    insert = f"{newline}{indent}  <VersionPrefix>{version}</VersionPrefix>"
    return content[: group.end()] + insert + content[group.end() :]


def _replace_csproj_tag(content: str, tag: str, version: str) -> str:
    def sub(m: re.Match[str]) -> str:
        if m.group(2) == version:
            return m.group(0)
        return f"{m.group(1)}{version}{m.group(3)}"

    return csproj_tag_re(tag).sub(sub, content)


def _replace_module_version(content: str, kind: SourceKind, version: str) -> str:
    if kind == SourceKind.POWERSHELL_MODULE:
        matches = top_level_matches(_MODULE_VERSION_RE, content)
    else:
        matches = list(_MODULE_VERSION_RE.finditer(content))

    pieces: list[str] = []
    last = 0
    for m in matches:
        pieces.append(content[last : m.start()])
        pieces.append(m.group(0) if m.group(2) == version else f"ModuleVersion        = '{version}'")
        last = m.end()
    pieces.append(content[last:])
    return "".join(pieces)


def apply_version(content: str, kind: SourceKind, version: str) -> str:
    """Return ``content`` with its version declarations set to ``version``.

    Only existing declarations are rewritten; nothing is inserted. A
    declaration already at ``version`` is left exactly as written. In a
    module manifest only the manifest's own ``ModuleVersion`` changes, not
    the ones of its required modules.
    """
    if kind == SourceKind.CSPROJ:
        for tag in CSPROJ_VERSION_TAGS:
            content = _replace_csproj_tag(content, tag, version)
        return content
    return _replace_module_version(content, kind, version)


def write_version(
    file: DiscoveredFile,
    version: str,
    *,
    confirm: ConfirmGate = always_confirm,
    console: ConsoleProtocol | None = None,
    insert_missing: bool = False,
) -> VersionUpdateResult:
    """Rewrite one file; every failure becomes an ERROR result, never an exception.

    With ``insert_missing`` a csproj that declares no version gets a
    ``<VersionPrefix>`` so ``dotnet pack`` builds the requested version.
    """

    def result(status: VersionUpdateStatus, error: str | None = None) -> VersionUpdateResult:
        return VersionUpdateResult(
            path=file.path,
            kind=file.kind,
            old_version=file.version,
            new_version=version,
            status=status,
            error=error,
        )

    if not file.path.is_file():
        return result(VersionUpdateStatus.ERROR, "File not found.")

    try:
        content, has_bom = read_text_keep_bom(file.path)
    except (OSError, UnicodeDecodeError) as e:
        return result(VersionUpdateStatus.ERROR, str(e))

    updated = apply_version(content, file.kind, version)
    if insert_missing and file.kind == SourceKind.CSPROJ and not has_version_tag(content):
        updated = insert_version_prefix(updated, version)
    if updated == content:
        if console is not None:
            console.debug(f"no version change needed for {file.path}")
        return result(VersionUpdateStatus.NO_CHANGE)

    action = f"Update version from '{file.version or ''}' to '{version}'"
    if not confirm(file.path, action):
        return result(VersionUpdateStatus.SKIPPED)

    try:
        atomic_write_text(file.path, updated, bom=has_bom)
    except OSError as e:
        return result(VersionUpdateStatus.ERROR, str(e))

    if console is not None:
        console.debug(f"updated version in {file.path} to {version}")
    return result(VersionUpdateStatus.UPDATED)


def get_project_versions(
    root: Path,
    *,
    module_name: str | None = None,
    exclude_directories: Iterable[str] = (),
) -> Result[list[DiscoveredFile], ReleaseError]:
    """Project files under ``root`` that declare a version."""
    if not root.is_dir():
        return Err(
            ReleaseError(kind="invalid_input", message=f"project path not found: {root}")
        )
    files = filter_by_module(discover(root, exclude_directories), module_name)
    return Ok([f for f in files if f.version])


def set_project_versions(
    root: Path,
    *,
    new_version: str | None = None,
    bump: VersionBump | None = None,
    module_name: str | None = None,
    exclude_directories: Iterable[str] = (),
    confirm: ConfirmGate = always_confirm,
    console: ConsoleProtocol | None = None,
) -> Result[list[VersionUpdateResult], ReleaseError]:
    """Set or bump the version of every project file under ``root``.

    The current version comes from the first csproj, then manifest, then
    build script. csproj and manifest files can be narrowed to
    ``module_name``; build scripts are always updated.
    """
    if not root.is_dir():
        return Err(
            ReleaseError(kind="invalid_input", message=f"project path not found: {root}")
        )
    if new_version is None and bump is None:
        return Err(ReleaseError(kind="invalid_input", message="specify a new version or a bump"))

    files = filter_by_module(discover(root, exclude_directories), module_name)
    current = find_current_version(files)
    if current is None:
        return Err(
            ReleaseError(
                kind="version_unresolved",
                message="could not determine current version from any project files",
            )
        )

    if new_version is not None and new_version.strip():
        target = new_version.strip()
        if parse_numeric_version(target) is None:
            return Err(ReleaseError(kind="invalid_version", message=f"invalid version: {target}"))
    else:
        parsed = parse_numeric_version(current)
        if parsed is None or bump is None:
            return Err(
                ReleaseError(kind="invalid_version", message=f"cannot bump version: {current}")
            )
        target = str(bump_version(parsed, bump))

    ordered = sorted(
        files,
        key=lambda f: (
            [SourceKind.CSPROJ, SourceKind.POWERSHELL_MODULE, SourceKind.BUILD_SCRIPT].index(f.kind)
        ),
    )
    return Ok([write_version(f, target, confirm=confirm, console=console) for f in ordered])
