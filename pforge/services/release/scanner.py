"""Discovery of project files and the versions they declare."""

from __future__ import annotations

import os
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Sequence
from pathlib import Path, PureWindowsPath

from pforge.platform.files import read_text_keep_bom
from pforge.services.release.model import DiscoveredFile, SourceKind

DEFAULT_EXCLUDE_DIRECTORIES: tuple[str, ...] = ("bin", "obj", ".git", ".vs", "node_modules")

_CSPROJ_VERSION_TAGS = ("Version", "VersionPrefix", "PackageVersion")
_BUILD_SCRIPT_MARKERS = ("invoke-modulebuild", "build-module")
_MODULE_VERSION_RE = re.compile(r"ModuleVersion\s*=\s*['\"]?([\d\.]+)['\"]?", re.IGNORECASE)
_MODULE_VERSION_ASSIGNMENT_RE = re.compile(r"ModuleVersion\s*=\s*['\"][\d\.]+['\"]", re.IGNORECASE)

_EXTENSIONS = {".csproj", ".psd1", ".ps1"}


def exclude_directory_names(extra: Iterable[str] = ()) -> frozenset[str]:
    """Default excluded directory names plus ``extra``, case-folded."""
    names = {n.casefold() for n in DEFAULT_EXCLUDE_DIRECTORIES}
    for name in extra:
        name = name.strip().strip('"')
        if name:
            names.add(name.casefold())
    return frozenset(names)


def csproj_tag_re(tag: str) -> re.Pattern[str]:
    """``<tag>1.2.3</tag>``; groups are open tag, version, close tag."""
    return re.compile(rf"(<{tag}>)([\d\.]+)(</{tag}>)", re.IGNORECASE)


def csproj_version(content: str) -> str | None:
    """First declared of ``<Version>``, ``<VersionPrefix>``, ``<PackageVersion>``."""
    for tag in _CSPROJ_VERSION_TAGS:
        m = csproj_tag_re(tag).search(content)
        if m:
            return m.group(2)
    return None


def _advance_depth(content: str, start: int, end: int, depth: int) -> int:
    """Brace and paren depth at ``end``, starting from ``depth`` at ``start``.

    Quoted strings and ``#`` / ``<# #>`` comments do not count.
    """
    i = start
    while i < end:
        ch = content[i]
        if ch in "'\"":
            close = content.find(ch, i + 1, end)
            i = end if close == -1 else close + 1
            continue
        if content.startswith("<#", i):
            close = content.find("#>", i + 2, end)
            i = end if close == -1 else close + 2
            continue
        if ch == "#":
            newline = content.find("\n", i, end)
            i = end if newline == -1 else newline + 1
            continue
        if ch in "{(":
            depth += 1
        elif ch in "})":
            depth -= 1
        i += 1
    return depth


def top_level_matches(pattern: re.Pattern[str], content: str) -> list[re.Match[str]]:
    """Matches of ``pattern`` that sit directly in a manifest's outer ``@{ }``.

    Keys of nested tables such as ``RequiredModules`` are left out.
    """
    found: list[re.Match[str]] = []
    depth, pos = 0, 0
    for m in pattern.finditer(content):
        depth = _advance_depth(content, pos, m.start(), depth)
        pos = m.start()
        if depth == 1:
            found.append(m)
    return found


def module_version(content: str, *, top_level: bool = False) -> str | None:
    """``ModuleVersion`` value; ``top_level`` restricts it to the manifest's own key."""
    if top_level:
        matches = top_level_matches(_MODULE_VERSION_RE, content)
        return matches[0].group(1) if matches else None
    m = _MODULE_VERSION_RE.search(content)
    return m.group(1) if m else None


def looks_like_build_script(content: str) -> bool:
    lowered = content.lower()
    if any(marker in lowered for marker in _BUILD_SCRIPT_MARKERS):
        return True
    return _MODULE_VERSION_ASSIGNMENT_RE.search(content) is not None


def _read(path: Path) -> str | None:
    try:
        text, _ = read_text_keep_bom(path)
    except (OSError, UnicodeDecodeError):
        return None
    return text


def classify(path: Path) -> DiscoveredFile | None:
    """Build the ``DiscoveredFile`` for ``path``, or None when it is not a project file."""
    suffix = path.suffix.lower()
    if suffix == ".csproj":
        text = _read(path)
        return DiscoveredFile(path, SourceKind.CSPROJ, csproj_version(text) if text else None)
    if suffix == ".psd1":
        text = _read(path)
        return DiscoveredFile(
            path, SourceKind.POWERSHELL_MODULE, module_version(text, top_level=True) if text else None
        )
    if suffix == ".ps1":
        text = _read(path)
        if text is None or not looks_like_build_script(text):
            return None
        return DiscoveredFile(path, SourceKind.BUILD_SCRIPT, module_version(text))
    return None


def sort_key(path: Path) -> str:
    return str(path).casefold()


def discover(
    root: Path,
    exclude_directories: Iterable[str] = (),
    *,
    kinds: frozenset[SourceKind] | None = None,
) -> list[DiscoveredFile]:
    """Walk ``root`` and return every recognised project file.

    Directories whose name matches an excluded name are pruned before
    descent. ``exclude_directories`` extends the defaults. Output is sorted
    by full path, case-insensitively.
    """
    excluded = exclude_directory_names(exclude_directories)
    found: list[DiscoveredFile] = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d.casefold() not in excluded]
        for filename in filenames:
            path = Path(dirpath) / filename
            if path.suffix.lower() not in _EXTENSIONS:
                continue
            item = classify(path)
            if item is None:
                continue
            if kinds is not None and item.kind not in kinds:
                continue
            found.append(item)

    found.sort(key=lambda f: sort_key(f.path))
    return found


def filter_by_module(files: Sequence[DiscoveredFile], module_name: str | None) -> list[DiscoveredFile]:
    """Keep project files named ``module_name``. Build scripts always pass."""
    if not module_name:
        return list(files)
    wanted = module_name.strip().casefold()
    return [
        f for f in files if f.kind == SourceKind.BUILD_SCRIPT or f.name.casefold() == wanted
    ]


def find_current_version(files: Sequence[DiscoveredFile]) -> str | None:
    """First declared version, preferring csproj, then manifests, then build scripts."""
    for kind in (SourceKind.CSPROJ, SourceKind.POWERSHELL_MODULE, SourceKind.BUILD_SCRIPT):
        for f in files:
            if f.kind == kind and f.version:
                return f.version
    return None


def _csproj_root(path: Path) -> ET.Element | None:
    try:
        return ET.fromstring(read_text_keep_bom(path)[0])
    except (OSError, UnicodeDecodeError, ET.ParseError):
        return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def is_packable(path: Path) -> bool:
    """False only when the project says ``<IsPackable>false</IsPackable>``."""
    root = _csproj_root(path)
    if root is None:
        return True
    for element in root.iter():
        if _local_name(element.tag).casefold() == "ispackable":
            return (element.text or "").strip().casefold() != "false"
    return True


def project_references(path: Path) -> list[Path]:
    """Resolved ``<ProjectReference Include=...>`` targets of a csproj."""
    root = _csproj_root(path)
    if root is None:
        return []
    refs: list[Path] = []
    for element in root.iter():
        if _local_name(element.tag) != "ProjectReference":
            continue
        include = (element.get("Include") or "").strip()
        if not include:
            continue
        relative = Path(*PureWindowsPath(include).parts)
        refs.append(Path(os.path.normpath(path.parent / relative)))
    return refs
