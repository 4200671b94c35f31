"""Per-project expected versions.

The map is validated once, at the boundary, and only the typed
``ProjectVersionMap`` travels further into the release flow.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pforge.core.result import Err, Ok, Result
from pforge.services.release.errors import ReleaseError
from pforge.services.release.pattern import parse_version_spec

MISSING_ENTRY_MESSAGE = "ExpectedVersionMap entries must include both project name and version."


@dataclass(frozen=True, slots=True)
class VersionMapEntry:
    pattern: str
    version: str


@dataclass(frozen=True, slots=True)
class ProjectVersionMap:
    entries: tuple[VersionMapEntry, ...] = ()
    as_include: bool = False
    use_wildcards: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def lookup(self, project_name: str) -> str | None:
        """Expected version for ``project_name``; first matching entry wins."""
        for entry in self.entries:
            if matches_pattern(project_name, entry.pattern, use_wildcards=self.use_wildcards):
                return entry.version
        return None

    def includes(self, project_name: str) -> bool:
        return self.lookup(project_name) is not None

    def unmatched_patterns(self, project_names: Iterable[str]) -> list[str]:
        """Entries that match none of ``project_names``, in declaration order."""
        names = list(project_names)
        return [
            e.pattern
            for e in self.entries
            if not any(matches_pattern(n, e.pattern, use_wildcards=self.use_wildcards) for n in names)
        ]


def _has_wildcard(pattern: str) -> bool:
    return "*" in pattern or "?" in pattern


def matches_pattern(value: str, pattern: str, *, use_wildcards: bool) -> bool:
    """Case-insensitive name match; ``*`` and ``?`` are honoured when enabled."""
    if not use_wildcards or not _has_wildcard(pattern):
        return value.casefold() == pattern.casefold()
    regex = "^" + re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".") + "$"
    return re.match(regex, value, flags=re.IGNORECASE) is not None


def parse_version_map(
    pairs: Sequence[tuple[str, str]],
    *,
    as_include: bool = False,
    use_wildcards: bool = False,
) -> Result[ProjectVersionMap, ReleaseError]:
    """Validate raw ``(project, version)`` pairs.

    Runs before any file or network access. Empty names or versions,
    duplicate names and malformed versions are all rejected.
    """
    entries: list[VersionMapEntry] = []
    seen: set[str] = set()

    for raw_key, raw_value in pairs:
        key = raw_key.strip()
        value = raw_value.strip()
        if not key or not value:
            return Err(
                ReleaseError(
                    kind="invalid_version_map_entry",
                    message=MISSING_ENTRY_MESSAGE,
                    hint=f"got {raw_key!r}={raw_value!r}",
                )
            )

        folded = key.casefold()
        if folded in seen:
            return Err(
                ReleaseError(
                    kind="invalid_version_map_entry",
                    message=f"duplicate expected version entry: {key}",
                )
            )
        seen.add(folded)

        spec = parse_version_spec(value)
        if isinstance(spec, Err):
            return Err(
                ReleaseError(
                    kind="invalid_version_map_entry",
                    message=f"{key}: {spec.error.message}",
                    hint=spec.error.hint,
                )
            )

        entries.append(VersionMapEntry(pattern=key, version=value))

    if as_include and not entries:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="ExpectedVersionMapAsInclude is set but ExpectedVersionMap is empty.",
            )
        )

    return Ok(
        ProjectVersionMap(entries=tuple(entries), as_include=as_include, use_wildcards=use_wildcards)
    )
