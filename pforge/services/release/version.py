from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

VersionBump = Literal["major", "minor", "build", "revision"]

_NUMERIC_RE = re.compile(r"^\d+(\.\d+){1,3}$")


@dataclass(frozen=True, slots=True)
class NumericVersion:
    """A dotted numeric version with 2 to 4 components.

    Ordering follows .NET ``System.Version``: a missing component sorts
    below any present one, so ``1.2 < 1.2.0 < 1.2.0.0``.
    """

    parts: tuple[int, ...]

    @property
    def _key(self) -> tuple[int, ...]:
        return self.parts + (-1,) * (4 - len(self.parts))

    def __lt__(self, other: NumericVersion) -> bool:
        return self._key < other._key

    def __le__(self, other: NumericVersion) -> bool:
        return self._key <= other._key

    def __gt__(self, other: NumericVersion) -> bool:
        return self._key > other._key

    def __ge__(self, other: NumericVersion) -> bool:
        return self._key >= other._key

    def part(self, index: int) -> int:
        """Component at ``index``, or -1 when the version is shorter."""
        return self._key[index]

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)


def parse_numeric_version(text: str, *, include_prerelease: bool = False) -> NumericVersion | None:
    """Parse registry or project-file version text.

    Build metadata (``+sha``) is ignored. A prerelease label (``-beta.1``)
    makes the version unusable unless ``include_prerelease`` is set, in which
    case the label is dropped and the numeric core is kept.
    """
    value = text.strip().split("+", 1)[0]
    if "-" in value:
        if not include_prerelease:
            return None
        value = value.split("-", 1)[0]
    if not _NUMERIC_RE.match(value):
        return None
    return NumericVersion(tuple(int(p) for p in value.split(".")))


def bump_version(version: NumericVersion, kind: VersionBump) -> NumericVersion:
    """Increment one component and reset the ones below it.

    Short versions are padded to three components first. ``revision`` always
    yields four components (``1.2.3 -> 1.2.3.1``); other bumps never add a
    fourth one.
    """
    parts = list(version.parts)
    while len(parts) < 3:
        parts.append(0)

    match kind:
        case "major":
            parts = [parts[0] + 1] + [0] * (len(parts) - 1)
        case "minor":
            parts = parts[:1] + [parts[1] + 1] + [0] * (len(parts) - 2)
        case "build":
            parts = parts[:2] + [parts[2] + 1] + [0] * (len(parts) - 3)
        case "revision":
            if len(parts) < 4:
                parts.append(1)
            else:
                parts[3] += 1
        case _:
            raise AssertionError(f"unexpected bump kind: {kind}")

    return NumericVersion(tuple(parts))
