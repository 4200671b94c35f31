"""Expected-version specs: exact versions and ``X`` auto-increment patterns."""

from __future__ import annotations

import re
from dataclasses import dataclass

from pforge.core.result import Err, Ok, Result
from pforge.services.release.errors import ReleaseError
from pforge.services.release.version import NumericVersion

_EXACT_RE = re.compile(r"^\d+\.\d+\.\d+(\.\d+)?$")


@dataclass(frozen=True, slots=True)
class ExactVersion:
    text: str


@dataclass(frozen=True, slots=True)
class XPattern:
    """A version with one placeholder segment, e.g. ``1.2.X``.

    ``fixed`` holds the numeric segments before the placeholder; the
    placeholder is always the last segment.
    """

    text: str
    fixed: tuple[int, ...]

    @property
    def step_index(self) -> int:
        return len(self.fixed)


VersionSpec = ExactVersion | XPattern


def parse_version_spec(text: str) -> Result[VersionSpec, ReleaseError]:
    value = text.strip()
    if not value:
        return Err(ReleaseError(kind="invalid_version", message="expected version is empty"))

    if _EXACT_RE.match(value):
        return Ok(ExactVersion(value))

    segments = value.split(".")
    placeholders = [i for i, s in enumerate(segments) if s.upper() == "X"]
    if not placeholders:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"invalid expected version: {value}",
                hint="use an exact version (1.2.3) or an X pattern (1.2.X)",
            )
        )
    if len(placeholders) > 1 or placeholders[0] != len(segments) - 1:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"invalid expected version: {value}",
                hint="exactly one X is allowed and it must be the last segment",
            )
        )
    if len(segments) < 2 or len(segments) > 4:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"invalid expected version: {value}",
                hint="an X pattern needs between 2 and 4 segments, major first",
            )
        )

    fixed: list[int] = []
    for segment in segments[:-1]:
        if not segment.isdigit():
            return Err(
                ReleaseError(
                    kind="invalid_version",
                    message=f"expected version segment '{segment}' is not a number",
                    hint=value,
                )
            )
        fixed.append(int(segment))

    return Ok(XPattern(text=value, fixed=tuple(fixed)))


def step_version(
    pattern: XPattern, current: NumericVersion | None
) -> Result[NumericVersion, ReleaseError]:
    """Compute the next free version for ``pattern``.

    The placeholder starts at the current value in that position and moves up
    until the candidate is strictly above ``current``. A candidate that is
    already above ``current`` restarts at 0, so a new minor line begins at
    ``.0``. With nothing published the placeholder becomes 0.
    """
    baseline = current if current is not None else NumericVersion((0, 0, 0, 0))
    index = pattern.step_index

    prefix = tuple(baseline.part(i) for i in range(index))
    if pattern.fixed < prefix:
        return Err(
            ReleaseError(
                kind="version_unresolved",
                message=f"{pattern.text} cannot produce a version above published {current}",
                hint="raise the fixed segments of the expected version",
            )
        )

    step = current.part(index) if current is not None else 1
    step = max(step, 0)

    candidate = NumericVersion(pattern.fixed + (step,))
    if candidate > baseline:
        step = 0
        candidate = NumericVersion(pattern.fixed + (step,))

    while candidate <= baseline:
        step += 1
        candidate = NumericVersion(pattern.fixed + (step,))

    return Ok(candidate)
