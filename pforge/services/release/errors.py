from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "invalid_input",
    "invalid_version",
    "invalid_version_map_entry",
    "version_source_unavailable",
    "version_unresolved",
    "duplicate_project",
    "pack_failed",
    "sign_failed",
    "tool_unavailable",
    "publish_failed",
    "release_creation_failed",
    "asset_upload_failed",
    "asset_missing",
    "io_error",
    "timeout",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} ({self.hint})"
        return self.message
