"""Secret lookup shared by registry credentials, publish keys and GitHub tokens.

Every secret can come from a file, an environment variable or an inline
value. Sources are checked in that order and the first non-empty, trimmed
value wins.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .result import Err, Ok, Result

__all__ = ["SecretError", "SecretRef", "resolve_secret"]


@dataclass(frozen=True, slots=True)
class SecretError:
    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class SecretRef:
    """Where a secret may come from. All fields are optional."""

    inline: str | None = None
    file_path: Path | None = None
    env_name: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.inline or self.file_path or self.env_name)


def resolve_secret(
    ref: SecretRef,
    *,
    environ: Mapping[str, str] | None = None,
) -> Result[str | None, SecretError]:
    """Resolve ``ref`` to a trimmed value, or None when every source is empty.

    A file path that cannot be read is an error, since the caller asked for
    that file explicitly.
    """
    env = os.environ if environ is None else environ

    if ref.file_path is not None:
        try:
            from_file = ref.file_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            return Err(SecretError(f"cannot read secret file: {e}", path=ref.file_path))
        if from_file:
            return Ok(from_file)

    if ref.env_name:
        from_env = env.get(ref.env_name.strip(), "").strip()
        if from_env:
            return Ok(from_env)

    if ref.inline is not None:
        inline = ref.inline.strip()
        if inline:
            return Ok(inline)

    return Ok(None)
