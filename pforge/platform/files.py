"""Filesystem helpers for project-file rewrites."""

from __future__ import annotations

import codecs
import os
import shutil
import tempfile
from pathlib import Path

__all__ = ["atomic_write_text", "read_text_keep_bom"]


def read_text_keep_bom(path: Path) -> tuple[str, bool]:
    """Read UTF-8 text without newline translation.

    Returns the decoded text and whether the file started with a UTF-8 BOM,
    so a rewrite can put the same bytes back.
    """
    raw = path.read_bytes()
    has_bom = raw.startswith(codecs.BOM_UTF8)
    if has_bom:
        raw = raw[len(codecs.BOM_UTF8) :]
    return raw.decode("utf-8"), has_bom


def atomic_write_text(
    path: Path,
    content: str,
    *,
    encoding: str = "utf-8",
    bom: bool = False,
) -> None:
    """Write text to ``path`` via a sibling temp file and ``os.replace``.

    Either the whole new content lands or the old file is untouched. An
    existing file keeps its permission bits.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    payload = content.encode(encoding)
    if bom:
        payload = codecs.BOM_UTF8 + payload

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
