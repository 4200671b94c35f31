"""Platform and infrastructure adapters (processes, files, HTTP)."""

from .detection import Platform, detect_platform, is_windows
from .files import atomic_write_text, read_text_keep_bom
from .process import ProcessError, run, which

__all__ = [
    "Platform",
    "ProcessError",
    "atomic_write_text",
    "detect_platform",
    "is_windows",
    "read_text_keep_bom",
    "run",
    "which",
]
