"""Local file-system access for mite.

Implements the FileSystem protocol on top of the real disk.
"""

from __future__ import annotations

import os
from pathlib import Path


class LocalFileSystem:
    """FileSystem implementation backed by the operating system."""

    def list_dir(self, path: Path) -> list[Path]:
        with os.scandir(path) as entries:
            return [Path(entry.path) for entry in entries]

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def read_bytes(self, path: Path) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def write_bytes(self, path: Path, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)

    def remove(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    def mtime(self, path: Path) -> float | None:
        try:
            return path.stat().st_mtime
        except FileNotFoundError:
            return None
