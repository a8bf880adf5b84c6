"""Protocol definitions for mite.

The generator consumes its external collaborators through these small
interfaces so that discovery, rendering and the build can be exercised with
in-memory fakes:

- FileSystem: list directory entries, read, write and remove files, modification
  times.
- CommandRunner: run a command and return its exit code.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class FileSystem(Protocol):
    """Protocol for the file access the generator needs."""

    @abstractmethod
    def list_dir(self, path: Path) -> list[Path]:
        """List the entries of a directory.

        Args:
            path: Directory to list.

        Returns:
            Paths of the directory entries, in file-system order.
        """
        ...

    @abstractmethod
    def is_dir(self, path: Path) -> bool:
        ...

    @abstractmethod
    def is_file(self, path: Path) -> bool:
        ...

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes:
        """Read a whole file.

        Raises:
            OSError: If the file cannot be read.
        """
        ...

    @abstractmethod
    def write_bytes(self, path: Path, data: bytes) -> None:
        """Write a whole file, replacing any previous content.

        Raises:
            OSError: If the file cannot be written.
        """
        ...

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Delete a file if it exists."""
        ...

    @abstractmethod
    def mtime(self, path: Path) -> float | None:
        """Return the modification time of ``path``, or None if it is missing."""
        ...


@runtime_checkable
class CommandRunner(Protocol):
    """Protocol for running external commands."""

    @abstractmethod
    def run(
        self,
        command: Sequence[str],
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Run ``command`` to completion.

        Args:
            command: Program and arguments.
            cwd: Working directory for the command.
            env: Full environment for the command, or None to inherit.

        Returns:
            The command's exit code.
        """
        ...
