"""Host toolchain for generated programs.

The generated program is plain Python, so "compiling" means byte-compiling it
with ``py_compile`` (which reports syntax errors in front matter and template
code with file and line) and "running" means executing it with the same
interpreter.

Functions:
    find_interpreter: Locate the Python interpreter used for generated programs.

Classes:
    SubprocessRunner: CommandRunner implementation using subprocess.
    PythonToolchain: Compile-and-run of a generated program.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

from .protocols import CommandRunner


def find_interpreter() -> str:
    """Find the Python interpreter that runs generated programs.

    Prefers the interpreter running mite itself, since that is where the
    ``mite`` package (and so ``mite.runtime``) is installed, and falls back to
    ``python3`` on PATH.

    Returns:
        Path to a Python interpreter.
    """
    if sys.executable:
        return sys.executable
    found = shutil.which("python3") or shutil.which("python")
    if found:
        return found
    raise FileNotFoundError("no Python interpreter found to run the generated program")


class SubprocessRunner:
    """Runs commands with :func:`subprocess.run`, inheriting stdout and stderr."""

    def run(
        self,
        command: Sequence[str],
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> int:
        completed = subprocess.run(list(command), cwd=cwd, env=env, check=False)
        return completed.returncode


class PythonToolchain:
    """Compiles and runs a generated program.

    Attributes:
        runner: CommandRunner used for both steps.
        interpreter: Python interpreter executable.
        runtime_path: Optional directory prepended to PYTHONPATH so the program
            imports ``mite.runtime`` from there instead of the installed copy.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        interpreter: str | None = None,
        runtime_path: Path | None = None,
    ):
        self.runner = runner or SubprocessRunner()
        self.interpreter = interpreter or find_interpreter()
        self.runtime_path = runtime_path

    def compile_command(self, source: Path) -> list[str]:
        return [self.interpreter, "-m", "py_compile", str(source)]

    def run_command(self, source: Path) -> list[str]:
        return [self.interpreter, str(source)]

    def environment(self) -> dict[str, str] | None:
        """Environment for the generated program, or None to inherit ours."""
        if self.runtime_path is None:
            return None
        env = dict(os.environ)
        existing = env.get("PYTHONPATH")
        paths = [str(self.runtime_path)] + ([existing] if existing else [])
        env["PYTHONPATH"] = os.pathsep.join(paths)
        return env

    def build_and_run(self, source: Path, cwd: Path) -> int:
        """Compile ``source`` and, if that succeeds, run it in ``cwd``.

        Returns:
            The first nonzero exit code, or 0 when both steps succeed.
        """
        env = self.environment()
        code = self.runner.run(self.compile_command(source), cwd=cwd, env=env)
        if code != 0:
            return code
        return self.runner.run(self.run_command(source), cwd=cwd, env=env)
