from pathlib import Path

import pytest

from mite import runtime

LAYOUT = "<html><body><? CONTENT() ?></body></html>"
PAGE = "---\n---\n# Hi\n\nWorld.\n"


def write_files(root: Path, files: dict) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(text, bytes):
            path.write_bytes(text)
        else:
            path.write_text(text, encoding="utf-8")
    return root


class InProcessToolchain:
    """Runs the generated program in this interpreter instead of a subprocess."""

    def __init__(self):
        self.calls = []

    def build_and_run(self, source: Path, cwd: Path) -> int:
        self.calls.append((source, cwd))
        code = compile(source.read_bytes(), str(source), "exec")
        namespace = {"__name__": "mite_site"}
        exec(code, namespace)
        return runtime.run(namespace["main"])


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A minimal project with a home page, a layout and one content page."""
    write_files(
        tmp_path,
        {
            "index.md": PAGE,
            "index.mite": LAYOUT,
            "layout/default.mite": LAYOUT,
            "pages/hello.md": PAGE,
        },
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def toolchain():
    return InProcessToolchain()


@pytest.fixture
def write():
    """Write a mapping of relative paths to text or bytes under a root."""
    return write_files
