"""Site building functionality for mite.

This module drives the two-stage build: it discovers and renders the site,
generates the site program, then compiles and runs that program, which writes
the HTML.

Key functions:
- build_site: Main function to build the entire site.
- load_config: Loads site configuration from mite.yaml.
- is_up_to_date: Compares input and output modification times.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
import yaml

from .codegen import ProgramGenerator
from .content import RenderedPage, SiteError, SiteGraph, SiteLoader, SiteRenderer
from .filesystem import LocalFileSystem
from .protocols import FileSystem
from .toolchain import PythonToolchain
from .transpiler import encode_source

CONFIG_FILE = "mite.yaml"

DEFAULT_CONFIG = {
    "template_ext": ".mite",
    "generated_source": "mite_site.py",
    "default_layout": "default",
    "title": "mite site",
    "description": "",
    "url": "",
    "port": 4000,
    "ws_port": None,
    "watch_debounce": 0.2,
}


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
        returncode: Exit status to report for this failure.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
        returncode: int = 1,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        self.returncode = returncode
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildOptions:
    """Switches for one build.

    Attributes:
        generate_only: Write the program source but do not compile or run it.
        keep_source: Keep the program source after a successful build.
        only_if_changed: Skip the build when every output is newer than every input.
        runtime_path: Directory to import ``mite.runtime`` from, if not the
            installed package.
    """

    generate_only: bool = False
    keep_source: bool = False
    only_if_changed: bool = False
    runtime_path: Path | None = None


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        pages: All pages in the site.
        source_path: Where the program source was (or would be) written.
        skipped: True when the build was skipped as up to date.
        returncode: Exit status of the generated program.
    """

    pages: list[RenderedPage]
    source_path: Path
    skipped: bool = False
    returncode: int = 0


def load_config(project_root: Path) -> dict[str, Any]:
    """Load site configuration from mite.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.
    """
    config_path = project_root / CONFIG_FILE
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                config.update(loaded)
    return config


def is_up_to_date(
    graph: SiteGraph, fs: FileSystem, extra_inputs: list[Path] | None = None
) -> bool:
    """Check whether every page output is newer than every input.

    Args:
        graph: Discovered site.
        fs: FileSystem used for modification times.
        extra_inputs: Other files the output depends on, such as mite.yaml.

    Returns:
        False if any output is missing or older than the newest input.
    """
    output_times = [fs.mtime(path) for path in graph.output_paths()]
    if not output_times or any(t is None for t in output_times):
        return False
    inputs = graph.input_paths() + list(extra_inputs or [])
    input_times = [t for t in (fs.mtime(path) for path in inputs) if t is not None]
    if not input_times:
        return False
    return max(input_times) <= min(output_times)


def build_site(
    project_root: Path,
    options: BuildOptions | None = None,
    config: dict[str, Any] | None = None,
    fs: FileSystem | None = None,
    toolchain: PythonToolchain | None = None,
) -> BuildResult:
    """Build the entire site.

    Args:
        project_root: Root directory of the project.
        options: Build switches; defaults build, run and clean up.
        config: Configuration; loaded from mite.yaml when omitted.
        fs: FileSystem to use; the local disk when omitted.
        toolchain: Toolchain compiling and running the program.

    Returns:
        BuildResult describing the pages and the generated program.

    Raises:
        BuildError: On missing inputs, unreadable or unwritable files, and
            when the generated program fails.
    """
    options = options or BuildOptions()
    config = config or load_config(project_root)
    fs = fs or LocalFileSystem()

    loader = SiteLoader(project_root, fs, template_ext=str(config["template_ext"]))
    try:
        graph = loader.load(
            title=str(config.get("title") or ""),
            description=str(config.get("description") or ""),
            url=str(config.get("url") or ""),
        )
    except SiteError as exc:
        raise BuildError(exc.source_path, exc.message, exc) from exc

    source_path = project_root / str(config["generated_source"])
    if options.only_if_changed and is_up_to_date(graph, fs, [project_root / CONFIG_FILE]):
        click.echo("[skipped] up to date")
        return BuildResult(pages=graph.pages, source_path=source_path, skipped=True)

    _render(graph, SiteRenderer(project_root, fs))
    source = ProgramGenerator(default_layout=str(config["default_layout"])).generate(graph)
    try:
        fs.write_bytes(source_path, encode_source(source))
    except OSError as exc:
        raise BuildError(
            source_path, f"could not write generated program: {exc.strerror or exc}", exc
        ) from exc
    click.echo(f"[generated] {source_path.relative_to(project_root)}")

    result = BuildResult(pages=graph.pages, source_path=source_path)
    if options.generate_only:
        return result

    toolchain = toolchain or PythonToolchain(runtime_path=options.runtime_path)
    result.returncode = toolchain.build_and_run(source_path, cwd=project_root)
    if result.returncode != 0:
        click.echo(click.style("[failed]", fg="red"), err=True)
        raise BuildError(
            source_path,
            f"generated program exited with status {result.returncode}; "
            "its source was kept for inspection",
            returncode=result.returncode,
        )
    click.echo("[done]")
    if not options.keep_source:
        fs.remove(source_path)
    return result


def _render(graph: SiteGraph, renderer: SiteRenderer) -> None:
    """Fill in every template's and page's instructions, templates first.

    Args:
        graph: Discovered site.
        renderer: Renderer reading the sources.
    """
    try:
        for template in graph.templates:
            click.echo(f"[templating] {template.path}")
            renderer.render_template(template)
        for page in graph.pages:
            click.echo(f"[templating] {page.source_path}")
            renderer.render_page(page)
            if not page.has_front_matter:
                click.echo(
                    click.style(f"[warning] {page.source_path} has no front matter", fg="yellow"),
                    err=True,
                )
    except SiteError as exc:
        raise BuildError(exc.source_path, exc.message, exc) from exc
