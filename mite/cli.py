"""Command-line interface for mite.

This module defines the CLI commands using Click framework.

Commands:
- build: Generate the site program, then compile and run it; optionally serve
  the result and rebuild on changes.
- watch: Rebuild whenever a source changes (the process started by
  ``build --watch``).
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__

_runtime_option = click.option(
    "--runtime",
    "runtime_path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=False,
    help="Directory the generated program imports mite.runtime from",
)


@click.group()
@click.version_option(version=__version__, prog_name="mite")
def cli():
    """mite static site compiler."""


@cli.command()
@click.option("--generate-only", is_flag=True, help="Write the site program without running it")
@click.option("--keep-source", is_flag=True, help="Keep the site program after a successful build")
@click.option("--if-changed", is_flag=True, help="Skip the build when outputs are up to date")
@click.option("--serve", is_flag=True, help="Serve the site after building")
@click.option("--watch", is_flag=True, help="Serve, rebuild on changes and live reload")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides mite.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides mite.yaml ws_port)",
)
@_runtime_option
def build(
    generate_only: bool,
    keep_source: bool,
    if_changed: bool,
    serve: bool,
    watch: bool,
    port: int | None,
    ws_port: int | None,
    runtime_path: Path | None,
):
    """Build the site into HTML next to its sources."""
    project_root = Path.cwd()
    from .build import BuildError, BuildOptions, build_site

    options = BuildOptions(
        generate_only=generate_only,
        keep_source=keep_source,
        only_if_changed=if_changed,
        runtime_path=runtime_path,
    )
    try:
        result = build_site(project_root, options)
    except BuildError as exc:
        _report(exc, project_root)
        raise SystemExit(exc.returncode or 1) from None

    if not result.skipped and not generate_only:
        click.echo(f"Built {len(result.pages)} pages into {project_root}")

    if serve or watch:
        from .server import DevServer

        server = DevServer(
            project_root,
            http_port=port,
            ws_port=ws_port,
            watch=watch,
            runtime_path=runtime_path,
        )
        server.start()


@cli.command()
@_runtime_option
def watch(runtime_path: Path | None):
    """Rebuild the site whenever a source file changes."""
    project_root = Path.cwd()
    from .server import SourceWatcher

    SourceWatcher(project_root, runtime_path=runtime_path).run()


def _report(exc, project_root: Path) -> None:
    """Display a build failure on stderr."""
    try:
        rel_path = exc.source_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def main():
    """Entry point for the CLI application."""
    cli()
