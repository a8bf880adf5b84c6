"""Site model and discovery for mite.

This module finds the pages and templates of a project, renders each of them
into instruction streams, and collects everything into a SiteGraph that the
code generator turns into a program.

Project layout:
- ``index.md`` and ``index.mite`` at the root: the home page and its template
  (both required).
- ``feed.md`` and ``feed.mite`` at the root: an optional feed page written to
  ``feed.xml``.
- ``layout/*.mite``: layouts, selectable by name from a page's front matter.
- ``include/*.mite``: includes, only reachable through ``INCLUDE(name)``.
- any other directory: content. Its direct ``*.md`` children are pages, and
  each subdirectory contributes its first markdown file as a page.

Key classes:
- RenderedPage / RenderedTemplate: one page or template and its instructions.
- SiteGraph: the ordered pages and templates plus global placeholders.
- SiteLoader: discovery over a FileSystem.
- SiteRenderer: fills in instruction streams, failing on unreadable files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from .filesystem import LocalFileSystem
from .markdown import render_markdown
from .protocols import FileSystem
from .transpiler import Instruction, decode_source, transpile
from .utils import is_hidden, is_markdown, is_template, titleize, unique_identifier

LAYOUT_DIR = "layout"
INCLUDE_DIR = "include"
HOME_PAGE = "index"


@dataclass(frozen=True)
class DirectOutput:
    """A root-level page written straight to a fixed output file."""

    stem: str
    name: str
    output: str
    url: str
    required: bool = False


DIRECT_OUTPUTS = (
    DirectOutput(stem=HOME_PAGE, name="home", output="index.html", url="/", required=True),
    DirectOutput(stem="feed", name="feed", output="feed.xml", url="/feed.xml"),
)


class SiteError(Exception):
    """Error while discovering or reading site sources.

    Attributes:
        source_path: Path of the file or directory involved.
        message: Human-readable error message.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class MissingInputError(SiteError):
    """A required top-level page or template does not exist."""


class SourceReadError(SiteError):
    """A page or template could not be read."""


class DuplicateTemplateError(SiteError):
    """Two templates were registered under the same name."""


@dataclass
class RenderedPage:
    """A markdown page and the instructions generated from it.

    Attributes:
        name: Identifier used for the page's generated routine.
        title: Display name set on the page record before front matter runs.
        source_path: Markdown path, relative to the project root.
        output_path: Output file path, relative to the project root.
        url: Public URL of the output.
        default_layout: Layout set on the page record before front matter runs.
        body_instructions: Instructions rendering the page content.
        front_matter_instructions: Instructions run while constructing the page.
        has_front_matter: Whether the document had a front matter block.
    """

    name: str
    title: str
    source_path: PurePosixPath
    output_path: PurePosixPath
    url: str
    default_layout: str = ""
    body_instructions: list[Instruction] = field(default_factory=list)
    front_matter_instructions: list[Instruction] = field(default_factory=list)
    has_front_matter: bool = False


@dataclass
class RenderedTemplate:
    """A template file and the instructions generated from it.

    Attributes:
        name: File stem; the name layouts and includes are looked up by.
        path: Template path, relative to the project root.
        is_include: True for ``include/`` templates, False for layouts.
        body_instructions: Instructions rendering the template.
    """

    name: str
    path: PurePosixPath
    is_include: bool = False
    body_instructions: list[Instruction] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return "include" if self.is_include else "layout"


@dataclass
class SiteGraph:
    """Everything the code generator needs to emit a program.

    Attributes:
        root: Project root directory.
        pages: Pages in discovery order.
        templates: Templates in discovery order.
        title: Placeholder site title for the generated global state.
        description: Placeholder site description.
        url: Placeholder site URL.
    """

    root: Path
    pages: list[RenderedPage] = field(default_factory=list)
    templates: list[RenderedTemplate] = field(default_factory=list)
    title: str = ""
    description: str = ""
    url: str = ""

    def add_page(self, page: RenderedPage) -> RenderedPage:
        self.pages.append(page)
        return page

    def add_template(self, template: RenderedTemplate) -> RenderedTemplate:
        if self.find_template(template.name) is not None:
            raise DuplicateTemplateError(
                self.root / template.path,
                f"a template named {template.name!r} is already registered",
            )
        self.templates.append(template)
        return template

    def find_template(self, name: str) -> RenderedTemplate | None:
        for template in self.templates:
            if template.name == name:
                return template
        return None

    def page_names(self) -> set[str]:
        return {page.name for page in self.pages}

    def input_paths(self) -> list[Path]:
        """Absolute paths of every markdown and template source."""
        sources = [page.source_path for page in self.pages]
        sources += [template.path for template in self.templates]
        return [self.root / path for path in sources]

    def output_paths(self) -> list[Path]:
        """Absolute paths of every page output."""
        return [self.root / page.output_path for page in self.pages]


class SiteLoader:
    """Discovers pages and templates one directory level below the root.

    Attributes:
        root: Project root directory.
        fs: FileSystem used for every access.
        template_ext: Template file extension, including the dot.
    """

    def __init__(
        self,
        root: Path,
        fs: FileSystem | None = None,
        template_ext: str = ".mite",
    ):
        self.root = root
        self.fs = fs or LocalFileSystem()
        self.template_ext = template_ext

    def check_required(self) -> None:
        """Fail fast when the home page or its template is missing.

        Raises:
            MissingInputError: For the first required file that is absent.
        """
        for direct in DIRECT_OUTPUTS:
            if not direct.required:
                continue
            for filename in (f"{direct.stem}.md", f"{direct.stem}{self.template_ext}"):
                path = self.root / filename
                if not self.fs.is_file(path):
                    raise MissingInputError(path, f"missing '{filename}'")

    def load(self, **placeholders: str) -> SiteGraph:
        """Discover the whole site.

        Args:
            **placeholders: Global title, description and url.

        Returns:
            SiteGraph with empty instruction streams.
        """
        self.check_required()
        graph = SiteGraph(root=self.root, **placeholders)
        self._load_direct_outputs(graph)
        for entry in self._list(self.root):
            if not self.fs.is_dir(entry) or is_hidden(entry):
                continue
            if entry.name == LAYOUT_DIR:
                self._load_templates(graph, entry, is_include=False)
            elif entry.name == INCLUDE_DIR:
                self._load_templates(graph, entry, is_include=True)
            else:
                self._load_content_dir(graph, entry)
        return graph

    def _list(self, directory: Path) -> list[Path]:
        try:
            return sorted(self.fs.list_dir(directory))
        except OSError as exc:
            raise SourceReadError(
                directory, f"could not list directory: {exc.strerror or exc}", exc
            ) from exc

    def _relative(self, path: Path) -> PurePosixPath:
        return PurePosixPath(path.relative_to(self.root).as_posix())

    def _load_direct_outputs(self, graph: SiteGraph) -> None:
        for direct in DIRECT_OUTPUTS:
            source = self.root / f"{direct.stem}.md"
            if self.fs.is_file(source):
                graph.add_page(
                    RenderedPage(
                        name=direct.name,
                        title=titleize(direct.name),
                        source_path=self._relative(source),
                        output_path=PurePosixPath(direct.output),
                        url=direct.url,
                        default_layout=direct.stem,
                    )
                )
            template = self.root / f"{direct.stem}{self.template_ext}"
            if self.fs.is_file(template):
                graph.add_template(
                    RenderedTemplate(name=direct.stem, path=self._relative(template))
                )

    def _load_templates(self, graph: SiteGraph, directory: Path, is_include: bool) -> None:
        for path in self._list(directory):
            if self.fs.is_file(path) and is_template(path, self.template_ext):
                graph.add_template(
                    RenderedTemplate(
                        name=path.stem,
                        path=self._relative(path),
                        is_include=is_include,
                    )
                )

    def _load_content_dir(self, graph: SiteGraph, directory: Path) -> None:
        for entry in self._list(directory):
            if is_hidden(entry):
                continue
            if self.fs.is_file(entry) and is_markdown(entry):
                output = "index.html" if entry.stem == HOME_PAGE else f"{entry.stem}.html"
                self._add_page(graph, entry, entry.parent / output, title=entry.stem)
            elif self.fs.is_dir(entry):
                first = next(
                    (p for p in self._list(entry) if self.fs.is_file(p) and is_markdown(p)),
                    None,
                )
                if first is not None:
                    self._add_page(graph, first, entry / "index.html", title=entry.name)

    def _add_page(self, graph: SiteGraph, source: Path, output: Path, title: str) -> None:
        rel_source = self._relative(source)
        rel_output = self._relative(output)
        url = "/" + rel_output.as_posix()
        if rel_output.name == "index.html":
            url = "/" + rel_output.parent.as_posix() + "/"
        graph.add_page(
            RenderedPage(
                name=unique_identifier(rel_source.with_suffix("").as_posix(), graph.page_names()),
                title=titleize(title),
                source_path=rel_source,
                output_path=rel_output,
                url=url,
            )
        )


class SiteRenderer:
    """Renders discovered sources into instruction streams.

    Attributes:
        root: Project root directory.
        fs: FileSystem used to read sources.
    """

    def __init__(self, root: Path, fs: FileSystem | None = None):
        self.root = root
        self.fs = fs or LocalFileSystem()

    def read(self, rel_path: PurePosixPath) -> str:
        """Read a source file as text, preserving undecodable bytes.

        Raises:
            SourceReadError: If the file is missing or unreadable.
        """
        path = self.root / rel_path
        try:
            data = self.fs.read_bytes(path)
        except OSError as exc:
            raise SourceReadError(
                path, f"could not read file: {exc.strerror or exc}", exc
            ) from exc
        return decode_source(data)

    def render_template(self, template: RenderedTemplate) -> RenderedTemplate:
        template.body_instructions = transpile(self.read(template.path))
        return template

    def render_page(self, page: RenderedPage) -> RenderedPage:
        rendered = render_markdown(self.read(page.source_path))
        page.body_instructions = transpile(rendered.body)
        page.front_matter_instructions = transpile(rendered.front_matter)
        page.has_front_matter = rendered.has_front_matter
        return page
