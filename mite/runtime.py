"""Runtime support for programs generated by mite.

Every generated site program imports this module and depends only on its public
interface:

- OutputBuffer and emit: the byte buffer pages are rendered into.
- KeyValueStore: ordered, duplicate-permitting metadata for pages and the site.
- Page and Site: the page records and the global context object.
- TemplateRegistry: name lookup for layouts and includes.
- macros: the CONTENT/INCLUDE/INT/STR/RAW helpers visible to template code.
- run: the entry point wrapper that turns runtime failures into exit codes.

The global context is created once by the generated ``main()`` and passed
explicitly to every page and template routine.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Protocol, runtime_checkable

import click

from .html_utils import escape_html


class IncludeNotFoundError(LookupError):
    """Raised when template code includes a name with no registered template."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"no template named {name!r} to include")


class TemplateUsageError(RuntimeError):
    """Raised when a macro is used where it has no meaning."""


class OutputBuffer:
    """Growable byte buffer holding the page currently being rendered."""

    def __init__(self):
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def emit(self, data: bytes, size: int) -> None:
        """Append the first ``size`` bytes of ``data``."""
        self._data += memoryview(data)[:size]

    def write(self, data: bytes) -> None:
        self._data += data

    def write_text(self, text: str) -> None:
        self._data += text.encode("utf-8")

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def clear(self) -> None:
        del self._data[:]

    def write_to(self, path: str | os.PathLike) -> None:
        """Write the buffer contents to ``path``, replacing the file."""
        with open(path, "wb") as f:
            f.write(self._data)


def emit(out: OutputBuffer, data: bytes, size: int) -> None:
    """Literal-emission primitive called by generated code."""
    out.emit(data, size)


class KeyValueStore:
    """Ordered list of string pairs.

    ``set`` never overwrites: duplicate keys are kept and ``get`` returns the
    first match.
    """

    def __init__(self, items: list[tuple[str, str]] | None = None):
        self.items: list[tuple[str, str]] = list(items or [])

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def set(self, key: str, value: str) -> None:
        self.items.append((key, value))

    def get(self, key: str, default: str | None = None) -> str | None:
        for item_key, value in self:
            if item_key == key:
                return value
        return default

    def has(self, key: str) -> bool:
        return any(item_key == key for item_key, _ in self)

    def equals(self, key: str, value: str) -> bool:
        return self.get(key) == value


class _MetadataMixin:
    meta: KeyValueStore

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.meta.get(key, default)

    def set(self, key: str, value: str) -> None:
        self.meta.set(key, value)

    def has(self, key: str) -> bool:
        return self.meta.has(key)

    def equals(self, key: str, value: str) -> bool:
        return self.meta.equals(key, value)


@dataclass
class Page(_MetadataMixin):
    """Page record built by the generated ``construct_pages`` routine.

    Front matter code runs with this record bound to ``page`` and may change
    any field, most often ``layout``, ``title``, ``date`` and ``description``.
    """

    name: str
    title: str
    url: str
    output_path: str
    source_path: str
    layout: str = ""
    date: str = ""
    description: str = ""
    meta: KeyValueStore = field(default_factory=KeyValueStore)


TemplateRoutine = Callable[[OutputBuffer, "Site", Page, Callable[[], None]], None]


@runtime_checkable
class RenderableTemplate(Protocol):
    """Anything the registry can hand back for a layout or include lookup."""

    name: str
    is_include: bool

    def render(
        self, out: OutputBuffer, site: Site, page: Page, content: Callable[[], None]
    ) -> None:
        ...


@dataclass
class RegisteredTemplate:
    """A generated template routine registered under its name."""

    name: str
    routine: TemplateRoutine
    is_include: bool = False

    def render(
        self, out: OutputBuffer, site: Site, page: Page, content: Callable[[], None]
    ) -> None:
        self.routine(out, site, page, content)


class TemplateRegistry:
    """Name-indexed collection of templates.

    Layout lookups return None for unknown names so the caller can fall back to
    rendering the page on its own; include lookups raise instead, since an
    include has no standalone meaning.
    """

    def __init__(self):
        self._templates: dict[str, RenderableTemplate] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def register(
        self, name: str, routine: TemplateRoutine, is_include: bool = False
    ) -> RenderableTemplate:
        template = RegisteredTemplate(name=name, routine=routine, is_include=is_include)
        self._templates[name] = template
        return template

    def find(self, name: str) -> RenderableTemplate | None:
        return self._templates.get(name)

    def find_layout(self, name: str) -> RenderableTemplate | None:
        template = self._templates.get(name)
        if template is None or template.is_include:
            return None
        return template

    def include(self, name: str) -> RenderableTemplate:
        template = self._templates.get(name)
        if template is None:
            raise IncludeNotFoundError(name)
        return template


@dataclass
class Site(_MetadataMixin):
    """Global context shared by every page and template routine.

    ``posts``, ``projects`` and ``socials`` are filled by front matter code,
    e.g. ``site.posts.append(page)``.
    """

    title: str = ""
    description: str = ""
    url: str = ""
    favicon_path: str = ""
    meta: KeyValueStore = field(default_factory=KeyValueStore)
    pages: list[Page] = field(default_factory=list)
    posts: list[Page] = field(default_factory=list)
    projects: list[Page] = field(default_factory=list)
    socials: list[Page] = field(default_factory=list)
    templates: TemplateRegistry = field(default_factory=TemplateRegistry)

    def add_page(self, page: Page) -> Page:
        self.pages.append(page)
        return page

    def find_page(self, name: str) -> Page | None:
        for page in self.pages:
            if page.name == name:
                return page
        return None


class Macros(NamedTuple):
    CONTENT: Callable[[], None]
    INCLUDE: Callable[[str], None]
    INT: Callable[[int], None]
    STR: Callable[[Any], None]
    RAW: Callable[[Any], None]


def _no_content() -> None:
    raise TemplateUsageError("CONTENT() is only valid inside a layout template")


def macros(
    out: OutputBuffer,
    site: Site,
    page: Page,
    content: Callable[[], None] | None = None,
) -> Macros:
    """Build the helpers bound at the top of every generated routine.

    Args:
        out: Buffer the routine renders into.
        site: Global context.
        page: Page being rendered.
        content: Callback rendering the page's own content, for layouts.

    Returns:
        Macros with CONTENT, INCLUDE, INT, STR and RAW.
    """
    inject = content or _no_content

    def include(name: str) -> None:
        site.templates.include(name).render(out, site, page, inject)

    def write_int(value: int) -> None:
        out.write_text("%d" % value)

    def write_str(value: Any) -> None:
        out.write_text(escape_html(str(value)))

    def write_raw(value: Any) -> None:
        if isinstance(value, (bytes, bytearray)):
            out.write(bytes(value))
        else:
            out.write_text(str(value))

    return Macros(inject, include, write_int, write_str, write_raw)


def announce(page: Page) -> None:
    click.echo(f"[rendering] {page.output_path}")


def run(main: Callable[[], None]) -> int:
    """Run a generated ``main`` and map failures to an exit status."""
    try:
        main()
    except (IncludeNotFoundError, TemplateUsageError, OSError) as exc:
        click.echo(click.style(f"[error] {exc}", fg="red"), err=True)
        return 1
    return 0
