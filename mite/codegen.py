"""Code generation for mite.

Turns a rendered SiteGraph into the source of one Python program. The program
skeleton lives in the Jinja2 template ``templates/program.py.jinja``; this
module prepares the routine bodies that go into it.

Embedded code is spliced in verbatim. Because Python uses indentation for
blocks, a code region whose last top-level statement ends with ``:`` opens
a block: every following instruction is indented one more level until a
``<? end ?>`` region closes it. ``else:``, ``elif ...:``, ``except ...:`` and
``finally:`` close the current block and open the next one.

Key classes:
- CodeWriter: indentation-aware writer for one instruction stream.
- ProgramGenerator: renders the whole program.
"""

from __future__ import annotations

import io
import re
import textwrap
import tokenize
from dataclasses import dataclass

from jinja2 import Environment, PackageLoader, StrictUndefined

from . import __version__
from .content import RenderedPage, RenderedTemplate, SiteGraph
from .transpiler import EmitLiteral, Instruction, emit_statement
from .utils import unique_identifier

INDENT = "    "
BLOCK_END = "end"
DEFAULT_LAYOUT = "default"

_CONTINUATION_RE = re.compile(r"^(else|elif|except|finally)\b")
_LAYOUT_TOKENS = frozenset(
    {
        tokenize.COMMENT,
        tokenize.NL,
        tokenize.NEWLINE,
        tokenize.INDENT,
        tokenize.DEDENT,
        tokenize.ENDMARKER,
    }
)


def _opens_block(lines: list[str]) -> bool:
    """Return True when the last statement of ``lines`` is a top-level block header.

    The lines are tokenized, so colons inside strings and comments do not
    count. Code that does not tokenize opens nothing.
    """
    statement_start = header_start = None
    last = None
    readline = io.StringIO("\n".join(lines) + "\n").readline
    try:
        for token in tokenize.generate_tokens(readline):
            if token.type in _LAYOUT_TOKENS:
                if token.type == tokenize.NEWLINE:
                    statement_start = None
                continue
            if statement_start is None:
                statement_start = token.start
            last, header_start = token, statement_start
    except (tokenize.TokenError, SyntaxError):
        return False
    if last is None or last.type != tokenize.OP or last.string != ":":
        return False
    return header_start[1] == 0


def _indent_width(line: str) -> int:
    return len(line) - len(line.lstrip())


def _normalize_code(source: str) -> list[str]:
    """Split a code region into lines with consistent relative indentation.

    The first line arrives stripped (it followed ``<?`` directly), so its
    column is inferred from the remaining lines. When those start deeper than
    they later return to, the shallowest of them share the first line's
    level, as with an ``if`` whose ``else:`` is aligned beneath it. When the
    first line opens a block and the remaining lines start at their shallowest
    indentation, they form its body and are indented one level beneath it.
    """
    first, _, rest = source.partition("\n")
    lines = [first.strip()]
    if not rest:
        return lines
    body = textwrap.dedent(rest).split("\n")
    significant = [line for line in body if line.strip()]
    nested = (
        bool(significant)
        and _indent_width(significant[0]) == 0
        and not _CONTINUATION_RE.match(significant[0])
        and _opens_block(lines)
    )
    for line in body:
        line = line.rstrip()
        lines.append(f"{INDENT}{line}" if nested and line else line)
    return lines


class CodeWriter:
    """Writes an instruction stream as the body of a generated function.

    Attributes:
        base_depth: Indentation level of the function body.
        lines: Source lines written so far.
    """

    def __init__(self, base_depth: int = 1, emit_name: str = "emit"):
        self.base_depth = base_depth
        self.emit_name = emit_name
        self.lines: list[str] = []
        # One entry per open block: whether it holds a statement yet.
        self._blocks: list[bool] = []

    @property
    def depth(self) -> int:
        return self.base_depth + len(self._blocks)

    def line(self, text: str) -> None:
        if not text:
            self.lines.append("")
            return
        self.lines.append(f"{INDENT * self.depth}{text}")
        if self._blocks:
            self._blocks[-1] = True

    def emit_literal(self, instruction: EmitLiteral) -> None:
        self.line(emit_statement(instruction, self.emit_name))

    def run_code(self, source: str) -> None:
        if source.strip() == BLOCK_END:
            self.close_block()
            return
        lines = _normalize_code(source)
        if _CONTINUATION_RE.match(lines[0]) and self._blocks:
            self.close_block()
        for text in lines:
            self.line(text)
        if _opens_block(lines):
            self._blocks.append(False)

    def close_block(self) -> None:
        if not self._blocks:
            return
        if not self._blocks.pop():
            self.lines.append(f"{INDENT * (self.depth + 1)}pass")

    def write(self, instructions: list[Instruction]) -> CodeWriter:
        for instruction in instructions:
            if isinstance(instruction, EmitLiteral):
                self.emit_literal(instruction)
            else:
                self.run_code(instruction.source)
        return self

    def finish(self, empty: str | None = "pass") -> str:
        """Close open blocks and return the source, without a final newline.

        Args:
            empty: Statement written when nothing else was, or None for none.
        """
        while self._blocks:
            self.close_block()
        if not self.lines and empty:
            self.lines.append(f"{INDENT * self.base_depth}{empty}")
        return "\n".join(self.lines)


def render_body(instructions: list[Instruction], base_depth: int = 1) -> str:
    """Render one instruction stream as an indented function body."""
    return CodeWriter(base_depth).write(instructions).finish()


@dataclass
class PageSource:
    """A page prepared for the program template."""

    page: RenderedPage
    routine: str
    front_matter: str
    body: str


@dataclass
class TemplateSource:
    """A template prepared for the program template."""

    template: RenderedTemplate
    routine: str
    body: str


def _pyrepr(value: object) -> str:
    return repr(str(value))


def create_environment() -> Environment:
    """Create the Jinja2 environment used to render generated programs."""
    env = Environment(
        loader=PackageLoader("mite", "templates"),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters["pyrepr"] = _pyrepr
    return env


class ProgramGenerator:
    """Generates the Python program for a rendered site.

    The program defines, in order: ``construct_global``, ``construct_pages``,
    one ``template_*`` routine per template, ``construct_templates``, one
    ``page_*`` routine per page with the ``PAGE_ROUTINES`` table, and
    ``main``.

    Attributes:
        default_layout: Layout used for pages whose record names none.
        env: Jinja2 environment holding the program template.
    """

    template_name = "program.py.jinja"

    def __init__(self, default_layout: str = DEFAULT_LAYOUT, env: Environment | None = None):
        self.default_layout = default_layout
        self.env = env or create_environment()

    def generate(self, graph: SiteGraph) -> str:
        """Return the complete program source for ``graph``.

        Every page and template must already hold its instructions.
        """
        taken: set[str] = set()
        templates = []
        for template in graph.templates:
            routine = unique_identifier(f"template_{template.kind}_{template.name}", taken)
            taken.add(routine)
            templates.append(
                TemplateSource(
                    template=template,
                    routine=routine,
                    body=render_body(template.body_instructions),
                )
            )
        pages = []
        for page in graph.pages:
            routine = unique_identifier(f"page_{page.name}", taken)
            taken.add(routine)
            pages.append(
                PageSource(
                    page=page,
                    routine=routine,
                    front_matter=CodeWriter(1).write(page.front_matter_instructions).finish(None),
                    body=render_body(page.body_instructions),
                )
            )
        return self.env.get_template(self.template_name).render(
            version=__version__,
            site=graph,
            default_layout=self.default_layout,
            templates=templates,
            pages=pages,
        )
