"""Block renderer for mite's markdown dialect.

The renderer walks a document line by line, tracking whether a paragraph and
a list are open, and produces two buffers:

- ``body``: the page HTML, which may still contain ``<? ... ?>`` code regions.
- ``front_matter``: the leading ``---`` (or triple backtick) block wrapped as a
  single code region, or an empty string when the document has none.

Supported blocks are headings, plain and checkbox lists, blockquotes, fenced
code, raw HTML, horizontal rules, figures, raw code lines and paragraphs.
Malformed markup never raises; unterminated constructs fall back to plain
text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .html_utils import escape_html
from .inline import CODE_CLOSE, CODE_OPEN, render_inline

FRONT_MATTER_DELIMITERS = ("---", "```")
FENCE = "```"

_TAG_RE = re.compile(r"<([A-Za-z][A-Za-z0-9-]*)")
_CHECKBOXES = {
    "- [ ] ": '<input type="checkbox" disabled>',
    "- [x] ": '<input type="checkbox" checked disabled>',
    "- [X] ": '<input type="checkbox" checked disabled>',
}


@dataclass
class RenderedMarkdown:
    """Output of the block renderer.

    Attributes:
        body: Rendered HTML for the document body.
        front_matter: Front matter wrapped in ``<? ... ?>``, or "" if absent.
    """

    body: str
    front_matter: str

    @property
    def has_front_matter(self) -> bool:
        return bool(self.front_matter)


class BlockRenderer:
    """Line-oriented state machine turning one document into HTML.

    Attributes:
        lines: Document lines without terminators.
        index: Index of the next unread line.
        in_paragraph: Whether a ``<p>`` is open.
        in_list: Whether a ``<ul>`` is open.
    """

    def __init__(self, text: str):
        self.lines = [line.rstrip("\r") for line in text.split("\n")]
        self.index = 0
        self.in_paragraph = False
        self.in_list = False
        self._body: list[str] = []
        self._front_matter: list[str] = []

    def render(self) -> RenderedMarkdown:
        self._read_front_matter()
        while self.index < len(self.lines):
            raw = self.lines[self.index]
            self.index += 1
            self._render_line(raw)
        self._close_blocks()
        return RenderedMarkdown(
            body="".join(self._body), front_matter="".join(self._front_matter)
        )

    def _read_front_matter(self) -> None:
        first = self.lines[0]
        for delimiter in FRONT_MATTER_DELIMITERS:
            if not first.startswith(delimiter):
                continue
            for end in range(1, len(self.lines)):
                if self.lines[end].startswith(delimiter):
                    code = "\n".join(self.lines[1:end])
                    self._front_matter.append(f"{CODE_OPEN}\n{code}\n{CODE_CLOSE}\n")
                    self.index = end + 1
                    return
            # Unterminated: the first line is rendered like any other.
            return

    def _render_line(self, raw: str) -> None:
        line = raw.lstrip(" \t")
        if not line:
            if self.in_paragraph and len(raw) >= 2 and not raw.strip(" "):
                self._body.append("<br>\n")
                return
            self._close_blocks()
            return

        if line.startswith(CODE_OPEN) and CODE_CLOSE in line[len(CODE_OPEN) :]:
            self._body.append(f"{line}\n")
        elif line.startswith("---"):
            self._close_blocks()
            self._body.append("<hr>\n")
        elif line.startswith("<"):
            self._close_blocks()
            self._html(line)
        elif line.startswith("#"):
            self._close_blocks()
            self._heading(line)
        elif line.startswith(tuple(_CHECKBOXES)):
            self._close_blocks()
            checkbox = _CHECKBOXES[line[:6]]
            self._body.append(f"<ul><li>{checkbox}{render_inline(line[6:])}</li></ul>\n")
        elif line.startswith(("- ", "* ")):
            self._close_paragraph()
            if not self.in_list:
                self._body.append("<ul>\n")
                self.in_list = True
            self._body.append(f"<li>{render_inline(line[2:])}</li>\n")
        elif line.startswith("> "):
            self._close_blocks()
            self._body.append(f"<blockquote>{render_inline(line[2:])}</blockquote>\n")
        elif line.startswith(FENCE) and self._fence():
            pass
        elif line.startswith("!["):
            self._close_blocks()
            self._body.append(f"{render_inline(line)}\n")
        else:
            self._paragraph(line)

    def _heading(self, line: str) -> None:
        level = len(line) - len(line.lstrip("#"))
        text = line[level:].lstrip(" ")
        self._body.append(f"<h{level}>{render_inline(text)}</h{level}>\n")

    def _html(self, line: str) -> None:
        """Copy an HTML element through verbatim, up to its closing tag."""
        match = _TAG_RE.match(line)
        if match:
            closing = f"</{match.group(1)}>"
            found = line.find(closing, match.end())
            if found >= 0:
                end = found + len(closing)
                self._emit_html(line[:end], line[end:])
                return
            for lookahead in range(self.index, len(self.lines)):
                candidate = self.lines[lookahead]
                found = candidate.find(closing)
                if found < 0:
                    continue
                end = found + len(closing)
                span = [line, *self.lines[self.index : lookahead], candidate[:end]]
                self.index = lookahead + 1
                self._emit_html("\n".join(span), candidate[end:])
                return
        self._body.append(f"{line}\n")

    def _emit_html(self, element: str, tail: str) -> None:
        self._body.append(element)
        if tail.strip():
            self._body.append(render_inline(tail))
        self._body.append("\n")

    def _fence(self) -> bool:
        """Render a fenced code block; False when the fence is never closed."""
        for end in range(self.index, len(self.lines)):
            if self.lines[end].lstrip(" \t").startswith(FENCE):
                self._close_blocks()
                code = "\n".join(self.lines[self.index : end])
                self._body.append(f"<pre><code>{escape_html(code)}</code></pre>\n")
                self.index = end + 1
                return True
        return False

    def _paragraph(self, line: str) -> None:
        self._close_list()
        if not self.in_paragraph:
            self._body.append("<p>\n")
            self.in_paragraph = True
        self._body.append(f"{render_inline(line)}\n")

    def _close_paragraph(self) -> None:
        if self.in_paragraph:
            self._body.append("</p>\n")
            self.in_paragraph = False

    def _close_list(self) -> None:
        if self.in_list:
            self._body.append("</ul>\n")
            self.in_list = False

    def _close_blocks(self) -> None:
        self._close_paragraph()
        self._close_list()


def render_markdown(text: str) -> RenderedMarkdown:
    """Render a markdown document to body HTML and front matter.

    Args:
        text: The complete document.

    Returns:
        RenderedMarkdown with the body HTML and wrapped front matter.

    Examples:
        >>> render_markdown("---\\nA\\n---\\nB\\n").front_matter
        '<?\\nA\\n?>\\n'
    """
    return BlockRenderer(text).render()
