"""Inline markup engine for mite.

Renders one logical line of markdown-like text to HTML. The engine walks the
line with a cursor and, at every position, tries the constructs below in
priority order:

- ``***x***``, ``_**x**_`` and ``**_x_**``: strong italic text.
- ``**x**``: strong text.
- ``*x*`` and ``_x_``: italic text.
- ```x```: inline code.
- ``\\(x\\)``: inline math, copied through unescaped for a client-side renderer.
- ``[text](url)``: a link.
- ``![caption](path)``: a figure holding an image or a video.
- ``<? code ?>``: embedded code, copied through verbatim.
- two or more trailing spaces: a ``<br>`` line break.

Anything else is HTML-escaped. An opener without a matching closer on the same
line is written as a literal character and the cursor moves one character on,
so malformed markup never raises.
"""

from __future__ import annotations

from pathlib import PurePosixPath

from .html_utils import escape_html

VIDEO_EXTENSIONS = frozenset({".mp4", ".webm", ".ogg", ".ogv", ".mov", ".m4v"})

CODE_OPEN = "<?"
CODE_CLOSE = "?>"

# (opener, closer, open tag, close tag, word rule applies)
_DELIMITED = (
    ("***", "***", "<strong><i>", "</i></strong>", True),
    ("_**", "**_", "<strong><i>", "</i></strong>", True),
    ("**_", "_**", "<strong><i>", "</i></strong>", True),
    ("**", "**", "<strong>", "</strong>", True),
    ("*", "*", "<i>", "</i>", True),
    ("_", "_", "<i>", "</i>", True),
    ("`", "`", "<code>", "</code>", False),
)


def _is_word(text: str) -> bool:
    return bool(text) and not text[0].isspace() and not text[-1].isspace()


def is_video(path: str) -> bool:
    """Return True when a figure path points at a video file."""
    return PurePosixPath(path.split("?", 1)[0]).suffix.lower() in VIDEO_EXTENSIONS


def render_figure(caption: str, path: str) -> str:
    """Render ``![caption](path)`` as a ``<figure>`` element."""
    src = escape_html(path)
    alt = escape_html(caption)
    if is_video(path):
        media = f'<video src="{src}" controls></video>'
    else:
        media = f'<img src="{src}" alt="{alt}">'
    figcaption = f"<figcaption>{alt}</figcaption>" if caption else ""
    return f"<figure>{media}{figcaption}</figure>"


class InlineParser:
    """Cursor-driven renderer for a single line of inline markup.

    Attributes:
        line: The text being rendered, cut at the first line terminator.
        pos: Index of the next character to consume.
    """

    def __init__(self, line: str):
        self.line = line.split("\n", 1)[0]
        self.pos = 0
        self._out: list[str] = []

    def render(self) -> str:
        """Consume the rest of the line and return the rendered HTML."""
        while self.pos < len(self.line):
            if not self._step():
                self._out.append(escape_html(self.line[self.pos]))
                self.pos += 1
        return "".join(self._out)

    def _step(self) -> bool:
        for opener, closer, open_tag, close_tag, word_rule in _DELIMITED:
            if self.line.startswith(opener, self.pos):
                return self._delimited(opener, closer, open_tag, close_tag, word_rule)
        if self.line.startswith("\\(", self.pos):
            return self._passthrough("\\(", "\\)")
        if self.line.startswith("[", self.pos):
            return self._link()
        if self.line.startswith("![", self.pos):
            return self._figure()
        if self.line.startswith(CODE_OPEN, self.pos):
            return self._passthrough(CODE_OPEN, CODE_CLOSE)
        if self.line.startswith("  ", self.pos) and not self.line[self.pos :].strip(" "):
            self._out.append("<br>")
            self.pos = len(self.line)
            return True
        return False

    def _delimited(
        self, opener: str, closer: str, open_tag: str, close_tag: str, word_rule: bool
    ) -> bool:
        start = self.pos + len(opener)
        end = self.line.find(closer, start)
        if end < 0:
            return False
        inner = self.line[start:end]
        if word_rule and not _is_word(inner):
            return False
        if not inner:
            return False
        self._out.append(f"{open_tag}{escape_html(inner)}{close_tag}")
        self.pos = end + len(closer)
        return True

    def _passthrough(self, opener: str, closer: str) -> bool:
        end = self.line.find(closer, self.pos + len(opener))
        if end < 0:
            return False
        end += len(closer)
        self._out.append(self.line[self.pos : end])
        self.pos = end
        return True

    def _bracketed(self, start: int) -> tuple[str, str, int] | None:
        """Parse ``[text](target)`` beginning at ``start``.

        Returns:
            Tuple of (text, target, index after the closing parenthesis), or
            None when the construct is incomplete.
        """
        close_text = self.line.find("]", start + 1)
        if close_text < 0 or not self.line.startswith("(", close_text + 1):
            return None
        close_target = self.line.find(")", close_text + 2)
        if close_target < 0:
            return None
        text = self.line[start + 1 : close_text]
        target = self.line[close_text + 2 : close_target]
        return text, target, close_target + 1

    def _link(self) -> bool:
        parsed = self._bracketed(self.pos)
        if parsed is None:
            return False
        text, url, end = parsed
        self._out.append(f'<a href="{escape_html(url)}">{escape_html(text)}</a>')
        self.pos = end
        return True

    def _figure(self) -> bool:
        parsed = self._bracketed(self.pos + 1)
        if parsed is None:
            return False
        caption, path, end = parsed
        self._out.append(render_figure(caption, path))
        self.pos = end
        return True


def render_inline(line: str) -> str:
    """Render one line of inline markup to HTML.

    Args:
        line: Source text; anything after the first newline is ignored.

    Returns:
        Rendered HTML without a trailing newline.

    Examples:
        >>> render_inline("**_x_**")
        '<strong><i>x</i></strong>'

        >>> render_inline("**open")
        '**open'
    """
    return InlineParser(line).render()
