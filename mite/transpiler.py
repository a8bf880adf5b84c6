"""Template transpiler for mite.

Lowers a template, or the HTML produced by the block renderer, into an
instruction stream. Text outside ``<? ... ?>`` becomes :class:`EmitLiteral`
instructions, text inside becomes :class:`RunCode` instructions whose source
is spliced verbatim into the generated program.

Literal spans are trimmed of spaces, tabs and newlines at both ends; a span
that trims to nothing (including the lone newline usually found before a code
region) produces no instruction. In generated source a literal is written as
a bytes literal made only of ``\\xNN`` escapes, followed by its exact byte
count, so arbitrary bytes survive unchanged.

A literal ``<?`` inside template text cannot be represented; there is no
escape for the delimiters.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import Union

OPEN_DELIMITER = "<?"
CLOSE_DELIMITER = "?>"
LITERAL_WHITESPACE = " \t\n"
SOURCE_ENCODING = "utf-8"
SOURCE_ERRORS = "surrogateescape"


@dataclass(frozen=True)
class EmitLiteral:
    """Append ``data`` to the output buffer."""

    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class RunCode:
    """Run ``source`` at this point of the generated routine."""

    source: str


Instruction = Union[EmitLiteral, RunCode]


def decode_source(data: bytes) -> str:
    """Decode file bytes so that every byte can be re-encoded losslessly."""
    return data.decode(SOURCE_ENCODING, SOURCE_ERRORS)


def encode_source(text: str) -> bytes:
    """Inverse of :func:`decode_source`."""
    return text.encode(SOURCE_ENCODING, SOURCE_ERRORS)


def trim_literal(text: str) -> str:
    """Strip spaces, tabs and newlines from both ends of a literal span."""
    return text.strip(LITERAL_WHITESPACE)


def encode_literal(data: bytes) -> str:
    """Write ``data`` as a Python bytes literal of ``\\xNN`` escapes.

    Examples:
        >>> encode_literal(b"<p>")
        'b"\\\\x3c\\\\x70\\\\x3e"'
    """
    return 'b"' + "".join(f"\\x{byte:02x}" for byte in data) + '"'


def decode_literal(literal: str) -> bytes:
    """Read back a literal produced by :func:`encode_literal`."""
    value = ast.literal_eval(literal)
    if not isinstance(value, bytes):
        raise ValueError(f"not a bytes literal: {literal[:40]!r}")
    return value


def transpile(source: str) -> list[Instruction]:
    """Lower template text into an instruction stream.

    Args:
        source: Template text, or rendered page HTML.

    Returns:
        Instructions in source order.
    """
    instructions: list[Instruction] = []
    pos = 0
    while pos < len(source):
        start = source.find(OPEN_DELIMITER, pos)
        end = -1 if start < 0 else source.find(CLOSE_DELIMITER, start + len(OPEN_DELIMITER))
        if start < 0 or end < 0:
            # No further complete code region: the rest is literal text.
            _append_literal(instructions, source[pos:])
            break
        _append_literal(instructions, source[pos:start])
        code = source[start + len(OPEN_DELIMITER) : end].strip()
        if code:
            instructions.append(RunCode(code))
        pos = end + len(CLOSE_DELIMITER)
    return instructions


def _append_literal(instructions: list[Instruction], span: str) -> None:
    trimmed = trim_literal(span)
    if trimmed:
        instructions.append(EmitLiteral(encode_source(trimmed)))


def emit_statement(instruction: EmitLiteral, emit_name: str = "emit") -> str:
    """Return the Python statement that writes one literal to the output buffer.

    Examples:
        >>> emit_statement(EmitLiteral(b"ab"))
        'emit(out, b"\\\\x61\\\\x62", 2)'
    """
    return f"{emit_name}(out, {encode_literal(instruction.data)}, {instruction.size})"
