"""Utility functions for mite.

Key functions:
    sanitize_identifier: Turn a path or name into a Python identifier fragment.
    unique_identifier: Sanitize and de-duplicate against names already taken.
    titleize: Convert a file or directory name to a display title.
    is_markdown: Check if a path is a Markdown file.
    is_template: Check if a path is a template file.
    is_hidden: Check if a path should be skipped during discovery.
"""

from __future__ import annotations

import re
from collections.abc import Container
from pathlib import Path

_NON_ALNUM_RE = re.compile(r"[^0-9A-Za-z]")

SKIPPED_DIRS = frozenset({"__pycache__", "node_modules"})


def sanitize_identifier(name: str) -> str:
    """Replace every non-alphanumeric character with ``_``.

    Examples:
        >>> sanitize_identifier("blog/hello-world/post")
        'blog_hello_world_post'
    """
    return _NON_ALNUM_RE.sub("_", name)


def unique_identifier(name: str, taken: Container[str]) -> str:
    """Sanitize ``name`` and append a counter if the result is already taken.

    Args:
        name: Raw name, usually a relative path without extension.
        taken: Identifiers already in use.

    Returns:
        An identifier not present in ``taken``.
    """
    base = sanitize_identifier(name) or "page"
    candidate = base
    counter = 2
    while candidate in taken:
        candidate = f"{base}_{counter}"
        counter += 1
    return candidate


def titleize(name: str) -> str:
    """Convert a file or directory name to a human-readable title.

    Replaces hyphens and underscores with spaces and capitalizes each word.

    Args:
        name: Filename with or without extension.

    Returns:
        Human-readable title string.

    Examples:
        >>> titleize("getting-started.md")
        'Getting Started'
    """
    base = Path(name).stem
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file.

    Args:
        path: Path to check.

    Returns:
        True if the file has .md extension (case-insensitive).
    """
    return path.suffix.lower() == ".md"


def is_template(path: Path, extension: str = ".mite") -> bool:
    """Check if a path is a template file with the configured extension."""
    return path.suffix == extension


def is_hidden(path: Path) -> bool:
    """Check if a directory entry is skipped during discovery.

    Dot-prefixed entries and tool directories such as ``__pycache__`` are
    never treated as content.
    """
    return path.name.startswith(".") or path.name in SKIPPED_DIRS
