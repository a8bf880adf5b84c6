"""HTML utility functions for mite.

This module provides the HTML escaping shared by the inline engine and the
block renderer.

Functions:
    escape_html: Escape special HTML characters in a string.
"""

from __future__ import annotations

_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    "&": "&amp;",
    "'": "&#39;",
    '"': "&quot;",
}

_ESCAPE_TABLE = str.maketrans(_ESCAPES)


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts the following characters to their HTML entity equivalents:
    - < becomes &lt;
    - > becomes &gt;
    - & becomes &amp;
    - ' becomes &#39;
    - " becomes &quot;

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML.

    Examples:
        >>> escape_html('<script>alert("XSS")</script>')
        '&lt;script&gt;alert(&quot;XSS&quot;)&lt;/script&gt;'

        >>> escape_html("Tom & Jerry's")
        'Tom &amp; Jerry&#39;s'
    """
    return text.translate(_ESCAPE_TABLE)
