"""Telegram MarkdownV2 escaping.

Applied exactly once, at the send boundary, to every outgoing reply.
Never feed already-escaped text back through it.
"""

import re

# Characters reserved by Telegram MarkdownV2
RESERVED_CHARS = "\\_*[]()~`>#+-=|{}.!"

_RESERVED_RE = re.compile("[" + re.escape(RESERVED_CHARS) + "]")


def escape_markdown_v2(text: str) -> str:
    """Prefix every reserved character with a backslash."""
    if not text:
        return ""
    return _RESERVED_RE.sub(lambda m: "\\" + m.group(0), text)


def has_unescaped_reserved(text: str) -> bool:
    """True if ``text`` contains a reserved character not preceded by an escape."""
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            if i + 1 >= len(text):
                return True
            i += 2
            continue
        if ch in RESERVED_CHARS:
            return True
        i += 1
    return False


_ESCAPED_RE = re.compile(r"\\([" + re.escape(RESERVED_CHARS) + "])")


def unescape_markdown_v2(text: str) -> str:
    """Inverse of escape_markdown_v2, used for the plain-text fallback."""
    if not text:
        return ""
    return _ESCAPED_RE.sub(r"\1", text)
