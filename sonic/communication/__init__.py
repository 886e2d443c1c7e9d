"""Communication sub-core — everything between a reply string and the chat.

- Errors: exception → short user-facing message
- Escape: Telegram MarkdownV2 escaping, applied once per reply
- Outbound: splitting for platform length limits
- Telegram: the chat channel itself
"""

from .errors import classify_error
from .escape import escape_markdown_v2, has_unescaped_reserved, unescape_markdown_v2
from .outbound import split_message

__all__ = [
    "classify_error",
    "escape_markdown_v2",
    "has_unescaped_reserved",
    "split_message",
    "unescape_markdown_v2",
]
