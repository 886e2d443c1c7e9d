"""Outbound message processing — splitting for platform length limits."""

TELEGRAM_MAX_LENGTH = 4096


def _backs_off_escape(chunk: str) -> bool:
    """True if ``chunk`` ends in the middle of a backslash escape pair."""
    trailing = len(chunk) - len(chunk.rstrip("\\"))
    return trailing % 2 == 1


def split_message(text: str, max_length: int = TELEGRAM_MAX_LENGTH) -> list[str]:
    """Split a long message into chunks respecting platform length limits.

    Tries to split at newlines first, then spaces, then hard-cuts. A hard
    cut never separates an escape backslash from the character it escapes,
    so escaped text can be split safely.

    Args:
        text: Message text to split
        max_length: Maximum length per chunk (default: 4096 for Telegram)

    Returns:
        List of message chunks
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    remaining = text

    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        # Try splitting at a newline
        split_at = remaining.rfind("\n", 0, max_length)
        if split_at <= 0:
            # Try splitting at a space
            split_at = remaining.rfind(" ", 0, max_length)
        if split_at <= 0:
            # Hard cut
            split_at = max_length
            if _backs_off_escape(remaining[:split_at]):
                split_at -= 1

        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip()

    return chunks
