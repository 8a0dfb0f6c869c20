"""
Text helpers shared by the tag repository and the command handlers.
"""

from __future__ import annotations

import re

# Discord rejects message content longer than this
MESSAGE_CHAR_LIMIT = 2000

_MENTION_PATTERN = re.compile(r"^<@!?(\d+)>$")
_ROLE_MENTION_PATTERN = re.compile(r"^<@&(\d+)>$")


def normalize_name(raw: str | None) -> str:
    """Return the canonical form of a tag or alias name.

    Leading/trailing whitespace is dropped, inner whitespace runs collapse to
    a single space and the result is case-folded, so ``"  Rust FMT "`` and
    ``"rust   fmt"`` both become ``"rust fmt"``. An empty string means the
    input had no usable characters.
    """
    if not raw:
        return ""
    return " ".join(raw.split()).casefold()


def truncate(text: str, limit: int = MESSAGE_CHAR_LIMIT, marker: str = "…") -> str:
    """Cut ``text`` so it fits in one Discord message, ending with ``marker``."""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(marker))] + marker


def parse_user_id(token: str | None) -> int | None:
    """Extract a user id from a mention (``<@123>``, ``<@!123>``) or a bare id."""
    if not token:
        return None
    token = token.strip()
    match = _MENTION_PATTERN.match(token)
    if match:
        return int(match.group(1))
    return int(token) if token.isdigit() else None


def parse_role_id(token: str | None) -> int | None:
    """Extract a role id from a role mention (``<@&123>``) or a bare id."""
    if not token:
        return None
    token = token.strip()
    match = _ROLE_MENTION_PATTERN.match(token)
    if match:
        return int(match.group(1))
    return int(token) if token.isdigit() else None


def chunk(items: list, size: int) -> list[list]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [items[i:i + size] for i in range(0, len(items), size)]
