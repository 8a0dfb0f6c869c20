"""
Argument access for handlers.

Prefix commands arrive as one string (``fmt Use `cargo fmt`.``), slash
commands as named options. :class:`ArgumentReader` hides the difference:
``take(name)`` returns the named option when present, otherwise the next
positional token; ``rest(name)`` returns the named option or everything that
is left, untouched.

A positional token may be quoted to include spaces: ``"rust fmt" new``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

_QUOTES = ("\"", "'")


def _split_token(text: str) -> Tuple[str, str]:
    """Return ``(token, remainder)`` for the first token of ``text``."""
    text = text.lstrip()
    if not text:
        return "", ""

    if text[0] in _QUOTES:
        end = text.find(text[0], 1)
        if end != -1:
            return text[1:end], text[end + 1:].lstrip()

    parts = text.split(None, 1)
    return parts[0], (parts[1] if len(parts) > 1 else "")


class ArgumentReader:
    def __init__(self, text: str = "", options: Optional[Dict[str, Any]] = None) -> None:
        self._remaining = (text or "").lstrip()
        self._options = dict(options or {})

    @property
    def remaining(self) -> str:
        return self._remaining

    def _option(self, name: str) -> Optional[str]:
        value = self._options.get(name)
        return None if value is None else str(value)

    def has_option(self, name: str) -> bool:
        return self._options.get(name) is not None

    def peek(self, name: str) -> str:
        option = self._option(name)
        if option is not None:
            return option
        return _split_token(self._remaining)[0]

    def take(self, name: str) -> str:
        option = self._option(name)
        if option is not None:
            return option
        token, self._remaining = _split_token(self._remaining)
        return token

    def peek_rest(self, name: str) -> str:
        option = self._option(name)
        if option is not None:
            return option
        return self._remaining.strip()

    def rest(self, name: str) -> str:
        """Return the named option or all remaining text (inner formatting preserved)."""
        value = self.peek_rest(name)
        if self._option(name) is None:
            self._remaining = ""
        return value

    def take_int(self, name: str) -> Optional[int]:
        """Take an integer argument; None when missing. Non-numeric input is left unread."""
        option = self._options.get(name)
        if option is not None:
            try:
                return int(option)
            except (TypeError, ValueError):
                return None
        token, remainder = _split_token(self._remaining)
        if token.lstrip("-").isdigit():
            self._remaining = remainder
            return int(token)
        return None
