"""
Error kinds shared across the dispatch pipeline.

Domain failures travel as these enum values (returned, not raised) until the
dispatcher turns them into a user-facing reply.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Every failure a command can end in."""

    NAME_COLLISION = "name_collision"
    NOT_FOUND = "not_found"
    ALIAS_OF_ALIAS = "alias_of_alias"
    FORBIDDEN = "forbidden"
    UNKNOWN_COMMAND = "unknown_command"
    FEATURE_DISABLED = "feature_disabled"
    RATE_LIMIT_EXHAUSTED = "rate_limit_exhausted"
    REJECTED = "rejected"
    INVALID_ARGUMENT = "invalid_argument"
    TIMEOUT = "timeout"
    INTERNAL = "internal"

    def __str__(self) -> str:
        return self.value


class DenyReason(Enum):
    """Why the permission gate refused an invocation.

    All reasons except ``FEATURE_DISABLED`` are subtypes of
    :attr:`ErrorKind.FORBIDDEN`.
    """

    INSUFFICIENT_ROLE = "insufficient_role"
    RESTRICTED = "restricted"
    SELF_ONLY = "self_only"
    NOT_A_THREAD = "not_a_thread"
    THREAD_LOCKED = "thread_locked"
    NOT_THREAD_OWNER = "not_thread_owner"
    FEATURE_DISABLED = "feature_disabled"

    @property
    def error_kind(self) -> ErrorKind:
        if self is DenyReason.FEATURE_DISABLED:
            return ErrorKind.FEATURE_DISABLED
        return ErrorKind.FORBIDDEN

    def __str__(self) -> str:
        return self.value
