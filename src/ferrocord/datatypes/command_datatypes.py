"""
Command, policy and handler result types.

This module defines the values that flow between the dispatcher, the
permission gate and the handlers:

- :class:`Permission` - role requirement attached to each registered command
- :class:`PolicyTarget` / :class:`ThreadInfo` - what an invocation acts on, as seen by the gate
- :class:`Allow` / :class:`Deny` - gate decisions
- :class:`Reply`, :class:`ReplyWithActions`, :class:`HandlerError` - handler results
- :class:`InvocationState` / :class:`DispatchOutcome` - dispatcher bookkeeping
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from ferrocord.datatypes.action_datatypes import ActionResult, OutboundAction
from ferrocord.datatypes.error_datatypes import DenyReason, ErrorKind
from ferrocord.datatypes.tag_datatypes import Tag


class Permission(Enum):
    """Role requirement of a command."""

    EVERYONE = "everyone"
    RESTRICTED = "restricted"
    ELEVATED = "elevated"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ThreadInfo:
    """Ownership and lock state of a thread channel."""
    channel_id: int
    owner_id: Optional[int]
    locked: bool = False


@dataclass(frozen=True, slots=True)
class PolicyTarget:
    """The object an invocation acts on.

    Attributes:
        tag: Resolved tag for tag mutations, None if the name did not resolve
        member_id: Member a role command targets
        role_id: Role a role command would grant or revoke
        thread: The thread the invocation came from, None outside threads
    """
    tag: Optional[Tag] = None
    member_id: Optional[int] = None
    role_id: Optional[int] = None
    thread: Optional[ThreadInfo] = None


@dataclass(frozen=True, slots=True)
class Allow:
    allowed = True


@dataclass(frozen=True, slots=True)
class Deny:
    reason: DenyReason
    allowed = False


PolicyDecision = Union[Allow, Deny]


# ==========================================
# Handler results
# ==========================================

DeliveryHook = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class Reply:
    """Answer the invoker with ``text``.

    ``on_delivered`` runs only once the reply was acknowledged by the sink.
    """
    text: str
    ephemeral: bool = False
    on_delivered: Optional[DeliveryHook] = None


@dataclass(slots=True)
class ReplyWithActions:
    """Run ``actions`` through the sink, then answer with ``text`` if they all succeeded."""
    text: str
    actions: List[OutboundAction] = field(default_factory=list)
    ephemeral: bool = False


@dataclass(slots=True)
class HandlerError:
    """A domain failure the dispatcher turns into a user-facing reply."""
    kind: ErrorKind
    detail: str = ""


HandlerResult = Union[Reply, ReplyWithActions, HandlerError]


# ==========================================
# Dispatcher bookkeeping
# ==========================================

class InvocationState(Enum):
    RECEIVED = "received"
    NORMALIZED = "normalized"
    POLICY_CHECKED = "policy_checked"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class DispatchOutcome:
    """Final state of one invocation and everything sent on its behalf."""
    state: InvocationState
    command: str = ""
    error: Optional[ErrorKind] = None
    deny_reason: Optional[DenyReason] = None
    reply_text: str = ""
    results: List[ActionResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is InvocationState.COMPLETED


# ==========================================
# Command registry entries
# ==========================================

CommandHandler = Callable[..., Awaitable[HandlerResult]]
TargetResolver = Callable[..., Awaitable[PolicyTarget]]


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One row of the static command table.

    Attributes:
        name: Lookup key, either one token (``"tag"``) or a group path
            (``"tags create"``)
        handler: Coroutine taking a ``CommandContext`` and returning a ``HandlerResult``
        permission: Role requirement checked by the gate
        description: One line shown by ``help`` and used for slash-command sync
        usage: Argument synopsis shown by ``help``
        mutates_tag: Subject to the restricted-tag check
        self_only: Role self-assignment; only the opt-in role, only to oneself
        thread_owner_only: Only the owner of the current, unlocked thread (or a
            moderator) may run it
        requires_persistence: Denied with ``FEATURE_DISABLED`` when the database is off
        resolve_target: Builds the ``PolicyTarget`` the gate inspects
        aliases: Alternative names resolving to the same entry (``"tags add"``)
    """
    name: str
    handler: CommandHandler = field(repr=False)
    permission: Permission = Permission.EVERYONE
    description: str = ""
    usage: str = ""
    mutates_tag: bool = False
    self_only: bool = False
    thread_owner_only: bool = False
    requires_persistence: bool = False
    resolve_target: Optional[TargetResolver] = field(default=None, repr=False)
    aliases: Tuple[str, ...] = ()
