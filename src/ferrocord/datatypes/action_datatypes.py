"""
Outbound action types and delivery results.

Every side effect the bot has on Discord is described by an
:class:`OutboundAction` and delivered by the action sink, which answers with
an :class:`ActionResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


class ActionType(Enum):
    """Enumeration of supported outbound actions."""

    SEND_MESSAGE = "send_message"
    DELETE_MESSAGE = "delete_message"
    DELETE_MESSAGES = "delete_messages"
    ADD_ROLE = "add_role"
    REMOVE_ROLE = "remove_role"
    ADD_REACTION = "add_reaction"
    PIN_MESSAGE = "pin_message"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class OutboundAction:
    """A single request to the chat platform.

    Attributes:
        type: What to do
        channel_id: Channel the action happens in (send/delete/react); also the
            ordering key for the sink
        guild_id: Guild for role changes
        user_id: Member for role changes
        role_id: Role for role changes
        content: Message text for sends
        message_ids: Target messages for deletes, reactions and pins
        emoji: Emoji for reactions
        interaction: Interaction handle; when set, sends answer the interaction
        ephemeral: Only visible to the invoker (interaction replies only)
        reason: Audit log reason
    """
    type: ActionType
    channel_id: Optional[int] = None
    guild_id: Optional[int] = None
    user_id: Optional[int] = None
    role_id: Optional[int] = None
    content: str = ""
    message_ids: Tuple[int, ...] = ()
    emoji: Optional[str] = None
    interaction: Any = field(default=None, compare=False, repr=False)
    ephemeral: bool = False
    reason: Optional[str] = None

    @property
    def destination(self) -> str:
        """Ordering key: actions with the same key run strictly in submission order."""
        if self.type in (ActionType.ADD_ROLE, ActionType.REMOVE_ROLE):
            return f"member:{self.guild_id}:{self.user_id}"
        return f"channel:{self.channel_id}"

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def send_message(
        cls,
        channel_id: int,
        content: str,
        *,
        interaction: Any = None,
        ephemeral: bool = False,
    ) -> "OutboundAction":
        return cls(
            ActionType.SEND_MESSAGE,
            channel_id=channel_id,
            content=content,
            interaction=interaction,
            ephemeral=ephemeral,
        )

    @classmethod
    def delete_messages(cls, channel_id: int, message_ids, *, reason: str | None = None) -> "OutboundAction":
        ids = tuple(message_ids)
        kind = ActionType.DELETE_MESSAGE if len(ids) == 1 else ActionType.DELETE_MESSAGES
        return cls(kind, channel_id=channel_id, message_ids=ids, reason=reason)

    @classmethod
    def add_role(cls, guild_id: int, user_id: int, role_id: int, *, reason: str | None = None) -> "OutboundAction":
        return cls(ActionType.ADD_ROLE, guild_id=guild_id, user_id=user_id, role_id=role_id, reason=reason)

    @classmethod
    def remove_role(cls, guild_id: int, user_id: int, role_id: int, *, reason: str | None = None) -> "OutboundAction":
        return cls(ActionType.REMOVE_ROLE, guild_id=guild_id, user_id=user_id, role_id=role_id, reason=reason)

    @classmethod
    def add_reaction(cls, channel_id: int, message_id: int, emoji: str) -> "OutboundAction":
        return cls(ActionType.ADD_REACTION, channel_id=channel_id, message_ids=(message_id,), emoji=emoji)

    @classmethod
    def pin_message(cls, channel_id: int, message_id: int, *, reason: str | None = None) -> "OutboundAction":
        return cls(ActionType.PIN_MESSAGE, channel_id=channel_id, message_ids=(message_id,), reason=reason)


class ActionStatus(Enum):
    ACK = "ack"
    EXHAUSTED = "exhausted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ActionResult:
    """What the sink reports back for one enqueued action."""
    action: OutboundAction
    status: ActionStatus
    attempts: int = 1
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ActionStatus.ACK


@dataclass(slots=True)
class BulkDeleteReport:
    """Combined outcome of a batched bulk delete.

    Attributes:
        requested: Number of message ids asked for
        deleted: Number of messages in batches that were acknowledged
        failed_ids: Exact ids whose batch failed, in submission order
        batches: Number of platform calls issued
    """
    requested: int = 0
    deleted: int = 0
    failed_ids: List[int] = field(default_factory=list)
    batches: int = 0

    @property
    def complete(self) -> bool:
        return not self.failed_ids
