"""
Normalized representation of a user-triggered command event.

The event normalizer builds these from py-cord messages, interactions and
reaction payloads; nothing past the normalizer touches gateway objects
except through :attr:`TriggerMeta.interaction`, which the Discord executor
uses to answer slash commands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class TriggerKind(Enum):
    """What kind of gateway event produced the invocation."""

    PREFIX = "prefix"
    SLASH = "slash"
    COMPONENT = "component"
    REACTION = "reaction"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Actor:
    """The member who triggered an invocation.

    Attributes:
        id: Discord user id
        role_ids: Ids of every role the member holds in the origin guild
        is_bot: Whether the author is a bot account
        display_name: Name used in log lines and relayed messages
    """
    id: int
    role_ids: FrozenSet[int] = frozenset()
    is_bot: bool = False
    display_name: str = ""

    def has_role(self, role_id: Optional[int]) -> bool:
        return role_id is not None and role_id in self.role_ids


@dataclass(frozen=True, slots=True)
class TriggerMeta:
    """Raw trigger details kept for replying and auditing.

    Attributes:
        kind: Event type that produced the invocation
        message_id: Triggering message (prefix command or reacted message)
        interaction: Opaque interaction handle for slash/component replies
        attachments: URLs of attachments on the triggering message
        emoji: Emoji for reaction triggers
    """
    kind: TriggerKind
    message_id: Optional[int] = None
    interaction: Any = None
    attachments: Tuple[str, ...] = ()
    emoji: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Invocation:
    """A single normalized command event.

    Attributes:
        actor: Who invoked the command
        guild_id: Origin guild, None for direct messages
        channel_id: Origin channel; replies go here and ordering is per channel
        command: Command token as typed (``"tags"``), or the full path for slash
            commands (``"tags create"``)
        arguments: Raw argument text following the command token
        trigger: Raw trigger metadata
        options: Named slash-command options, empty for prefix commands
        sequence: Intake order, assigned by the intake loop
        received_at: When the gateway event was normalized
    """
    actor: Actor
    guild_id: Optional[int]
    channel_id: int
    command: str
    arguments: str
    trigger: TriggerMeta
    options: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_slash(self) -> bool:
        return self.trigger.kind in (TriggerKind.SLASH, TriggerKind.COMPONENT)
