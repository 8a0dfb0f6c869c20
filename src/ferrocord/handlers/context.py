"""
The bounded context a handler runs with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional, Protocol

from ferrocord.datatypes.invocation_datatypes import Invocation
from ferrocord.handlers.arguments import ArgumentReader

if TYPE_CHECKING:
    from ferrocord.configuration.app_configuration import AppConfig
    from ferrocord.datatypes.command_datatypes import ThreadInfo
    from ferrocord.dispatch.registry import CommandRegistry
    from ferrocord.repositories.tag_repo import TagRepository
    from ferrocord.sink.action_sink import ActionSink


class MessageHistory(Protocol):
    """Read-only channel lookups: cleanup targets and thread ownership."""

    async def recent_message_ids(self, channel_id: int, limit: int, *, before: Optional[int] = None) -> List[int]:
        ...

    async def thread_info(self, channel_id: int) -> Optional["ThreadInfo"]:
        ...


@dataclass
class CommandContext:
    """Everything a handler may touch.

    Attributes:
        invocation: The normalized event
        args: Reader over the arguments left after the command name
        repository: Tag storage, None while persistence is disabled
        sink: Outbound action sink
        config: Application configuration
        history: Channel lookups for cleanup and thread pins
        registry: The command table, for ``help``
        started_at: When the bot came up, for ``uptime``
    """
    invocation: Invocation
    args: ArgumentReader
    repository: Optional["TagRepository"]
    sink: "ActionSink"
    config: "AppConfig"
    history: Optional[MessageHistory] = None
    registry: Optional["CommandRegistry"] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def actor(self):
        return self.invocation.actor
