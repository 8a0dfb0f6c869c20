"""
Static command table.

The table is built once at startup by :func:`build_command_table` and never
changes afterwards. Lookup is exact: a prefix invocation ``?tags create x``
first tries the two-token key ``"tags create"``, then the one-token key
``"tags"``.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from ferrocord.datatypes.command_datatypes import CommandSpec, Permission
from ferrocord.handlers import (
    cleanup_handler,
    misc_handlers,
    modmail_handler,
    role_handlers,
    tag_handlers,
    thread_pin_handler,
)
from ferrocord.util.logger import get_logger

logger = get_logger("command_registry")


class CommandRegistry:
    """Exact-match lookup over a fixed set of :class:`CommandSpec` entries."""

    def __init__(self, specs: Iterable[CommandSpec]) -> None:
        self._specs: List[CommandSpec] = []
        self._by_name: Dict[str, CommandSpec] = {}
        for spec in specs:
            self._add(spec)
        logger.debug("[REGISTRY] %d commands registered", len(self._specs))

    def _add(self, spec: CommandSpec) -> None:
        for key in (spec.name, *spec.aliases):
            if key in self._by_name:
                raise ValueError(f"Duplicate command name {key!r}")
            self._by_name[key] = spec
        self._specs.append(spec)

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self):
        return iter(self._specs)

    def get(self, name: str) -> Optional[CommandSpec]:
        return self._by_name.get(name)

    def lookup(self, command: str, arguments: str = "") -> Optional[Tuple[CommandSpec, str]]:
        """Find the spec for ``command`` and return it with the unconsumed arguments.

        Args:
            command: Command token (``"tags"``) or full path (``"tags create"``)
            arguments: Argument text following the command token
        """
        command = " ".join(command.split()).lower()
        if not command:
            return None

        parts = arguments.lstrip().split(None, 1)
        if parts and " " not in command:
            spec = self._by_name.get(f"{command} {parts[0].lower()}")
            if spec is not None:
                return spec, parts[1] if len(parts) > 1 else ""

        spec = self._by_name.get(command)
        if spec is None:
            return None
        return spec, arguments

    def command_metadata(self) -> List[Dict[str, Any]]:
        """Name, usage, description and permission of every command, for help and slash sync."""
        return [
            {
                "name": spec.name,
                "usage": spec.usage,
                "description": spec.description,
                "permission": spec.permission.value,
                "aliases": list(spec.aliases),
            }
            for spec in self._specs
        ]


def build_command_table() -> CommandRegistry:
    """Create the bot's command registry."""
    tag_command = dict(requires_persistence=True)
    return CommandRegistry([
        CommandSpec(
            "tag", tag_handlers.show_tag,
            description="Show a tag", usage="<name>", **tag_command,
        ),
        CommandSpec(
            "tags create", tag_handlers.create_tag, aliases=("tags add",),
            description="Create a new tag", usage="<name> <content>", **tag_command,
        ),
        CommandSpec(
            "tags edit", tag_handlers.edit_tag, mutates_tag=True, resolve_target=tag_handlers.tag_target,
            description="Replace the content of a tag", usage="<name> <content>", **tag_command,
        ),
        CommandSpec(
            "tags delete", tag_handlers.delete_tag, aliases=("tags remove",),
            mutates_tag=True, resolve_target=tag_handlers.whole_tag_target,
            description="Delete a tag with its aliases, or a single alias", usage="<name>", **tag_command,
        ),
        CommandSpec(
            "tags alias", tag_handlers.alias_tag,
            description="Add an alias for an existing tag", usage="<existing> <new>", **tag_command,
        ),
        CommandSpec(
            "tags rename", tag_handlers.rename_tag, mutates_tag=True, resolve_target=tag_handlers.tag_target,
            description="Rename a tag, keeping the old name as an alias", usage="<old> <new>", **tag_command,
        ),
        CommandSpec(
            "tags restrict", tag_handlers.restrict_tag, permission=Permission.ELEVATED,
            description="Only the creator and moderators may change this tag", usage="<name>", **tag_command,
        ),
        CommandSpec(
            "tags unrestrict", tag_handlers.unrestrict_tag, permission=Permission.ELEVATED,
            description="Let everyone change this tag again", usage="<name>", **tag_command,
        ),
        CommandSpec(
            "tags info", tag_handlers.tag_info,
            description="Show owner, history, aliases and rank of a tag", usage="<name>", **tag_command,
        ),
        CommandSpec(
            "tags list", tag_handlers.list_tags,
            description="List tags, 30 per page", usage="[@member] [page]", **tag_command,
        ),
        CommandSpec(
            "tags stats", tag_handlers.tag_stats,
            description="Tag statistics for the server or a member", usage="[@member]", **tag_command,
        ),
        CommandSpec(
            "role add", role_handlers.add_role, self_only=True, resolve_target=role_handlers.role_target,
            description="Give yourself the opt-in role", usage="[@member]",
        ),
        CommandSpec(
            "role remove", role_handlers.remove_role, self_only=True, resolve_target=role_handlers.role_target,
            description="Remove the opt-in role from yourself", usage="[@member]",
        ),
        CommandSpec(
            "cleanup", cleanup_handler.cleanup, permission=Permission.RESTRICTED,
            description="Bulk delete recent messages in this channel", usage="[count]",
        ),
        CommandSpec(
            "pin", thread_pin_handler.pin_message, aliases=("pin message to thread",),
            thread_owner_only=True, resolve_target=thread_pin_handler.thread_target,
            description="Pin a message in a thread you created", usage="<message id or link>",
        ),
        CommandSpec(
            "modmail", modmail_handler.modmail,
            description="Send a private message to the moderators", usage="<message>",
        ),
        CommandSpec(
            "help", misc_handlers.show_help,
            description="List commands or show help for one", usage="[command]",
        ),
        CommandSpec(
            "uptime", misc_handlers.uptime,
            description="How long the bot has been running",
        ),
    ])
