"""
Event normalizer: py-cord gateway objects -> :class:`Invocation`.

Three sources produce invocations:

* prefix messages (``?tags create fmt ...``)
* interactions: application commands, with subcommand groups flattened into
  one path (``"tags create"``), context menu entries whose target becomes
  the ``message`` or ``member`` option, and components whose ``custom_id``
  names a command (``ferrocord:modmail``)
* raw reaction events whose emoji is mapped to a command in the config

Every function returns ``None`` for events that are not commands.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import discord

from ferrocord.datatypes.invocation_datatypes import Actor, Invocation, TriggerKind, TriggerMeta

COMPONENT_PREFIX = "ferrocord:"

# Discord application command option types
_SUB_COMMAND = 1
_SUB_COMMAND_GROUP = 2

# Application command type of message context menu entries
_MESSAGE_COMMAND = 3


def actor_from_user(user: Any) -> Actor:
    """Build an :class:`Actor` from a ``discord.Member`` or ``discord.User``."""
    roles = getattr(user, "roles", None) or ()
    return Actor(
        id=int(user.id),
        role_ids=frozenset(int(role.id) for role in roles),
        is_bot=bool(getattr(user, "bot", False)),
        display_name=str(getattr(user, "display_name", "") or getattr(user, "name", "") or ""),
    )


def split_prefix(content: str, prefixes: Iterable[str]) -> Optional[Tuple[str, str]]:
    """Return ``(command_token, argument_text)`` if ``content`` starts with a prefix."""
    for prefix in prefixes:
        if prefix and content.startswith(prefix):
            body = content[len(prefix):]
            if not body or body[0].isspace():
                return None
            parts = body.split(None, 1)
            return parts[0].lower(), (parts[1] if len(parts) > 1 else "")
    return None


def normalize_message(message: discord.Message, prefixes: Iterable[str]) -> Optional[Invocation]:
    """Turn a prefix-command message into an invocation.

    Args:
        message: Incoming gateway message
        prefixes: Command prefixes, longest first
    """
    author = message.author
    if getattr(author, "bot", False):
        return None

    parsed = split_prefix(message.content or "", prefixes)
    if parsed is None:
        return None
    command, arguments = parsed

    guild = message.guild
    return Invocation(
        actor=actor_from_user(author),
        guild_id=guild.id if guild else None,
        channel_id=message.channel.id,
        command=command,
        arguments=arguments,
        trigger=TriggerMeta(
            kind=TriggerKind.PREFIX,
            message_id=message.id,
            attachments=tuple(a.url for a in (message.attachments or ())),
        ),
    )


def flatten_command_data(data: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Collapse nested subcommand options into ``("group sub", {option: value})``."""
    path: List[str] = [str(data.get("name", ""))]
    options = list(data.get("options") or [])

    while len(options) == 1 and options[0].get("type") in (_SUB_COMMAND, _SUB_COMMAND_GROUP):
        path.append(str(options[0].get("name", "")))
        options = list(options[0].get("options") or [])

    values = {str(opt["name"]): opt.get("value") for opt in options if "name" in opt}
    return " ".join(p for p in path if p).lower(), values


def normalize_interaction(interaction: discord.Interaction) -> Optional[Invocation]:
    """Turn a slash command or a command button into an invocation."""
    data = interaction.data or {}
    user = interaction.user
    if user is None or getattr(user, "bot", False):
        return None

    if interaction.type == discord.InteractionType.application_command:
        command, options = flatten_command_data(data)
        target_id = data.get("target_id")
        if target_id is not None:
            # Context menu entry: the clicked message or member is the argument
            target = "message" if data.get("type") == _MESSAGE_COMMAND else "member"
            options.setdefault(target, target_id)
        kind = TriggerKind.SLASH
    elif interaction.type == discord.InteractionType.component:
        custom_id = str(data.get("custom_id", ""))
        if not custom_id.startswith(COMPONENT_PREFIX):
            return None
        command, options = custom_id[len(COMPONENT_PREFIX):].replace(":", " ").lower(), {}
        kind = TriggerKind.COMPONENT
    else:
        return None

    if not command or interaction.channel_id is None:
        return None

    message = getattr(interaction, "message", None)
    return Invocation(
        actor=actor_from_user(user),
        guild_id=interaction.guild_id,
        channel_id=interaction.channel_id,
        command=command,
        arguments="",
        trigger=TriggerMeta(
            kind=kind,
            message_id=message.id if message is not None else None,
            interaction=interaction,
        ),
        options=options,
    )


def normalize_reaction(
    payload: discord.RawReactionActionEvent,
    reaction_commands: Mapping[str, str],
) -> Optional[Invocation]:
    """Turn a mapped reaction into an invocation whose argument is the reacted message id."""
    emoji = str(payload.emoji)
    command = reaction_commands.get(emoji)
    if not command:
        return None

    member = payload.member
    if member is not None:
        if member.bot:
            return None
        actor = actor_from_user(member)
    else:
        actor = Actor(id=payload.user_id)

    return Invocation(
        actor=actor,
        guild_id=payload.guild_id,
        channel_id=payload.channel_id,
        command=command.lower(),
        arguments=str(payload.message_id),
        trigger=TriggerMeta(kind=TriggerKind.REACTION, message_id=payload.message_id, emoji=emoji),
    )
