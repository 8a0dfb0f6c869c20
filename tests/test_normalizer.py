"""Tests for turning gateway events into invocations."""

from types import SimpleNamespace

import discord

from ferrocord.datatypes.invocation_datatypes import TriggerKind
from ferrocord.dispatch.normalizer import (
    actor_from_user,
    flatten_command_data,
    normalize_interaction,
    normalize_message,
    normalize_reaction,
    split_prefix,
)


def _member(user_id=42, bot=False, roles=(900,)):
    return SimpleNamespace(
        id=user_id,
        bot=bot,
        roles=[SimpleNamespace(id=r) for r in roles],
        display_name="ferris",
    )


def _message(content, author=None, guild_id=10):
    return SimpleNamespace(
        id=7000,
        content=content,
        author=author or _member(),
        guild=SimpleNamespace(id=guild_id) if guild_id else None,
        channel=SimpleNamespace(id=100),
        attachments=[SimpleNamespace(url="https://cdn.example/log.txt")],
    )


def test_actor_from_user_collects_roles():
    actor = actor_from_user(_member(roles=(1, 2)))

    assert actor.id == 42
    assert actor.role_ids == frozenset({1, 2})
    assert actor.display_name == "ferris"
    assert not actor.is_bot


def test_actor_from_plain_user_has_no_roles():
    actor = actor_from_user(SimpleNamespace(id=5, bot=False, name="someone"))

    assert actor.role_ids == frozenset()
    assert actor.display_name == "someone"


def test_split_prefix():
    assert split_prefix("?Tags create fmt  x", ["?"]) == ("tags", "create fmt  x")
    assert split_prefix("?tag", ["?"]) == ("tag", "")
    assert split_prefix("? tag", ["?"]) is None
    assert split_prefix("?", ["?"]) is None
    assert split_prefix("hello", ["?"]) is None
    assert split_prefix("!!help", ["!!", "!"]) == ("help", "")


def test_prefix_message_becomes_invocation():
    invocation = normalize_message(_message("?tags create fmt Use `cargo fmt`."), ["?"])

    assert invocation.command == "tags"
    assert invocation.arguments == "create fmt Use `cargo fmt`."
    assert invocation.guild_id == 10
    assert invocation.channel_id == 100
    assert invocation.actor.role_ids == frozenset({900})
    assert invocation.trigger.kind is TriggerKind.PREFIX
    assert invocation.trigger.message_id == 7000
    assert invocation.trigger.attachments == ("https://cdn.example/log.txt",)
    assert not invocation.is_slash


def test_direct_message_has_no_guild():
    invocation = normalize_message(_message("?modmail hi", guild_id=None), ["?"])

    assert invocation.guild_id is None


def test_bots_and_plain_chat_are_ignored():
    assert normalize_message(_message("?tag fmt", author=_member(bot=True)), ["?"]) is None
    assert normalize_message(_message("just chatting"), ["?"]) is None


def test_flatten_subcommand():
    data = {
        "name": "tags",
        "options": [{
            "type": 1,
            "name": "create",
            "options": [
                {"type": 3, "name": "name", "value": "fmt"},
                {"type": 3, "name": "content", "value": "Use `cargo fmt`."},
            ],
        }],
    }

    assert flatten_command_data(data) == ("tags create", {"name": "fmt", "content": "Use `cargo fmt`."})


def test_flatten_subcommand_group_and_plain_command():
    data = {
        "name": "Tags",
        "options": [{
            "type": 2,
            "name": "admin",
            "options": [{"type": 1, "name": "restrict", "options": [{"type": 3, "name": "name", "value": "x"}]}],
        }],
    }

    assert flatten_command_data(data) == ("tags admin restrict", {"name": "x"})
    assert flatten_command_data({"name": "uptime"}) == ("uptime", {})
    assert flatten_command_data({"name": "cleanup", "options": [{"type": 4, "name": "count", "value": 5}]}) == (
        "cleanup", {"count": 5},
    )


def _interaction(kind, data, user=None):
    return SimpleNamespace(
        type=kind,
        data=data,
        user=user or _member(),
        guild_id=10,
        channel_id=100,
        message=None,
    )


def test_slash_command_interaction():
    interaction = _interaction(
        discord.InteractionType.application_command,
        {"name": "role", "options": [{"type": 1, "name": "add", "options": []}]},
    )

    invocation = normalize_interaction(interaction)

    assert invocation.command == "role add"
    assert invocation.arguments == ""
    assert invocation.options == {}
    assert invocation.trigger.kind is TriggerKind.SLASH
    assert invocation.trigger.interaction is interaction
    assert invocation.is_slash


def test_message_context_menu_passes_target_message():
    interaction = _interaction(
        discord.InteractionType.application_command,
        {"name": "Pin message to thread", "type": 3, "target_id": "6001"},
    )

    invocation = normalize_interaction(interaction)

    assert invocation.command == "pin message to thread"
    assert invocation.options == {"message": "6001"}


def test_user_context_menu_passes_target_member():
    interaction = _interaction(
        discord.InteractionType.application_command, {"name": "Report", "type": 2, "target_id": "99"},
    )

    assert normalize_interaction(interaction).options == {"member": "99"}

def test_component_interaction_with_command_id():
    interaction = _interaction(discord.InteractionType.component, {"custom_id": "ferrocord:modmail"})

    invocation = normalize_interaction(interaction)

    assert invocation.command == "modmail"
    assert invocation.trigger.kind is TriggerKind.COMPONENT


def test_unrelated_interactions_are_ignored():
    assert normalize_interaction(_interaction(discord.InteractionType.component, {"custom_id": "other"})) is None
    assert normalize_interaction(_interaction(discord.InteractionType.ping, {})) is None
    assert normalize_interaction(
        _interaction(discord.InteractionType.application_command, {"name": "tag"}, user=_member(bot=True))
    ) is None


def _reaction(emoji="🚩", member=None):
    return SimpleNamespace(
        emoji=emoji,
        member=member,
        user_id=42,
        guild_id=10,
        channel_id=100,
        message_id=123456,
    )


def test_mapped_reaction_becomes_invocation():
    invocation = normalize_reaction(_reaction(member=_member()), {"🚩": "modmail"})

    assert invocation.command == "modmail"
    assert invocation.arguments == "123456"
    assert invocation.trigger.kind is TriggerKind.REACTION
    assert invocation.trigger.message_id == 123456
    assert invocation.trigger.emoji == "🚩"
    assert invocation.actor.role_ids == frozenset({900})


def test_reaction_without_member_uses_user_id():
    invocation = normalize_reaction(_reaction(), {"🚩": "modmail"})

    assert invocation.actor.id == 42
    assert invocation.actor.role_ids == frozenset()


def test_unmapped_or_bot_reactions_are_ignored():
    assert normalize_reaction(_reaction(emoji="👍"), {"🚩": "modmail"}) is None
    assert normalize_reaction(_reaction(member=_member(bot=True)), {"🚩": "modmail"}) is None
