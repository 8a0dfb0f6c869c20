"""
Self-assignable role commands.

``role add`` / ``role remove`` grant or revoke the configured opt-in role.
The gate has already confirmed that the role is the opt-in role and that the
member is the invoker.
"""

from __future__ import annotations

from ferrocord.datatypes.action_datatypes import OutboundAction
from ferrocord.datatypes.command_datatypes import HandlerError, HandlerResult, PolicyTarget, Reply, ReplyWithActions
from ferrocord.datatypes.error_datatypes import ErrorKind
from ferrocord.handlers.context import CommandContext
from ferrocord.util.text import parse_role_id, parse_user_id


def _read_target(ctx: CommandContext) -> tuple[int | None, int | None]:
    """Return ``(member_id, role_id)``; defaults are the invoker and the opt-in role."""
    args = ctx.args
    member_id = ctx.actor.id
    role_id = ctx.config.opt_in_role_id

    if args.has_option("role") or args.has_option("member"):
        if args.has_option("role"):
            role_id = parse_role_id(args.peek("role"))
        if args.has_option("member"):
            member_id = parse_user_id(args.peek("member"))
        return member_id, role_id

    # Prefix form: any order of one role mention and one member mention
    for token in args.remaining.split():
        if token.startswith("<@&"):
            role_id = parse_role_id(token)
        else:
            member_id = parse_user_id(token)
    return member_id, role_id


async def role_target(ctx: CommandContext) -> PolicyTarget:
    member_id, role_id = _read_target(ctx)
    return PolicyTarget(member_id=member_id, role_id=role_id)


async def add_role(ctx: CommandContext) -> HandlerResult:
    return await _change_role(ctx, add=True)


async def remove_role(ctx: CommandContext) -> HandlerResult:
    return await _change_role(ctx, add=False)


async def _change_role(ctx: CommandContext, add: bool) -> HandlerResult:
    invocation = ctx.invocation
    if invocation.guild_id is None:
        return HandlerError(ErrorKind.INVALID_ARGUMENT, "This command only works in a server.")

    member_id, role_id = _read_target(ctx)
    if member_id is None or role_id is None:
        return HandlerError(ErrorKind.INVALID_ARGUMENT, "Usage: `role add|remove [@member]`")

    has_role = ctx.actor.has_role(role_id)
    if add and has_role:
        return Reply(f"You already have <@&{role_id}>.", ephemeral=True)
    if not add and not has_role:
        return Reply(f"You don't have <@&{role_id}>.", ephemeral=True)

    if add:
        action = OutboundAction.add_role(invocation.guild_id, member_id, role_id, reason="self-assigned")
        text = f"Gave you <@&{role_id}>."
    else:
        action = OutboundAction.remove_role(invocation.guild_id, member_id, role_id, reason="self-removed")
        text = f"Removed <@&{role_id}> from you."
    return ReplyWithActions(text, [action], ephemeral=True)
