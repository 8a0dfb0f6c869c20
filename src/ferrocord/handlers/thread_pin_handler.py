"""
Pinning messages in threads.

Thread owners may pin messages in their own thread without the Manage
Messages permission. The gate checks ownership and lock state from the
:class:`ThreadInfo` resolved here; moderators may pin in any thread.
"""

from __future__ import annotations

import re
from typing import Optional

from ferrocord.datatypes.action_datatypes import OutboundAction
from ferrocord.datatypes.command_datatypes import HandlerError, HandlerResult, PolicyTarget, ReplyWithActions
from ferrocord.datatypes.error_datatypes import ErrorKind
from ferrocord.handlers.context import CommandContext

_MESSAGE_LINK = re.compile(r"^https://(?:\w+\.)?discord(?:app)?\.com/channels/[\w@]+/(\d+)/(\d+)/?$")


def _message_id(ctx: CommandContext) -> Optional[int]:
    """Read a message id or a link to a message in the invoking channel."""
    token = ctx.args.take("message").strip()
    if token.isdigit():
        return int(token)
    match = _MESSAGE_LINK.match(token)
    if match and int(match.group(1)) == ctx.invocation.channel_id:
        return int(match.group(2))
    return None


async def thread_target(ctx: CommandContext) -> PolicyTarget:
    if ctx.history is None:
        return PolicyTarget()
    return PolicyTarget(thread=await ctx.history.thread_info(ctx.invocation.channel_id))


async def pin_message(ctx: CommandContext) -> HandlerResult:
    message_id = _message_id(ctx)
    if message_id is None:
        return HandlerError(ErrorKind.INVALID_ARGUMENT, "Usage: `pin <message id or link>`")

    invocation = ctx.invocation
    pin = OutboundAction.pin_message(
        invocation.channel_id, message_id, reason=f"Pinned by thread owner {invocation.actor.id}"
    )
    return ReplyWithActions("Pinned message to your thread!", [pin], ephemeral=True)
