"""
Mod-mail relay: forwards a member's message to the moderators' channel.

A mapped reaction (``reactions: {"🚩": modmail}``) reports the reacted
message by relaying a link to it.
"""

from __future__ import annotations

from ferrocord.datatypes.action_datatypes import OutboundAction
from ferrocord.datatypes.command_datatypes import HandlerError, HandlerResult, Reply, ReplyWithActions
from ferrocord.datatypes.error_datatypes import ErrorKind
from ferrocord.datatypes.invocation_datatypes import TriggerKind
from ferrocord.handlers.context import CommandContext
from ferrocord.util.text import truncate

MODMAIL_BUTTON_ID = "ferrocord:modmail"


def message_link(guild_id, channel_id, message_id) -> str:
    return f"https://discord.com/channels/{guild_id or '@me'}/{channel_id}/{message_id}"


async def modmail(ctx: CommandContext) -> HandlerResult:
    channel_id = ctx.config.modmail_channel_id
    if channel_id is None:
        return HandlerError(ErrorKind.FEATURE_DISABLED, "Mod-mail is not set up on this server.")

    invocation = ctx.invocation
    text = ctx.args.rest("text")
    if invocation.trigger.kind is TriggerKind.REACTION:
        text = f"Reported message: {message_link(invocation.guild_id, invocation.channel_id, text)}"
    if not text:
        if invocation.trigger.kind is TriggerKind.COMPONENT:
            return Reply("Use `/modmail <message>` to write to the moderators.", ephemeral=True)
        return HandlerError(ErrorKind.INVALID_ARGUMENT, "Usage: `modmail <message>`")

    actor = invocation.actor
    header = f"**Mod-mail from <@{actor.id}>** ({actor.display_name or actor.id}) in <#{invocation.channel_id}>"
    body = text
    if invocation.trigger.attachments:
        body += "\n" + "\n".join(invocation.trigger.attachments)

    relay = OutboundAction.send_message(channel_id, truncate(f"{header}\n{body}"))
    return ReplyWithActions("Your message was sent to the moderators.", [relay], ephemeral=True)
