"""
Bulk cleanup of recent channel messages.
"""

from __future__ import annotations

from ferrocord.datatypes.command_datatypes import HandlerError, HandlerResult, Reply
from ferrocord.datatypes.error_datatypes import ErrorKind
from ferrocord.handlers.context import CommandContext

DEFAULT_CLEANUP_COUNT = 10
MAX_CLEANUP_COUNT = 1000


async def cleanup(ctx: CommandContext) -> HandlerResult:
    """Delete the newest ``count`` messages before the command.

    Deletion goes through the sink in platform-sized batches. When a batch
    fails the reply reports how many messages are left.
    """
    count = ctx.args.take_int("count")
    if count is None:
        if ctx.args.remaining:
            return HandlerError(ErrorKind.INVALID_ARGUMENT, "Usage: `cleanup [count]`")
        count = DEFAULT_CLEANUP_COUNT
    if not 1 <= count <= MAX_CLEANUP_COUNT:
        return HandlerError(ErrorKind.INVALID_ARGUMENT, f"Count must be between 1 and {MAX_CLEANUP_COUNT}.")
    if ctx.history is None:
        return HandlerError(ErrorKind.INTERNAL, "Message history is unavailable.")

    invocation = ctx.invocation
    ids = await ctx.history.recent_message_ids(
        invocation.channel_id, count, before=invocation.trigger.message_id
    )
    if not ids:
        return Reply("Nothing to clean up.", ephemeral=True)

    report = await ctx.sink.bulk_delete(
        invocation.channel_id, ids, reason=f"cleanup by {invocation.actor.id}"
    )
    if report.complete:
        return Reply(f"Deleted {report.deleted} message(s).", ephemeral=True)
    return Reply(
        f"Deleted {report.deleted} of {report.requested} message(s); "
        f"{len(report.failed_ids)} could not be deleted.",
        ephemeral=True,
    )
