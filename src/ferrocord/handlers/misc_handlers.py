from __future__ import annotations

from datetime import datetime, timezone

from ferrocord.datatypes.command_datatypes import HandlerError, HandlerResult, Reply
from ferrocord.datatypes.error_datatypes import ErrorKind
from ferrocord.handlers.context import CommandContext
from ferrocord.util.text import truncate


def format_duration(seconds: float) -> str:
    """``93784`` -> ``"1d 2h 3m 4s"``."""
    seconds = int(max(0, seconds))
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    parts = [f"{value}{unit}" for value, unit in ((days, "d"), (hours, "h"), (minutes, "m")) if value]
    parts.append(f"{seconds}s")
    return " ".join(parts)


async def show_help(ctx: CommandContext) -> HandlerResult:
    registry = ctx.registry
    if registry is None:
        return HandlerError(ErrorKind.INTERNAL)

    wanted = " ".join(ctx.args.rest("command").split()).lower()
    if wanted:
        spec = registry.get(wanted)
        if spec is None:
            return HandlerError(ErrorKind.UNKNOWN_COMMAND)
        usage = f" {spec.usage}" if spec.usage else ""
        lines = [f"`{spec.name}{usage}`", spec.description]
        if spec.aliases:
            lines.append("Also: " + ", ".join(f"`{a}`" for a in spec.aliases))
        return Reply("\n".join(line for line in lines if line), ephemeral=True)

    lines = ["**Commands**"]
    for entry in registry.command_metadata():
        usage = f" {entry['usage']}" if entry["usage"] else ""
        lines.append(f"`{entry['name']}{usage}` - {entry['description']}")
    return Reply(truncate("\n".join(lines)), ephemeral=True)


async def uptime(ctx: CommandContext) -> HandlerResult:
    elapsed = (datetime.now(timezone.utc) - ctx.started_at).total_seconds()
    return Reply(f"Uptime: {format_duration(elapsed)}")
