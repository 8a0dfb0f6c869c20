"""
Tag command handlers: display, create, edit, delete, alias, rename,
restrict, info, list and stats.

Permission checks (restricted tags, elevated-only restrict) happened in the
gate before any of these run. Repository errors are passed through as
``HandlerError`` values for the dispatcher to phrase.
"""

from __future__ import annotations

import math

from ferrocord.datatypes.command_datatypes import HandlerError, HandlerResult, PolicyTarget, Reply
from ferrocord.datatypes.error_datatypes import ErrorKind
from ferrocord.handlers.context import CommandContext
from ferrocord.util.text import parse_user_id, truncate

TAGS_PER_PAGE = 30


def _usage(text: str) -> HandlerError:
    return HandlerError(ErrorKind.INVALID_ARGUMENT, f"Usage: `{text}`")


# ==========================================
# Policy targets
# ==========================================

async def tag_target(ctx: CommandContext) -> PolicyTarget:
    """Target for commands whose first argument names the tag (edit, rename)."""
    return await _resolve_target(ctx, ctx.args.peek("name"))


async def whole_tag_target(ctx: CommandContext) -> PolicyTarget:
    """Target for commands whose whole argument text is the tag name (delete)."""
    return await _resolve_target(ctx, ctx.args.peek_rest("name"))


async def _resolve_target(ctx: CommandContext, name: str) -> PolicyTarget:
    if not name or ctx.repository is None:
        return PolicyTarget()
    resolved = await ctx.repository.resolve(name)
    return PolicyTarget(tag=None if isinstance(resolved, ErrorKind) else resolved)


# ==========================================
# Handlers
# ==========================================

async def show_tag(ctx: CommandContext) -> HandlerResult:
    """Display a tag. The usage counter is bumped only once the reply was delivered."""
    name = ctx.args.rest("name")
    if not name:
        return _usage("tag <name>")

    repository = ctx.repository
    tag = await repository.resolve(name)
    if isinstance(tag, ErrorKind):
        return HandlerError(tag)

    async def bump_usage() -> None:
        await repository.increment_usage(tag.name)

    return Reply(truncate(tag.content), on_delivered=bump_usage)


async def create_tag(ctx: CommandContext) -> HandlerResult:
    name = ctx.args.take("name")
    content = ctx.args.rest("content")
    if not name or not content:
        return _usage("tags create <name> <content>")

    tag = await ctx.repository.create(name, content, ctx.actor.id)
    if isinstance(tag, ErrorKind):
        return HandlerError(tag)
    return Reply(f"Created tag `{tag.name}`.")


async def edit_tag(ctx: CommandContext) -> HandlerResult:
    name = ctx.args.take("name")
    content = ctx.args.rest("content")
    if not name or not content:
        return _usage("tags edit <name> <content>")

    tag = await ctx.repository.edit(name, content, ctx.actor.id)
    if isinstance(tag, ErrorKind):
        return HandlerError(tag)
    return Reply(f"Updated tag `{tag.name}`.")


async def delete_tag(ctx: CommandContext) -> HandlerResult:
    name = ctx.args.rest("name")
    if not name:
        return _usage("tags delete <name>")

    deleted = await ctx.repository.delete(name)
    if isinstance(deleted, ErrorKind):
        return HandlerError(deleted)
    if deleted.alias_only:
        return Reply(f"Removed alias `{deleted.name}`.")
    if deleted.aliases_removed:
        aliases = ", ".join(f"`{a}`" for a in deleted.aliases_removed)
        return Reply(f"Deleted tag `{deleted.name}` and its aliases {aliases}.")
    return Reply(f"Deleted tag `{deleted.name}`.")


async def alias_tag(ctx: CommandContext) -> HandlerResult:
    existing = ctx.args.take("existing")
    new = ctx.args.take("new")
    if not existing or not new:
        return _usage("tags alias <existing> <new>")

    alias = await ctx.repository.add_alias(new, existing)
    if isinstance(alias, ErrorKind):
        return HandlerError(alias)
    return Reply(f"`{alias.alias}` now points to `{alias.tag_name}`.")


async def rename_tag(ctx: CommandContext) -> HandlerResult:
    old = ctx.args.take("name")
    new = ctx.args.take("new")
    if not old or not new:
        return _usage("tags rename <old> <new>")

    tag = await ctx.repository.rename(old, new, ctx.actor.id)
    if isinstance(tag, ErrorKind):
        return HandlerError(tag)
    return Reply(f"Renamed tag to `{tag.name}`; the old name still works as an alias.")


async def restrict_tag(ctx: CommandContext) -> HandlerResult:
    return await _set_restricted(ctx, True)


async def unrestrict_tag(ctx: CommandContext) -> HandlerResult:
    return await _set_restricted(ctx, False)


async def _set_restricted(ctx: CommandContext, restricted: bool) -> HandlerResult:
    name = ctx.args.rest("name")
    if not name:
        return _usage(f"tags {'restrict' if restricted else 'unrestrict'} <name>")

    tag = await ctx.repository.set_restricted(name, restricted)
    if isinstance(tag, ErrorKind):
        return HandlerError(tag)
    state = "restricted" if tag.restricted else "no longer restricted"
    return Reply(f"Tag `{tag.name}` is {state}.")


async def tag_info(ctx: CommandContext) -> HandlerResult:
    name = ctx.args.rest("name")
    if not name:
        return _usage("tags info <name>")

    info = await ctx.repository.info(name)
    if isinstance(info, ErrorKind):
        return HandlerError(info)

    tag = info.tag
    lines = [
        f"**{tag.name}**",
        f"Owner: <@{tag.creator_id}>",
        f"Created: {tag.created_at}",
    ]
    if tag.last_editor_id is not None:
        lines.append(f"Last edited by <@{tag.last_editor_id}> at {tag.last_edited_at}")
    lines.append(f"Uses: {tag.times_used} (rank {info.rank} of {info.total_tags})")
    if info.aliases:
        lines.append("Aliases: " + ", ".join(f"`{a}`" for a in info.aliases))
    if tag.restricted:
        lines.append("Restricted: yes")
    return Reply("\n".join(lines))


async def list_tags(ctx: CommandContext) -> HandlerResult:
    """List tag names 30 per page, optionally only those created by one member."""
    args = ctx.args
    member_id = None
    page = 1

    member_arg = args.peek("member")
    if member_arg.startswith("<@") or args.has_option("member"):
        member_id = parse_user_id(args.take("member"))
        if member_id is None:
            return _usage("tags list [@member] [page]")
    page_arg = args.take_int("page")
    if page_arg is not None:
        page = page_arg
    if page < 1:
        return _usage("tags list [@member] [page]")

    repository = ctx.repository
    total = await repository.count(creator_id=member_id)
    if total == 0:
        return Reply("No tags yet." if member_id is None else f"<@{member_id}> has no tags.")

    pages = max(1, math.ceil(total / TAGS_PER_PAGE))
    page = min(page, pages)
    summaries = await repository.list(
        limit=TAGS_PER_PAGE, offset=(page - 1) * TAGS_PER_PAGE, creator_id=member_id
    )
    names = ", ".join(f"`{s.name}`" for s in summaries)
    owner = "" if member_id is None else f" by <@{member_id}>"
    return Reply(truncate(f"**Tags{owner}** (page {page}/{pages}, {total} total)\n{names}"))


async def tag_stats(ctx: CommandContext) -> HandlerResult:
    token = ctx.args.peek("member")
    if token:
        member_id = parse_user_id(ctx.args.take("member"))
        if member_id is None:
            return _usage("tags stats [@member]")
        stats = await ctx.repository.member_stats(member_id)
        lines = [
            f"**Tag stats for <@{member_id}>**",
            f"Owned tags: {stats.owned_tags}",
            f"Owned tag uses: {stats.owned_tag_uses}",
        ]
        lines.extend(f"{i}. `{t.name}` ({t.times_used} uses)" for i, t in enumerate(stats.top_tags, 1))
        return Reply("\n".join(lines))

    stats = await ctx.repository.server_stats()
    lines = [
        "**Server tag stats**",
        f"{stats.total_tags} tags, used {stats.total_uses} times",
        "Top tags:",
    ]
    lines.extend(f"{i}. `{t.name}` ({t.times_used} uses)" for i, t in enumerate(stats.top_tags, 1))
    lines.append("Top creators:")
    lines.extend(f"{i}. <@{user}> ({count} tags)" for i, (user, count) in enumerate(stats.top_creators, 1))
    lines.append("Top creators by uses:")
    lines.extend(
        f"{i}. <@{user}> ({uses} uses)" for i, (user, uses) in enumerate(stats.top_creators_by_uses, 1)
    )
    return Reply("\n".join(lines))
