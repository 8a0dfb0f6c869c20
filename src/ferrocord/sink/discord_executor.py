"""
py-cord adapter for the action sink.

:class:`DiscordActionExecutor` performs one :class:`OutboundAction` through
the bot's raw HTTP client and translates py-cord errors into the sink's
signals. :class:`DiscordMessageHistory` supplies message ids for cleanup
and thread state for pins.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import aiohttp
import discord

from ferrocord.datatypes.action_datatypes import ActionType, OutboundAction
from ferrocord.datatypes.command_datatypes import ThreadInfo
from ferrocord.sink.action_sink import PermanentActionError, RateLimited, TransientActionError
from ferrocord.util.logger import get_logger
from ferrocord.util.text import truncate

logger = get_logger("discord_executor")

# Discord refuses to bulk delete messages older than this
BULK_DELETE_MAX_AGE = timedelta(days=14)

_NO_MENTIONS = discord.AllowedMentions.none()


def _headers(exc: discord.HTTPException):
    return getattr(getattr(exc, "response", None), "headers", None) or {}


def _retry_after(exc: discord.HTTPException, body: Mapping[str, Any]) -> float:
    """Seconds to wait: the JSON body is the most precise source, then the headers."""
    headers = _headers(exc)
    for raw in (body.get("retry_after"), headers.get("X-RateLimit-Reset-After"), headers.get("Retry-After")):
        if raw is None or isinstance(raw, bool):
            continue
        try:
            return max(0.0, float(raw))
        except (TypeError, ValueError):
            continue
    return 1.0


def _is_global(exc: discord.HTTPException, body: Mapping[str, Any]) -> bool:
    headers = _headers(exc)
    return (
        body.get("global") is True
        or str(headers.get("X-RateLimit-Global", "")).lower() == "true"
        or str(headers.get("X-RateLimit-Scope", "")).lower() == "global"
    )


async def read_error_body(exc: discord.HTTPException) -> Dict[str, Any]:
    """Return the JSON body of a failed request, or an empty dict.

    py-cord keeps only the error message, but the aiohttp response already
    holds the body it read, so ``json()`` does not touch the network again.
    """
    reader = getattr(getattr(exc, "response", None), "json", None)
    if reader is None:
        return {}
    try:
        body = await reader(content_type=None)
    except (ValueError, TypeError, aiohttp.ClientError):
        return {}
    return body if isinstance(body, dict) else {}


def translate_http_error(exc: discord.HTTPException, body: Optional[Mapping[str, Any]] = None) -> Exception:
    """Map a py-cord HTTP error to the sink signal it stands for.

    Args:
        exc: The error py-cord raised
        body: Decoded JSON body of the response, when available
    """
    body = body or {}
    status = getattr(exc, "status", 0) or 0
    if status == 429:
        return RateLimited(_retry_after(exc, body), is_global=_is_global(exc, body))
    if status >= 500:
        return TransientActionError(f"HTTP {status}: {exc}")
    return PermanentActionError(f"HTTP {status}: {exc}")


class DiscordActionExecutor:
    """Runs outbound actions against Discord through ``bot.http``."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    async def execute(self, action: OutboundAction) -> None:
        try:
            await self._perform(action)
        except discord.HTTPException as exc:
            body = await read_error_body(exc) if exc.status == 429 else {}
            raise translate_http_error(exc, body) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransientActionError(f"{type(exc).__name__}: {exc}") from exc

    async def _perform(self, action: OutboundAction) -> None:
        http = self.bot.http

        if action.type is ActionType.SEND_MESSAGE:
            content = truncate(action.content)
            if action.interaction is not None:
                try:
                    await self._respond(action.interaction, content, action.ephemeral)
                except discord.NotFound as exc:
                    # Unknown interaction (10062): the token expired before we answered
                    logger.warning(
                        "[EXECUTOR] Interaction in channel %s expired (%s); answering in channel",
                        action.channel_id, exc.code,
                    )
                    await http.send_message(action.channel_id, content, allowed_mentions=_NO_MENTIONS.to_dict())
            else:
                await http.send_message(action.channel_id, content, allowed_mentions=_NO_MENTIONS.to_dict())

        elif action.type is ActionType.DELETE_MESSAGE:
            await http.delete_message(action.channel_id, action.message_ids[0], reason=action.reason)

        elif action.type is ActionType.DELETE_MESSAGES:
            await http.delete_messages(action.channel_id, list(action.message_ids), reason=action.reason)

        elif action.type is ActionType.ADD_ROLE:
            await http.add_role(action.guild_id, action.user_id, action.role_id, reason=action.reason)

        elif action.type is ActionType.REMOVE_ROLE:
            await http.remove_role(action.guild_id, action.user_id, action.role_id, reason=action.reason)

        elif action.type is ActionType.ADD_REACTION:
            await http.add_reaction(action.channel_id, action.message_ids[0], action.emoji)

        elif action.type is ActionType.PIN_MESSAGE:
            await http.pin_message(action.channel_id, action.message_ids[0], reason=action.reason)

        else:
            raise PermanentActionError(f"Unsupported action type {action.type}")

    @staticmethod
    async def _respond(interaction, content: str, ephemeral: bool) -> None:
        """Answer an interaction, falling back to a followup once it was answered."""
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=ephemeral, allowed_mentions=_NO_MENTIONS)
        else:
            await interaction.response.send_message(content, ephemeral=ephemeral, allowed_mentions=_NO_MENTIONS)


class DiscordMessageHistory:
    """Channel lookups for the cleanup and pin commands."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    async def recent_message_ids(
        self,
        channel_id: int,
        limit: int,
        *,
        before: Optional[int] = None,
    ) -> List[int]:
        """Return up to ``limit`` ids of the newest messages young enough to bulk delete.

        Args:
            channel_id: Channel to read
            limit: Maximum number of ids
            before: Only messages older than this message id
        """
        if limit <= 0:
            return []

        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)

        cutoff = datetime.now(timezone.utc) - BULK_DELETE_MAX_AGE
        before_obj = discord.Object(id=before) if before else None

        ids: List[int] = []
        async for message in channel.history(limit=limit, before=before_obj):
            if message.created_at <= cutoff:
                break
            ids.append(message.id)

        logger.debug("[HISTORY] %d message(s) eligible for cleanup in channel %s", len(ids), channel_id)
        return ids

    async def thread_info(self, channel_id: int) -> Optional[ThreadInfo]:
        """Return ownership and lock state of ``channel_id``, or None if it is not a thread."""
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden):
                logger.debug("[HISTORY] Channel %s is not visible", channel_id)
                return None

        if not isinstance(channel, discord.Thread):
            return None
        return ThreadInfo(channel.id, channel.owner_id, bool(channel.locked))
