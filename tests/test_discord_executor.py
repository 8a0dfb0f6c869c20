"""Tests for the py-cord adapter of the action sink."""

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import discord
import pytest

from ferrocord.datatypes.action_datatypes import OutboundAction
from ferrocord.datatypes.command_datatypes import ThreadInfo
from ferrocord.sink.action_sink import PermanentActionError, RateLimited, TransientActionError
from ferrocord.sink.discord_executor import (
    DiscordActionExecutor,
    DiscordMessageHistory,
    read_error_body,
    translate_http_error,
)


def _http_error(status, headers=None, cls=discord.HTTPException, body=None):
    response = SimpleNamespace(status=status, reason="test", headers=headers or {})
    if body is not None:
        response.json = AsyncMock(return_value=body)
    return cls(response, "failure")


@pytest.fixture
def bot():
    http = MagicMock()
    for name in (
        "send_message", "delete_message", "delete_messages", "add_role", "remove_role", "add_reaction", "pin_message",
    ):
        setattr(http, name, AsyncMock())
    return SimpleNamespace(http=http)


# ==========================================
# Error translation
# ==========================================

def test_rate_limit_reads_retry_after():
    signal = translate_http_error(_http_error(429, {"Retry-After": "2.5"}))

    assert isinstance(signal, RateLimited)
    assert signal.retry_after == 2.5
    assert not signal.is_global


def test_global_rate_limit_is_flagged():
    assert translate_http_error(_http_error(429, {"Retry-After": "1", "X-RateLimit-Global": "true"})).is_global
    assert translate_http_error(_http_error(429, {"X-RateLimit-Scope": "global"})).is_global


def test_rate_limit_without_usable_header_defaults_to_one_second():
    assert translate_http_error(_http_error(429)).retry_after == 1.0
    assert translate_http_error(_http_error(429, {"Retry-After": "soon"})).retry_after == 1.0


def test_reset_after_header_beats_retry_after():
    error = _http_error(429, {"Retry-After": "3", "X-RateLimit-Reset-After": "2.25"})

    assert translate_http_error(error).retry_after == 2.25


def test_json_body_is_the_preferred_retry_source():
    error = _http_error(429, {"Retry-After": "3"})

    signal = translate_http_error(error, {"retry_after": 4.2, "global": True})

    assert signal.retry_after == 4.2
    assert signal.is_global


def test_server_errors_are_transient_and_client_errors_permanent():
    assert isinstance(translate_http_error(_http_error(502, cls=discord.DiscordServerError)), TransientActionError)
    assert isinstance(translate_http_error(_http_error(403, cls=discord.Forbidden)), PermanentActionError)
    assert isinstance(translate_http_error(_http_error(404, cls=discord.NotFound)), PermanentActionError)


# ==========================================
# Execution
# ==========================================

@pytest.mark.asyncio
async def test_channel_message_uses_http_without_mentions(bot):
    await DiscordActionExecutor(bot).execute(OutboundAction.send_message(100, "hello"))

    bot.http.send_message.assert_awaited_once()
    args, kwargs = bot.http.send_message.call_args
    assert args == (100, "hello")
    assert kwargs["allowed_mentions"] == discord.AllowedMentions.none().to_dict()


@pytest.mark.asyncio
async def test_long_message_is_truncated(bot):
    await DiscordActionExecutor(bot).execute(OutboundAction.send_message(100, "x" * 2500))

    content = bot.http.send_message.call_args.args[1]
    assert len(content) == 2000
    assert content.endswith("…")


@pytest.mark.asyncio
async def test_interaction_reply_then_followup(bot):
    interaction = MagicMock()
    interaction.response.is_done.return_value = False
    interaction.response.send_message = AsyncMock()
    interaction.followup.send = AsyncMock()
    executor = DiscordActionExecutor(bot)

    await executor.execute(OutboundAction.send_message(100, "first", interaction=interaction, ephemeral=True))
    interaction.response.is_done.return_value = True
    await executor.execute(OutboundAction.send_message(100, "second", interaction=interaction))

    assert interaction.response.send_message.await_args.args == ("first",)
    assert interaction.response.send_message.await_args.kwargs["ephemeral"] is True
    assert interaction.followup.send.await_args.args == ("second",)
    assert interaction.followup.send.await_args.kwargs["ephemeral"] is False
    bot.http.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_expired_interaction_is_answered_in_channel(bot):
    interaction = MagicMock()
    interaction.response.is_done.return_value = True
    interaction.followup.send = AsyncMock(side_effect=_http_error(404, cls=discord.NotFound))

    await DiscordActionExecutor(bot).execute(
        OutboundAction.send_message(100, "late answer", interaction=interaction, ephemeral=True)
    )

    interaction.followup.send.assert_awaited_once()
    bot.http.send_message.assert_awaited_once()
    assert bot.http.send_message.call_args.args == (100, "late answer")


@pytest.mark.asyncio
async def test_other_interaction_failures_are_not_redirected(bot):
    interaction = MagicMock()
    interaction.response.is_done.return_value = False
    interaction.response.send_message = AsyncMock(side_effect=_http_error(403, cls=discord.Forbidden))

    with pytest.raises(PermanentActionError):
        await DiscordActionExecutor(bot).execute(OutboundAction.send_message(100, "x", interaction=interaction))
    bot.http.send_message.assert_not_awaited()

@pytest.mark.asyncio
async def test_deletes_roles_and_reactions(bot):
    executor = DiscordActionExecutor(bot)

    await executor.execute(OutboundAction.delete_messages(100, [1], reason="r"))
    await executor.execute(OutboundAction.delete_messages(100, [1, 2, 3], reason="r"))
    await executor.execute(OutboundAction.add_role(10, 42, 902, reason="self"))
    await executor.execute(OutboundAction.remove_role(10, 42, 902))
    await executor.execute(OutboundAction.add_reaction(100, 5, "✅"))
    await executor.execute(OutboundAction.pin_message(100, 6, reason="owner"))

    bot.http.delete_message.assert_awaited_once_with(100, 1, reason="r")
    bot.http.delete_messages.assert_awaited_once_with(100, [1, 2, 3], reason="r")
    bot.http.add_role.assert_awaited_once_with(10, 42, 902, reason="self")
    bot.http.remove_role.assert_awaited_once_with(10, 42, 902, reason=None)
    bot.http.add_reaction.assert_awaited_once_with(100, 5, "✅")
    bot.http.pin_message.assert_awaited_once_with(100, 6, reason="owner")


@pytest.mark.asyncio
async def test_http_errors_become_sink_signals(bot):
    executor = DiscordActionExecutor(bot)
    bot.http.add_role.side_effect = _http_error(403, cls=discord.Forbidden)
    bot.http.send_message.side_effect = _http_error(429, {"Retry-After": "3"})

    with pytest.raises(PermanentActionError):
        await executor.execute(OutboundAction.add_role(10, 42, 902))
    with pytest.raises(RateLimited) as excinfo:
        await executor.execute(OutboundAction.send_message(100, "x"))
    assert excinfo.value.retry_after == 3.0


@pytest.mark.asyncio
async def test_rate_limit_body_is_read_from_the_response(bot):
    bot.http.send_message.side_effect = _http_error(
        429, {"Retry-After": "1"}, body={"retry_after": 4.2, "global": True, "message": "slow down"},
    )

    with pytest.raises(RateLimited) as excinfo:
        await DiscordActionExecutor(bot).execute(OutboundAction.send_message(100, "x"))

    assert excinfo.value.retry_after == 4.2
    assert excinfo.value.is_global


@pytest.mark.asyncio
async def test_unreadable_error_body_is_empty():
    response = SimpleNamespace(status=429, reason="test", headers={}, json=AsyncMock(side_effect=ValueError("not json")))
    error = discord.HTTPException(response, "failure")

    assert await read_error_body(error) == {}
    assert await read_error_body(_http_error(429)) == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("reset"), asyncio.TimeoutError()])
async def test_network_errors_are_transient(bot, error):
    bot.http.delete_message.side_effect = error

    with pytest.raises(TransientActionError):
        await DiscordActionExecutor(bot).execute(OutboundAction.delete_messages(100, [1]))


# ==========================================
# History
# ==========================================

@pytest.mark.asyncio
async def test_history_stops_at_bulk_delete_window():
    now = datetime.now(timezone.utc)
    messages = [
        SimpleNamespace(id=30, created_at=now - timedelta(minutes=1)),
        SimpleNamespace(id=20, created_at=now - timedelta(days=1)),
        SimpleNamespace(id=10, created_at=now - timedelta(days=15)),
        SimpleNamespace(id=5, created_at=now - timedelta(days=1)),
    ]
    calls = []

    def history(limit, before):
        calls.append((limit, before))

        async def _iterate():
            for message in messages[:limit]:
                yield message

        return _iterate()

    channel = SimpleNamespace(history=history)
    bot = SimpleNamespace(get_channel=MagicMock(return_value=channel), fetch_channel=AsyncMock())

    ids = await DiscordMessageHistory(bot).recent_message_ids(100, 10, before=7000)

    assert ids == [30, 20]
    assert calls[0][0] == 10
    assert calls[0][1].id == 7000
    bot.fetch_channel.assert_not_awaited()


@pytest.mark.asyncio
async def test_history_fetches_uncached_channel():
    async def _empty():
        return
        yield

    channel = SimpleNamespace(history=lambda limit, before: _empty())
    bot = SimpleNamespace(get_channel=MagicMock(return_value=None), fetch_channel=AsyncMock(return_value=channel))

    assert await DiscordMessageHistory(bot).recent_message_ids(100, 5) == []
    bot.fetch_channel.assert_awaited_once_with(100)


@pytest.mark.asyncio
async def test_history_with_zero_limit():
    bot = SimpleNamespace(get_channel=MagicMock())

    assert await DiscordMessageHistory(bot).recent_message_ids(100, 0) == []
    bot.get_channel.assert_not_called()


def _thread(owner_id=42, locked=False):
    thread = MagicMock(spec=discord.Thread)
    thread.id = 100
    thread.owner_id = owner_id
    thread.locked = locked
    return thread


@pytest.mark.asyncio
async def test_thread_info_reports_owner_and_lock():
    bot = SimpleNamespace(get_channel=MagicMock(return_value=_thread(locked=True)), fetch_channel=AsyncMock())

    assert await DiscordMessageHistory(bot).thread_info(100) == ThreadInfo(100, 42, True)
    bot.fetch_channel.assert_not_awaited()


@pytest.mark.asyncio
async def test_thread_info_for_plain_channel_is_none():
    bot = SimpleNamespace(get_channel=MagicMock(return_value=MagicMock(spec=discord.TextChannel)))

    assert await DiscordMessageHistory(bot).thread_info(100) is None


@pytest.mark.asyncio
async def test_thread_info_for_invisible_channel_is_none():
    bot = SimpleNamespace(
        get_channel=MagicMock(return_value=None),
        fetch_channel=AsyncMock(side_effect=_http_error(404, cls=discord.NotFound)),
    )

    assert await DiscordMessageHistory(bot).thread_info(100) is None
