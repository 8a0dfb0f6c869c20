"""Operator console for the running Ferrocord bot."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import os
from typing import Any

import discord
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession

from ferrocord.util.logger import get_logger

BOX_WIDTH = 45

logger = get_logger("console")


def box_title(title: str) -> list[str]:
    inner_width = BOX_WIDTH - 2
    pad_left = (inner_width - len(title)) // 2
    pad_right = inner_width - len(title) - pad_left
    return [
        f"╔{'═' * inner_width}╗",
        f"║{' ' * pad_left}{title}{' ' * pad_right}║",
        f"╚{'═' * inner_width}╝",
    ]


ConsoleHandler = Callable[["ConsoleControl", list[str]], Awaitable[None]]


@dataclass
class ConsoleCommand:
    """One operator console command."""
    name: str
    handler: ConsoleHandler
    aliases: list[str] = field(default_factory=list)
    description: str = ""
    usage: str = ""

    def matches(self, input_cmd: str) -> bool:
        return input_cmd == self.name or input_cmd in self.aliases


def console_print(message: str, style: str = "") -> None:
    """Render text via prompt_toolkit without breaking the active prompt."""
    print_formatted_text(FormattedText([(style, message)]) if style else message)


class ConsoleControl:
    """Lifecycle flags shared by the console, the bot session and ``main``.

    ``runtime`` is the wired application (database, sink, intake, registry);
    the console only reads from it.
    """

    def __init__(self) -> None:
        self.shutdown_event = asyncio.Event()
        self.restart_event = asyncio.Event()
        self._bot: discord.Bot | None = None
        self.runtime: Any = None

    def set_bot(self, bot: discord.Bot | None) -> None:
        self._bot = bot

    @property
    def bot(self) -> discord.Bot | None:
        return self._bot

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    def request_restart(self) -> None:
        self.restart_event.set()

    def is_shutdown_requested(self) -> bool:
        return self.shutdown_event.is_set()

    def is_restart_requested(self) -> bool:
        return self.restart_event.is_set()


async def close_bot_instance(bot: discord.Bot | None, *, log_close: bool = False) -> None:
    """Close the Discord bot instance if it is active."""
    if bot is None or bot.is_closed():
        return

    try:
        await bot.close()
        if log_close:
            logger.info("Discord bot connection closed.")
    except Exception as exc:
        logger.exception("Error while closing Discord bot: %s", exc)


async def _request_lifecycle_action(control: ConsoleControl, *, restart: bool) -> None:
    if restart:
        control.request_restart()
    control.request_shutdown()
    await close_bot_instance(control.bot)


# ==================== Command Handlers ====================

async def cmd_help(control: ConsoleControl, args: list[str]) -> None:
    for line in box_title("Console Commands"):
        console_print(line, "ansigreen")

    for cmd in CONSOLE_COMMANDS:
        aliases_str = f" (aliases: {', '.join(cmd.aliases)})" if cmd.aliases else ""
        console_print(f"\n  {cmd.name}{aliases_str}", "ansicyan")
        console_print(f"    {cmd.description}")
        if cmd.usage:
            console_print(f"    Usage: {cmd.usage}", "ansibrightblack")
    console_print("")


async def cmd_status(control: ConsoleControl, args: list[str]) -> None:
    """Connection, latency, persistence state and sink/intake queue depths."""
    for line in box_title("Bot Status"):
        console_print(line, "ansiblue")

    bot = control.bot
    if bot:
        bot_status = "🟢 Connected" if not bot.is_closed() else "🔴 Disconnected"
        console_print(f"  Bot:          {bot_status}")
        console_print(f"  Guilds:       {len(bot.guilds)}")
        console_print(f"  Latency:      {bot.latency * 1000:.0f}ms")
    else:
        console_print("  Bot:          🔴 Not initialized")

    runtime = control.runtime
    if runtime is None:
        console_print("")
        return

    database = runtime.database
    if database is None:
        console_print("  Persistence:  ⚪ Disabled")
    elif database.initialized:
        console_print(f"  Persistence:  🟢 {database.db_path}")
    else:
        console_print("  Persistence:  🔴 Not initialized")

    sink_depths = runtime.sink.queue_depths()
    paused = " (globally paused)" if runtime.sink.globally_paused else ""
    console_print(f"  Sink queues:  {sum(sink_depths.values())} pending in {len(sink_depths)} destination(s){paused}")
    for key, depth in sorted(sink_depths.items()):
        console_print(f"    {key}: {depth}", "ansibrightblack")

    intake_depths = runtime.intake.pending()
    console_print(f"  Intake:       {sum(intake_depths.values())} pending in {len(intake_depths)} channel(s)")
    console_print("")


async def cmd_guilds(control: ConsoleControl, args: list[str]) -> None:
    if not control.bot or not control.bot.guilds:
        console_print("No guilds found or bot not connected.", "ansiyellow")
        return

    for line in box_title(f"Connected Guilds ({len(control.bot.guilds)})"):
        console_print(line, "ansiblue")
    for guild in control.bot.guilds:
        console_print(f"  • {guild.name} (ID: {guild.id}, Members: {guild.member_count})")
    console_print("")


async def cmd_commands(control: ConsoleControl, args: list[str]) -> None:
    """List the chat command table."""
    runtime = control.runtime
    if runtime is None:
        console_print("Runtime not initialized.", "ansiyellow")
        return

    metadata = runtime.registry.command_metadata()
    for line in box_title(f"Chat Commands ({len(metadata)})"):
        console_print(line, "ansiblue")
    for entry in metadata:
        usage = f" {entry['usage']}" if entry["usage"] else ""
        console_print(f"  {entry['name']}{usage}", "ansicyan")
        console_print(f"    {entry['description']} [{entry['permission']}]")
    console_print("")


async def cmd_clear(control: ConsoleControl, args: list[str]) -> None:
    os.system('cls' if os.name == 'nt' else 'clear')
    console_print("Console cleared.", "ansigreen")


async def cmd_restart(control: ConsoleControl, args: list[str]) -> None:
    console_print("Restart requested. Bot will shut down and restart...", "ansiyellow")
    await _request_lifecycle_action(control, restart=True)


async def cmd_shutdown(control: ConsoleControl, args: list[str]) -> None:
    console_print("Shutdown requested.", "ansiyellow")
    await _request_lifecycle_action(control, restart=False)


# ==================== Command Registry ====================

CONSOLE_COMMANDS: list[ConsoleCommand] = [
    ConsoleCommand("help", cmd_help, ["h", "?"], "Show this help message"),
    ConsoleCommand("status", cmd_status, ["stat"], "Connection, persistence and queue depths"),
    ConsoleCommand("guilds", cmd_guilds, ["servers", "g"], "List the guilds the bot is connected to"),
    ConsoleCommand("commands", cmd_commands, ["cmds"], "List the registered chat commands"),
    ConsoleCommand("clear", cmd_clear, ["cls"], "Clear the console screen"),
    ConsoleCommand("restart", cmd_restart, ["reboot"], "Restart the whole bot process"),
    ConsoleCommand("shutdown", cmd_shutdown, ["stop", "quit", "exit"], "Gracefully shut down the bot"),
]


async def handle_console_command(command: str, control: ConsoleControl) -> None:
    """Interpret and execute a single console command line."""
    if not command.strip():
        return

    parts = command.strip().split()
    cmd_name = parts[0].lower()
    args = parts[1:]

    for cmd in CONSOLE_COMMANDS:
        if cmd.matches(cmd_name):
            try:
                await cmd.handler(control, args)
            except Exception as exc:
                logger.exception("Error executing command '%s': %s", cmd_name, exc)
                console_print(f"Error executing command: {exc}", "ansired")
            return

    console_print(f"Unknown command '{cmd_name}'. Type 'help' for available commands.", "ansired")


async def run_console(control: ConsoleControl) -> None:
    """Read console commands until shutdown is requested."""
    session = PromptSession("> ")
    for line in box_title("Ferrocord Console"):
        console_print(line, "ansigreen")
    console_print("Type 'help' for available commands or 'exit' to quit.\n", "ansibrightblack")

    with patch_stdout():
        while not control.is_shutdown_requested():
            try:
                line = await session.prompt_async()
                if line.strip():
                    await handle_console_command(line, control)
            except (EOFError, KeyboardInterrupt):
                console_print("\nShutdown requested by user.", "ansiyellow")
                control.request_shutdown()
                break
            except Exception as exc:
                logger.exception("Error in console input loop: %s", exc)
                console_print(f"Error: {exc}", "ansired")


@asynccontextmanager
async def console_session(control: ConsoleControl) -> AsyncIterator[ConsoleControl]:
    """Run the console alongside the bot, cleaning up automatically."""
    console_task = asyncio.create_task(run_console(control))
    try:
        yield control
    finally:
        control.request_shutdown()
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
