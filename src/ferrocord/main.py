"""
Ferrocord
=========

A Discord community bot: a tag knowledge base with aliases and usage
statistics, self-assignable roles, bulk cleanup and mod-mail relay, all
running through one dispatch pipeline with a permission gate and a
rate-limited action sink.
"""

import asyncio
import os
import sys
from pathlib import Path

import discord
from dotenv import load_dotenv

from ferrocord.bot.runtime import Runtime, RuntimeInitError, build_runtime
from ferrocord.configuration.app_configuration import AppConfig, load_app_config
from ferrocord.sink.discord_executor import DiscordActionExecutor, DiscordMessageHistory
from ferrocord.ui.console import ConsoleControl, close_bot_instance, console_session
from ferrocord.util.logger import get_logger, handle_exception

logger = get_logger("main")

RESTART_EXIT_CODE = 42


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. FERROCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the directory above ``src``.
    """
    if env_home := os.getenv("FERROCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()


def load_environment() -> str:
    """Load ``.env`` and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for prefix commands, interactions, reactions and member roles."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.reactions = True
    intents.members = True
    return intents


def load_cogs(discord_bot_instance: discord.Bot) -> None:
    from ferrocord.bot.cogs import gateway_listener

    gateway_listener.setup(discord_bot_instance)
    logger.info("All cogs loaded successfully.")


async def create_bot(config: AppConfig) -> tuple[discord.Bot, Runtime]:
    """Instantiate the Discord bot, wire the runtime to it and register the cogs."""
    # Slash commands are registered externally; syncing here would delete them
    bot = discord.Bot(intents=build_intents(), auto_sync_commands=False)
    runtime = await build_runtime(config, DiscordActionExecutor(bot), DiscordMessageHistory(bot))
    bot.runtime = runtime
    load_cogs(bot)
    return bot, runtime


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, runtime: Runtime | None) -> None:
    """Close the gateway connection, then drain and close the pipeline."""
    await close_bot_instance(bot, log_close=True)

    if runtime is not None:
        try:
            await runtime.shutdown()
        except Exception as exc:
            logger.exception("Error during runtime shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def run_bot_session(bot: discord.Bot, runtime: Runtime, token: str, control: ConsoleControl) -> int:
    """Run the bot alongside the console, returning an exit code."""
    control.set_bot(bot)
    control.runtime = runtime
    exit_code = 0

    try:
        async with console_session(control):
            try:
                await start_bot(bot, token)
            except asyncio.CancelledError:
                logger.info("Bot start cancelled; proceeding to shutdown")
            except Exception as exc:
                logger.critical("Discord bot runtime error: %s", exc)
                exit_code = 1
    finally:
        control.set_bot(None)
        await shutdown_runtime(bot, runtime)

    return exit_code


async def async_main() -> int:
    """Bootstrap configuration, storage, bot and console, returning an exit code."""
    token = load_environment()
    config = load_app_config(BASE_DIR / "config" / "app_config.yml")

    try:
        bot, runtime = await create_bot(config)
    except RuntimeInitError as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        return 1

    control = ConsoleControl()
    exit_code = await run_bot_session(bot, runtime, token, control)

    if control.is_restart_requested():
        logger.info("Restart requested, returning exit code %d to trigger restart", RESTART_EXIT_CODE)
        return RESTART_EXIT_CODE

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code.

    Returns 42 (after re-executing the process) when a restart was requested.
    """
    sys.excepthook = handle_exception
    os.chdir(BASE_DIR)
    logger.info("Starting Ferrocord…")
    try:
        exit_code = asyncio.run(async_main())

        if exit_code == RESTART_EXIT_CODE:
            logger.info("Restart requested; replacing current process with new instance.")
            os.execv(sys.executable, [sys.executable] + sys.argv)
            return 0  # pragma: no cover

        return exit_code
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        if code is None:
            return 1
        try:
            return int(code)
        except (ValueError, TypeError):
            logger.warning("SystemExit.code is not an int (%r); defaulting to 1", code)
            return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    print(f"Exited with code: {main()}")
