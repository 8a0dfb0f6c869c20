import os
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ferrocord import main
from ferrocord.bot.runtime import RuntimeInitError
from ferrocord.ui import console


@pytest.fixture(autouse=True)
def _restore_env(monkeypatch):
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


def test_resolve_base_dir_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("FERROCORD_HOME", str(tmp_path))

    resolved = main.resolve_base_dir()

    assert resolved == tmp_path.resolve()


def test_resolve_base_dir_compiled(tmp_path, monkeypatch):
    monkeypatch.delenv("FERROCORD_HOME", raising=False)
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "argv", [str(tmp_path / "ferrocord.exe")])

    resolved = main.resolve_base_dir()

    assert resolved == (tmp_path / "ferrocord.exe").resolve().parent

    monkeypatch.delattr(sys, "frozen", raising=False)


def test_resolve_base_dir_source(monkeypatch):
    monkeypatch.delenv("FERROCORD_HOME", raising=False)
    monkeypatch.setattr(sys, "frozen", False, raising=False)
    monkeypatch.setattr(sys, "compiled", False, raising=False)

    resolved = main.resolve_base_dir()

    assert resolved == main.Path(main.__file__).resolve().parents[2]


def test_load_environment_requires_token(monkeypatch):
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with patch("ferrocord.main.load_dotenv"):
        with pytest.raises(SystemExit) as excinfo:
            main.load_environment()

    assert excinfo.value.code == 1


def test_load_environment_returns_token(monkeypatch):
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "abc")

    with patch("ferrocord.main.load_dotenv"):
        assert main.load_environment() == "abc"


def test_build_intents_enables_message_content_and_reactions():
    intents = main.build_intents()

    assert intents.message_content
    assert intents.reactions
    assert intents.members


@pytest.mark.asyncio
async def test_create_bot_leaves_registered_slash_commands_alone(app_config):
    runtime = SimpleNamespace(intake=MagicMock(), config=app_config, onboarding=None)

    with patch("ferrocord.main.build_runtime", AsyncMock(return_value=runtime)):
        bot, built = await main.create_bot(app_config)

    try:
        assert built is runtime
        assert bot.runtime is runtime
        assert bot.auto_sync_commands is False
        assert bot.pending_application_commands == []
        assert "GatewayListenerCog" in bot.cogs
    finally:
        await bot.close()


@pytest.mark.asyncio
async def test_shutdown_runtime_closes_bot_then_runtime():
    order = []
    bot = MagicMock()
    bot.is_closed.return_value = False
    bot.close = AsyncMock(side_effect=lambda: order.append("bot"))
    runtime = SimpleNamespace(shutdown=AsyncMock(side_effect=lambda: order.append("runtime")))

    await main.shutdown_runtime(bot, runtime)

    assert order == ["bot", "runtime"]


@pytest.mark.asyncio
async def test_shutdown_runtime_survives_runtime_errors():
    runtime = SimpleNamespace(shutdown=AsyncMock(side_effect=RuntimeError("db busy")))

    await main.shutdown_runtime(None, runtime)

    runtime.shutdown.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_bot_session_returns_one_on_bot_error():
    control = console.ConsoleControl()
    bot = MagicMock()
    runtime = SimpleNamespace()

    with patch("ferrocord.main.start_bot", AsyncMock(side_effect=RuntimeError("login failed"))), \
            patch("ferrocord.ui.console.run_console", AsyncMock()), \
            patch("ferrocord.main.shutdown_runtime", AsyncMock()) as shutdown_mock:
        exit_code = await main.run_bot_session(bot, runtime, "token", control)

    assert exit_code == 1
    assert control.runtime is runtime
    assert control.bot is None
    shutdown_mock.assert_awaited_once_with(bot, runtime)


@pytest.mark.asyncio
async def test_async_main_returns_one_when_database_fails(monkeypatch):
    with patch("ferrocord.main.load_environment", return_value="token"), \
            patch("ferrocord.main.load_app_config"), \
            patch("ferrocord.main.create_bot", AsyncMock(side_effect=RuntimeInitError("locked"))):
        assert await main.async_main() == 1


@pytest.mark.asyncio
async def test_async_main_returns_restart_code_when_requested():
    async def fake_session(bot, runtime, token, control):
        control.request_restart()
        return 0

    with patch("ferrocord.main.load_environment", return_value="token"), \
            patch("ferrocord.main.load_app_config"), \
            patch("ferrocord.main.create_bot", AsyncMock(return_value=(MagicMock(), MagicMock()))), \
            patch("ferrocord.main.run_bot_session", side_effect=fake_session):
        assert await main.async_main() == main.RESTART_EXIT_CODE


def test_main_restarts_with_os_execv_on_exit_code_42():
    """Exit code 42 replaces the process with a fresh interpreter."""
    with patch("ferrocord.main.asyncio.run", return_value=42), \
            patch("ferrocord.main.os.chdir"), \
            patch("ferrocord.main.os.execv") as execv_mock, \
            patch("ferrocord.main.sys.executable", "/usr/bin/python"), \
            patch("ferrocord.main.sys.argv", ["ferrocord"]):
        main.main()

    execv_mock.assert_called_once_with("/usr/bin/python", ["/usr/bin/python", "ferrocord"])


@pytest.mark.parametrize("code,expected", [(3, 3), (None, 1), ("7", 7), ("bad", 1)])
def test_main_translates_system_exit(code, expected):
    def _raise(coro):
        coro.close()
        raise SystemExit(code)

    with patch("ferrocord.main.asyncio.run", side_effect=_raise), patch("ferrocord.main.os.chdir"):
        assert main.main() == expected
