"""
Pytest configuration and fixtures for Ferrocord tests.
"""

import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest
import pytest_asyncio
import yaml

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from ferrocord.configuration.app_configuration import AppConfig  # noqa: E402
from ferrocord.configuration.sink_settings import SinkSettings  # noqa: E402
from ferrocord.database.database import Database  # noqa: E402
from ferrocord.datatypes.action_datatypes import ActionType, OutboundAction  # noqa: E402
from ferrocord.datatypes.command_datatypes import ThreadInfo  # noqa: E402
from ferrocord.datatypes.invocation_datatypes import Actor, Invocation, TriggerKind, TriggerMeta  # noqa: E402
from ferrocord.dispatch.dispatcher import Dispatcher  # noqa: E402
from ferrocord.dispatch.registry import build_command_table  # noqa: E402
from ferrocord.policy.permission_gate import PermissionGate  # noqa: E402
from ferrocord.repositories.tag_repo import TagRepository  # noqa: E402
from ferrocord.sink.action_sink import ActionSink  # noqa: E402

ELEVATED_ROLE = 900
RESTRICTED_ROLE = 901
OPT_IN_ROLE = 902
MODMAIL_CHANNEL = 555
GUILD_ID = 10
CHANNEL_ID = 100


class RecordingExecutor:
    """Action executor that records every call.

    ``behaviour(action, calls)`` may return an exception to raise for that call.
    """

    def __init__(self, behaviour: Optional[Callable] = None) -> None:
        self.calls: List[OutboundAction] = []
        self.behaviour = behaviour

    async def execute(self, action: OutboundAction) -> None:
        self.calls.append(action)
        if self.behaviour is not None:
            exc = self.behaviour(action, self.calls)
            if exc is not None:
                raise exc

    @property
    def sent_texts(self) -> List[str]:
        return [a.content for a in self.calls if a.type is ActionType.SEND_MESSAGE]


class FakeSleep:
    """Records requested delays and yields control instead of sleeping.

    ``now`` is a fake clock that jumps forward by every requested delay.
    """

    def __init__(self) -> None:
        self.delays: List[float] = []
        self.now = 0.0

    def clock(self) -> float:
        return self.now

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class FakeHistory:
    def __init__(self, ids: Optional[List[int]] = None, thread: Optional[ThreadInfo] = None) -> None:
        self.ids = list(ids or [])
        self.thread = thread
        self.requests: list = []

    async def recent_message_ids(self, channel_id, limit, *, before=None):
        self.requests.append((channel_id, limit, before))
        return self.ids[:limit]

    async def thread_info(self, channel_id):
        if self.thread is None or self.thread.channel_id != channel_id:
            return None
        return self.thread


def write_config(path: Path, **overrides) -> Path:
    payload = {
        "guild_id": GUILD_ID,
        "roles": {
            "elevated": ELEVATED_ROLE,
            "restricted_commands": RESTRICTED_ROLE,
            "opt_in": OPT_IN_ROLE,
        },
        "modmail": {"channel_id": MODMAIL_CHANNEL},
        "persistence": {"enabled": True, "path": str(path.parent / "ferrocord.db")},
        "commands": {"prefixes": ["?"], "timeout_seconds": 2, "reactions": {"🚩": "modmail"}},
        "action_sink": {"max_attempts": 3, "base_backoff_seconds": 0.5, "max_rate_limit_waits": 3},
    }
    payload.update(overrides)
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(write_config(tmp_path / "app_config.yml"))


@pytest_asyncio.fixture
async def database(tmp_path: Path):
    db = Database(tmp_path / "tags.db", timeout_seconds=1.0)
    assert await db.initialize()
    yield db
    await db.shutdown()


@pytest_asyncio.fixture
async def repository(database: Database) -> TagRepository:
    return TagRepository(database.connections)


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest_asyncio.fixture
async def sink(executor: RecordingExecutor, fake_sleep: FakeSleep):
    action_sink = ActionSink(
        executor,
        SinkSettings({"max_attempts": 3, "max_rate_limit_waits": 3}),
        sleep=fake_sleep,
        jitter=lambda low, high: 0.0,
        clock=fake_sleep.clock,
    )
    yield action_sink
    await action_sink.shutdown()


@pytest_asyncio.fixture
async def make_sink():
    """Factory for sinks with custom executor behaviour and settings."""
    created = []

    def _make(behaviour: Optional[Callable] = None, **settings):
        recorder = RecordingExecutor(behaviour)
        sleep = FakeSleep()
        action_sink = ActionSink(
            recorder, SinkSettings(settings), sleep=sleep, jitter=lambda low, high: 0.0, clock=sleep.clock,
        )
        created.append(action_sink)
        return action_sink, recorder, sleep

    yield _make
    for action_sink in created:
        await action_sink.shutdown()


@pytest.fixture
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def dispatcher(app_config, repository, sink, history) -> Dispatcher:
    return Dispatcher(
        build_command_table(),
        PermissionGate.from_config(app_config),
        repository,
        sink,
        app_config,
        history,
        timeout_seconds=2.0,
    )


@pytest.fixture
def make_invocation() -> Callable[..., Invocation]:
    def _make(
        command: str,
        arguments: str = "",
        *,
        actor_id: int = 42,
        roles=(),
        channel_id: int = CHANNEL_ID,
        guild_id: Optional[int] = GUILD_ID,
        options=None,
        kind: TriggerKind = TriggerKind.PREFIX,
        message_id: Optional[int] = 7000,
        interaction=None,
    ) -> Invocation:
        return Invocation(
            actor=Actor(id=actor_id, role_ids=frozenset(roles), display_name=f"user{actor_id}"),
            guild_id=guild_id,
            channel_id=channel_id,
            command=command,
            arguments=arguments,
            trigger=TriggerMeta(kind=kind, message_id=message_id, interaction=interaction),
            options=dict(options or {}),
        )

    return _make
