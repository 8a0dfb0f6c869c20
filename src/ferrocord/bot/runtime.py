"""
Wiring of the dispatch pipeline.

:func:`build_runtime` creates every long-lived component once and connects
them by handle. Nothing here is a module-level singleton, so tests can build
several independent runtimes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ferrocord.bot.onboarding import JoinRoleGrant
from ferrocord.configuration.app_configuration import AppConfig
from ferrocord.database.database import Database
from ferrocord.dispatch.dispatcher import Dispatcher
from ferrocord.dispatch.intake import InvocationIntake
from ferrocord.dispatch.registry import CommandRegistry, build_command_table
from ferrocord.handlers.context import MessageHistory
from ferrocord.policy.permission_gate import PermissionGate
from ferrocord.repositories.tag_repo import TagRepository
from ferrocord.sink.action_sink import ActionExecutor, ActionSink
from ferrocord.util.logger import get_logger

logger = get_logger("runtime")


class RuntimeInitError(RuntimeError):
    """A component the bot cannot run without failed to start."""


@dataclass
class Runtime:
    config: AppConfig
    database: Optional[Database]
    repository: Optional[TagRepository]
    sink: ActionSink
    registry: CommandRegistry
    gate: PermissionGate
    dispatcher: Dispatcher
    intake: InvocationIntake
    onboarding: Optional[JoinRoleGrant] = None

    async def shutdown(self) -> None:
        """Stop intake first, then outbound delivery, then storage."""
        steps = [("intake", self.intake.shutdown), ("dispatcher", self.dispatcher.shutdown)]
        if self.onboarding is not None:
            steps.append(("join grants", self.onboarding.shutdown))
        steps.append(("action sink", self.sink.shutdown))

        for name, step in steps:
            try:
                await step()
            except Exception as exc:
                logger.exception("[RUNTIME] Error during %s shutdown: %s", name, exc)

        if self.database is not None:
            try:
                await self.database.shutdown()
            except Exception as exc:
                logger.exception("[RUNTIME] Error during database shutdown: %s", exc)
        logger.info("[RUNTIME] Runtime shut down.")


async def build_runtime(
    config: AppConfig,
    executor: ActionExecutor,
    history: Optional[MessageHistory] = None,
    *,
    sink: Optional[ActionSink] = None,
) -> Runtime:
    """Open storage (when enabled) and connect every pipeline component.

    Raises:
        RuntimeInitError: If persistence is enabled but the database could not be opened.
    """
    database: Optional[Database] = None
    repository: Optional[TagRepository] = None
    if config.persistence_enabled:
        database = Database(config.database_path, timeout_seconds=config.transaction_timeout_seconds)
        if not await database.initialize():
            raise RuntimeInitError(f"Could not open database at {config.database_path}")
        repository = TagRepository(database.connections)
    else:
        logger.warning("[RUNTIME] Persistence disabled; tag commands will be refused.")

    sink = sink or ActionSink(executor, config.sink_settings)
    registry = build_command_table()
    gate = PermissionGate.from_config(config)
    dispatcher = Dispatcher(
        registry,
        gate,
        repository,
        sink,
        config,
        history,
        timeout_seconds=config.dispatch_timeout_seconds,
        started_at=datetime.now(timezone.utc),
    )
    intake = InvocationIntake(dispatcher)

    onboarding: Optional[JoinRoleGrant] = None
    delay = config.opt_in_join_delay_seconds
    if config.opt_in_role_id is not None and delay is not None:
        onboarding = JoinRoleGrant(sink, config.opt_in_role_id, delay)

    logger.info("[RUNTIME] Pipeline ready with %d commands", len(registry))
    return Runtime(config, database, repository, sink, registry, gate, dispatcher, intake, onboarding)
