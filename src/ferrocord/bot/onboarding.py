"""
Delayed opt-in role grant for new members.

Members who join get the opt-in role after a grace period, through the same
action sink every command uses. The wait is a plain task per member; members
who leave in the meantime simply make the grant fail.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

from ferrocord.datatypes.action_datatypes import ActionResult, OutboundAction
from ferrocord.sink.action_sink import ActionSink
from ferrocord.util.logger import get_logger

logger = get_logger("onboarding")


class JoinRoleGrant:
    """Schedules the opt-in role for members some time after they join.

    Args:
        sink: Outbound action sink
        role_id: Role to grant
        delay_seconds: Grace period after the join event
        sleep: Awaitable used for the wait (injected by tests)
    """

    def __init__(
        self,
        sink: ActionSink,
        role_id: int,
        delay_seconds: float,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.sink = sink
        self.role_id = role_id
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, guild_id: int, user_id: int, *, is_bot: bool = False) -> Optional[asyncio.Task]:
        """Start the wait for one member. Bots are skipped."""
        if is_bot:
            return None
        task = asyncio.create_task(self._grant_later(guild_id, user_id), name=f"join-grant-{user_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.debug("[ONBOARDING] Granting role %s to %s in %.0fs", self.role_id, user_id, self.delay_seconds)
        return task

    async def _grant_later(self, guild_id: int, user_id: int) -> ActionResult:
        await self._sleep(self.delay_seconds)
        minutes = self.delay_seconds / 60
        result = await self.sink.enqueue(
            OutboundAction.add_role(
                guild_id, user_id, self.role_id,
                reason=f"Automatically granted after {minutes:g} minutes",
            )
        )
        if result.ok:
            logger.info("[ONBOARDING] Granted role %s to %s", self.role_id, user_id)
        else:
            # Usually the member left before the grace period ended
            logger.info("[ONBOARDING] Could not grant role %s to %s: %s", self.role_id, user_id, result.detail)
        return result

    async def shutdown(self) -> None:
        """Cancel grants that are still waiting."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()
