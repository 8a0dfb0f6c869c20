"""
Rate-limited action sink.

Every outbound side effect goes through one :class:`ActionSink`. Actions are
queued per destination (a channel, or a guild member for role changes) and
one worker per destination executes them strictly in submission order, so
replies in a channel never overtake each other. Different destinations run
concurrently.

The sink reacts to three signals raised by its executor:

* :class:`RateLimited` - the head action waits ``retry_after`` seconds and
  is retried; nothing behind it moves. A global limit pauses every queue.
  After ``max_rate_limit_waits`` pauses the action is given up.
* :class:`TransientActionError` - retried with exponential backoff up to
  ``max_attempts`` attempts, then reported as ``EXHAUSTED``.
* :class:`PermanentActionError` - reported as ``REJECTED`` immediately.

Callers always get an :class:`ActionResult` back; exceptions never leave
the sink.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from ferrocord.configuration.sink_settings import SinkSettings
from ferrocord.datatypes.action_datatypes import (
    ActionResult,
    ActionStatus,
    BulkDeleteReport,
    OutboundAction,
)
from ferrocord.util.logger import get_logger
from ferrocord.util.text import chunk

logger = get_logger("action_sink")


class RateLimited(Exception):
    """The platform asked us to wait ``retry_after`` seconds."""

    def __init__(self, retry_after: float, is_global: bool = False) -> None:
        super().__init__(f"rate limited for {retry_after:.2f}s")
        self.retry_after = max(0.0, float(retry_after))
        self.is_global = is_global


class TransientActionError(Exception):
    """A failure worth retrying (5xx, connection reset, timeout)."""


class PermanentActionError(Exception):
    """The platform refused the action for good (missing permission, unknown message)."""


class ActionExecutor(Protocol):
    async def execute(self, action: OutboundAction) -> None:
        ...


_QueueItem = Tuple[OutboundAction, "asyncio.Future[ActionResult]"]


class ActionSink:
    """Per-destination FIFO delivery of outbound actions.

    Args:
        executor: Performs the actual platform call
        settings: Retry and batching limits
        sleep: Awaitable used for every wait (injected by tests)
        jitter: ``jitter(low, high)`` returning a random float
        clock: Monotonic time source for the global pause, the loop clock by default
    """

    def __init__(
        self,
        executor: ActionExecutor,
        settings: Optional[SinkSettings] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._executor = executor
        self._settings = settings or SinkSettings()
        self._sleep = sleep
        self._jitter = jitter
        self._clock = clock

        self._queues: Dict[str, asyncio.Queue[_QueueItem]] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._global_clear = asyncio.Event()
        self._global_clear.set()
        self._reopen_task: Optional[asyncio.Task] = None
        self._global_deadline = 0.0
        self._closed = False

    # ------------------------------------------------------
    # Public API
    # ------------------------------------------------------

    def submit(self, action: OutboundAction) -> "asyncio.Future[ActionResult]":
        """Queue ``action`` without waiting; the future resolves with its result."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ActionResult] = loop.create_future()

        if self._closed:
            future.set_result(ActionResult(action, ActionStatus.CANCELLED, attempts=0, detail="sink closed"))
            return future

        key = action.destination
        queue = self._get_or_create_queue(key)
        queue.put_nowait((action, future))

        worker = self._workers.get(key)
        if worker is None or worker.done():
            self._workers[key] = asyncio.create_task(
                self._destination_worker(key, queue),
                name=f"sink-worker-{key}",
            )
            logger.debug("[SINK] Started worker for %s", key)
        return future

    async def enqueue(self, action: OutboundAction) -> ActionResult:
        """Queue ``action`` and wait until it was delivered or given up."""
        return await self.submit(action)

    async def enqueue_all(self, actions: Iterable[OutboundAction]) -> List[ActionResult]:
        """Queue several actions at once and wait for all of them.

        Actions sharing a destination still run in the given order.
        """
        futures = [self.submit(action) for action in actions]
        if not futures:
            return []
        return list(await asyncio.gather(*futures))

    async def bulk_delete(
        self,
        channel_id: int,
        message_ids: Iterable[int],
        *,
        reason: Optional[str] = None,
    ) -> BulkDeleteReport:
        """Delete messages in batches of at most ``bulk_delete_limit`` ids.

        Duplicate ids are dropped. A failed batch contributes all of its ids
        to ``failed_ids``; successful batches count towards ``deleted``.
        """
        ids = list(dict.fromkeys(int(i) for i in message_ids))
        report = BulkDeleteReport(requested=len(ids))
        if not ids:
            return report

        batches = chunk(ids, self._settings.bulk_delete_limit)
        futures = [
            self.submit(OutboundAction.delete_messages(channel_id, batch, reason=reason))
            for batch in batches
        ]
        results = await asyncio.gather(*futures)

        for batch, result in zip(batches, results):
            report.batches += 1
            if result.ok:
                report.deleted += len(batch)
            else:
                report.failed_ids.extend(batch)
                logger.warning(
                    "[SINK] Bulk delete batch of %d in channel %s failed: %s (%s)",
                    len(batch), channel_id, result.status, result.detail,
                )

        logger.info(
            "[SINK] Bulk delete in channel %s: %d/%d deleted in %d batch(es)",
            channel_id, report.deleted, report.requested, report.batches,
        )
        return report

    def queue_depths(self) -> Dict[str, int]:
        """Number of actions waiting per destination (the running one excluded)."""
        return {key: queue.qsize() for key, queue in self._queues.items() if queue.qsize()}

    @property
    def globally_paused(self) -> bool:
        return not self._global_clear.is_set()

    async def shutdown(self) -> None:
        """Cancel all workers; queued actions resolve as ``CANCELLED``."""
        self._closed = True
        if self._reopen_task is not None and not self._reopen_task.done():
            self._reopen_task.cancel()
        for task in self._workers.values():
            if not task.done():
                task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers.values(), return_exceptions=True)

        for queue in self._queues.values():
            while not queue.empty():
                action, future = queue.get_nowait()
                if not future.done():
                    future.set_result(ActionResult(action, ActionStatus.CANCELLED, attempts=0, detail="sink closed"))

        self._workers.clear()
        self._queues.clear()
        self._global_clear.set()
        logger.info("[SINK] All destination workers shut down.")

    # -------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------

    def _get_or_create_queue(self, key: str) -> asyncio.Queue[_QueueItem]:
        if key not in self._queues:
            self._queues[key] = asyncio.Queue()
        return self._queues[key]

    async def _destination_worker(self, key: str, queue: asyncio.Queue[_QueueItem]) -> None:
        """Run the actions of one destination one at a time, forever."""
        while True:
            action, future = await queue.get()
            try:
                if future.done():
                    # Caller went away before delivery started
                    continue
                try:
                    result = await self._deliver(action)
                except asyncio.CancelledError:
                    if not future.done():
                        future.set_result(ActionResult(action, ActionStatus.CANCELLED, detail="sink closed"))
                    raise
                except Exception as exc:
                    logger.exception("[SINK] Unexpected error delivering %s to %s", action.type, key)
                    result = ActionResult(action, ActionStatus.EXHAUSTED, detail=str(exc))
                if not future.done():
                    future.set_result(result)
            finally:
                queue.task_done()

    async def _deliver(self, action: OutboundAction) -> ActionResult:
        """Execute one action until it succeeds, is rejected or runs out of retries."""
        settings = self._settings
        attempts = 0
        failures = 0
        rate_limit_waits = 0

        while True:
            await self._global_clear.wait()
            attempts += 1
            try:
                await self._executor.execute(action)
                return ActionResult(action, ActionStatus.ACK, attempts=attempts)

            except RateLimited as exc:
                rate_limit_waits += 1
                if rate_limit_waits > settings.max_rate_limit_waits:
                    logger.error(
                        "[SINK] %s on %s still rate limited after %d waits, giving up",
                        action.type, action.destination, settings.max_rate_limit_waits,
                    )
                    return ActionResult(action, ActionStatus.EXHAUSTED, attempts=attempts, detail="rate limited")
                logger.warning(
                    "[SINK] Rate limited on %s (%s), waiting %.2fs",
                    action.destination, "global" if exc.is_global else "route", exc.retry_after,
                )
                if exc.is_global:
                    self._pause_all(exc.retry_after)
                else:
                    await self._sleep(exc.retry_after)

            except (TransientActionError, asyncio.TimeoutError) as exc:
                failures += 1
                if failures >= settings.max_attempts:
                    logger.error(
                        "[SINK] %s on %s failed after %d attempts: %s",
                        action.type, action.destination, failures, exc,
                    )
                    return ActionResult(action, ActionStatus.EXHAUSTED, attempts=attempts, detail=str(exc))
                delay = self._backoff(failures)
                logger.warning(
                    "[SINK] %s on %s failed (attempt %d/%d), retrying in %.2fs: %s",
                    action.type, action.destination, failures, settings.max_attempts, delay, exc,
                )
                await self._sleep(delay)

            except PermanentActionError as exc:
                logger.warning("[SINK] %s on %s rejected: %s", action.type, action.destination, exc)
                return ActionResult(action, ActionStatus.REJECTED, attempts=attempts, detail=str(exc))

    def _backoff(self, failures: int) -> float:
        settings = self._settings
        delay = min(settings.max_backoff_seconds, settings.base_backoff_seconds * (2 ** (failures - 1)))
        if settings.jitter and settings.base_backoff_seconds > 0:
            delay += self._jitter(0, settings.base_backoff_seconds)
        return delay

    def _now(self) -> float:
        return self._clock() if self._clock is not None else asyncio.get_running_loop().time()

    def _pause_all(self, retry_after: float) -> None:
        """Close the global gate until at least ``retry_after`` seconds from now.

        A shorter signal arriving during a longer pause never reopens early.
        """
        deadline = self._now() + retry_after
        if deadline <= self._global_deadline and not self._global_clear.is_set():
            return
        self._global_deadline = deadline
        self._global_clear.clear()
        if self._reopen_task is None or self._reopen_task.done():
            self._reopen_task = asyncio.create_task(self._reopen_at_deadline(), name="sink-global-reopen")

    async def _reopen_at_deadline(self) -> None:
        # The deadline may move later while we sleep
        remaining = self._global_deadline - self._now()
        while remaining > 0:
            await self._sleep(remaining)
            remaining = self._global_deadline - self._now()
        self._global_clear.set()
        logger.info("[SINK] Global rate limit lifted")
