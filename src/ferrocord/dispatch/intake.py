"""
Invocation intake.

Manages one asyncio.Queue and one worker task per origin channel. The
gateway listener only calls :meth:`InvocationIntake.submit`, which never
blocks; ordering, dispatch and fault isolation live here.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
from typing import Dict

from ferrocord.datatypes.invocation_datatypes import Invocation
from ferrocord.dispatch.dispatcher import Dispatcher
from ferrocord.util.logger import get_logger

logger = get_logger("invocation_intake")


class InvocationIntake:
    """
    Per-channel queues in front of the dispatcher.

    Design notes
    ------------
    * One asyncio.Queue per channel, so invocations from one channel are
      processed and answered in arrival order.
    * One worker per channel, started lazily on the first invocation.
      Channels run concurrently.
    * If a worker dies, the next invocation for that channel restarts it.
    * Every invocation gets a monotonically increasing ``sequence``.
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher
        self._queues: Dict[int, asyncio.Queue[Invocation]] = {}
        self._workers: Dict[int, asyncio.Task] = {}
        self._sequence = itertools.count(1)

    # ------------------------------------------------------
    # Public API
    # ------------------------------------------------------

    def submit(self, invocation: Invocation) -> Invocation:
        """Queue an invocation for its channel and return it with its sequence number."""
        invocation = dataclasses.replace(invocation, sequence=next(self._sequence))
        channel_id = invocation.channel_id
        queue = self._get_or_create_queue(channel_id)
        queue.put_nowait(invocation)

        worker = self._workers.get(channel_id)
        if worker is None or worker.done():
            self._workers[channel_id] = asyncio.create_task(
                self._channel_worker(channel_id, queue),
                name=f"intake-worker-channel-{channel_id}",
            )
            logger.debug("[INTAKE] Started worker for channel %s", channel_id)
        return invocation

    def pending(self) -> Dict[int, int]:
        """Queued invocations per channel."""
        return {cid: q.qsize() for cid, q in self._queues.items() if q.qsize()}

    async def join(self) -> None:
        """Wait until every queued invocation has been dispatched."""
        for queue in list(self._queues.values()):
            await queue.join()

    async def shutdown(self) -> None:
        """Cancel all worker tasks gracefully during bot shutdown."""
        for task in self._workers.values():
            if not task.done():
                task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._workers.clear()
        self._queues.clear()
        logger.info("[INTAKE] All channel workers shut down.")

    # -------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------

    def _get_or_create_queue(self, channel_id: int) -> asyncio.Queue[Invocation]:
        if channel_id not in self._queues:
            self._queues[channel_id] = asyncio.Queue()
        return self._queues[channel_id]

    async def _channel_worker(self, channel_id: int, queue: asyncio.Queue[Invocation]) -> None:
        """Dispatch the invocations of one channel one after another."""
        while True:
            try:
                invocation = await queue.get()
            except asyncio.CancelledError:
                logger.debug("[INTAKE] Worker cancelled for channel %s", channel_id)
                return

            try:
                outcome = await self._dispatcher.dispatch(invocation)
                logger.debug(
                    "[INTAKE] #%d %s in channel %s -> %s",
                    invocation.sequence, invocation.command, channel_id, outcome.state,
                )
            except asyncio.CancelledError:
                return
            except Exception:
                logger.exception("[INTAKE] Dispatcher raised for invocation #%d", invocation.sequence)
            finally:
                queue.task_done()
