"""
Command dispatcher.

Takes one :class:`Invocation` through

    RECEIVED -> NORMALIZED -> POLICY_CHECKED -> EXECUTING -> COMPLETED | FAILED

and guarantees that the origin gets exactly one answer: the handler's reply,
the denial, the error text, a timeout notice or a generic apology.

The dispatcher is the only place where domain errors become user-facing text
(:data:`ERROR_MESSAGES`, :data:`DENY_MESSAGES`) and where unexpected faults
become ``INTERNAL``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from ferrocord.datatypes.action_datatypes import ActionResult, ActionStatus, OutboundAction
from ferrocord.datatypes.command_datatypes import (
    CommandSpec,
    Deny,
    DispatchOutcome,
    HandlerError,
    InvocationState,
    PolicyTarget,
    Reply,
    ReplyWithActions,
)
from ferrocord.datatypes.error_datatypes import DenyReason, ErrorKind
from ferrocord.datatypes.invocation_datatypes import Invocation
from ferrocord.dispatch.registry import CommandRegistry
from ferrocord.handlers.arguments import ArgumentReader
from ferrocord.handlers.context import CommandContext, MessageHistory
from ferrocord.policy.permission_gate import PermissionGate
from ferrocord.repositories.tag_repo import TagRepository
from ferrocord.sink.action_sink import ActionSink
from ferrocord.util.logger import get_logger

logger = get_logger("dispatcher")

ERROR_MESSAGES = {
    ErrorKind.NAME_COLLISION: "That name is already used by a tag or an alias.",
    ErrorKind.NOT_FOUND: "No tag or alias with that name exists.",
    ErrorKind.ALIAS_OF_ALIAS: "That name is an alias. Use the name of the tag it points to.",
    ErrorKind.FORBIDDEN: "You are not allowed to do that.",
    ErrorKind.UNKNOWN_COMMAND: "Unknown command. Try `help` for a list of commands.",
    ErrorKind.FEATURE_DISABLED: "That feature is disabled on this bot.",
    ErrorKind.RATE_LIMIT_EXHAUSTED: "Discord is not letting me do that right now. Please try again later.",
    ErrorKind.REJECTED: "Discord refused that action. I might be missing a permission.",
    ErrorKind.INVALID_ARGUMENT: "Invalid arguments.",
    ErrorKind.TIMEOUT: "That took too long and was abandoned.",
    ErrorKind.INTERNAL: "Sorry, something went wrong while running that command.",
}

DENY_MESSAGES = {
    DenyReason.INSUFFICIENT_ROLE: "You don't have the role required for that command.",
    DenyReason.RESTRICTED: "That tag is restricted. Only its creator or a moderator can change it.",
    DenyReason.SELF_ONLY: "You can only give or remove the opt-in role, and only for yourself.",
    DenyReason.NOT_A_THREAD: "This channel is not a thread!",
    DenyReason.THREAD_LOCKED: "This thread has been locked, so this cannot be performed.",
    DenyReason.NOT_THREAD_OWNER: "You did not create this thread, so cannot pin messages to it.",
    DenyReason.FEATURE_DISABLED: "Tags are disabled because the database is switched off.",
}

_STATUS_ERRORS = {
    ActionStatus.REJECTED: ErrorKind.REJECTED,
    ActionStatus.EXHAUSTED: ErrorKind.RATE_LIMIT_EXHAUSTED,
    ActionStatus.CANCELLED: ErrorKind.INTERNAL,
}


def error_text(kind: ErrorKind, detail: str = "") -> str:
    return detail or ERROR_MESSAGES.get(kind, ERROR_MESSAGES[ErrorKind.INTERNAL])


def _trace(invocation: Invocation, state: InvocationState, command: str) -> None:
    logger.debug("[DISPATCH] #%d %s -> %s", invocation.sequence, command, state)


class Dispatcher:
    """Routes invocations to handlers and delivers what they return.

    Args:
        registry: Static command table
        gate: Permission gate
        repository: Tag storage, None while persistence is disabled
        sink: Outbound action sink
        config: Application configuration handed to handlers
        history: Message history source for cleanup
        timeout_seconds: Execution bound for one handler
    """

    def __init__(
        self,
        registry: CommandRegistry,
        gate: PermissionGate,
        repository: Optional[TagRepository],
        sink: ActionSink,
        config,
        history: Optional[MessageHistory] = None,
        *,
        timeout_seconds: float = 10.0,
        started_at: Optional[datetime] = None,
    ) -> None:
        self.registry = registry
        self.gate = gate
        self.repository = repository
        self.sink = sink
        self.config = config
        self.history = history
        self.timeout_seconds = timeout_seconds
        self.started_at = started_at or datetime.now(timezone.utc)
        self._abandoned: set[asyncio.Task] = set()

    async def dispatch(self, invocation: Invocation) -> DispatchOutcome:
        """Run one invocation to completion. Never raises (except on cancellation)."""
        try:
            return await self._dispatch(invocation)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[DISPATCH] Unhandled fault while dispatching %r", invocation.command)
            text = error_text(ErrorKind.INTERNAL)
            await self._send(invocation, text, ephemeral=True)
            return DispatchOutcome(InvocationState.FAILED, invocation.command, ErrorKind.INTERNAL, reply_text=text)

    async def _dispatch(self, invocation: Invocation) -> DispatchOutcome:
        _trace(invocation, InvocationState.RECEIVED, invocation.command)
        found = self.registry.lookup(invocation.command, invocation.arguments)
        if found is None:
            logger.debug("[DISPATCH] Unknown command %r from %s", invocation.command, invocation.actor.id)
            return await self._fail(invocation, invocation.command, ErrorKind.UNKNOWN_COMMAND)

        spec, remaining = found
        _trace(invocation, InvocationState.NORMALIZED, spec.name)
        ctx = CommandContext(
            invocation=invocation,
            args=ArgumentReader(remaining, invocation.options),
            repository=self.repository,
            sink=self.sink,
            config=self.config,
            history=self.history,
            registry=self.registry,
            started_at=self.started_at,
        )

        target = await self._resolve_target(spec, ctx)
        decision = self.gate.check(invocation.actor, spec, target)
        if isinstance(decision, Deny):
            logger.info(
                "[DISPATCH] %s denied for %s: %s", spec.name, invocation.actor.id, decision.reason
            )
            text = DENY_MESSAGES[decision.reason]
            await self._send(invocation, text, ephemeral=True)
            return DispatchOutcome(
                InvocationState.FAILED, spec.name, decision.reason.error_kind,
                deny_reason=decision.reason, reply_text=text,
            )
        _trace(invocation, InvocationState.POLICY_CHECKED, spec.name)

        _trace(invocation, InvocationState.EXECUTING, spec.name)
        task = asyncio.create_task(spec.handler(ctx), name=f"handler-{spec.name}-{invocation.sequence}")
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            # The dispatch itself is being cancelled (intake shutdown)
            task.cancel()
            raise
        if not done:
            # Left running; the store's own timeout bounds any open transaction
            logger.warning(
                "[DISPATCH] %s exceeded %.1fs and was abandoned", spec.name, self.timeout_seconds
            )
            self._abandoned.add(task)
            task.add_done_callback(self._abandoned_done)
            return await self._fail(invocation, spec.name, ErrorKind.TIMEOUT)

        try:
            result = task.result()
        except Exception:
            logger.exception("[DISPATCH] Handler for %s raised", spec.name)
            return await self._fail(invocation, spec.name, ErrorKind.INTERNAL)

        if isinstance(result, HandlerError):
            return await self._fail(invocation, spec.name, result.kind, result.detail)
        if isinstance(result, ReplyWithActions):
            return await self._deliver_with_actions(invocation, spec, result)
        if isinstance(result, Reply):
            return await self._deliver_reply(invocation, spec, result)

        logger.error("[DISPATCH] Handler for %s returned %r", spec.name, result)
        return await self._fail(invocation, spec.name, ErrorKind.INTERNAL)

    async def _resolve_target(self, spec: CommandSpec, ctx: CommandContext) -> Optional[PolicyTarget]:
        if spec.resolve_target is None:
            return None
        if spec.requires_persistence and self.repository is None:
            return None
        return await spec.resolve_target(ctx)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver_reply(self, invocation: Invocation, spec: CommandSpec, reply: Reply) -> DispatchOutcome:
        result = await self._send(invocation, reply.text, ephemeral=reply.ephemeral)
        if not result.ok:
            return await self._apologize(invocation, spec.name, [result])

        if reply.on_delivered is not None:
            try:
                await reply.on_delivered()
            except Exception:
                logger.exception("[DISPATCH] Delivery hook of %s failed", spec.name)

        return DispatchOutcome(InvocationState.COMPLETED, spec.name, reply_text=reply.text, results=[result])

    async def _deliver_with_actions(
        self,
        invocation: Invocation,
        spec: CommandSpec,
        reply: ReplyWithActions,
    ) -> DispatchOutcome:
        results = await self.sink.enqueue_all(reply.actions)
        failed = [r for r in results if not r.ok]
        if failed:
            return await self._apologize(invocation, spec.name, results)

        sent = await self._send(invocation, reply.text, ephemeral=reply.ephemeral)
        results.append(sent)
        if not sent.ok:
            return await self._apologize(invocation, spec.name, results)
        return DispatchOutcome(InvocationState.COMPLETED, spec.name, reply_text=reply.text, results=results)

    async def _apologize(
        self,
        invocation: Invocation,
        command: str,
        results: List[ActionResult],
    ) -> DispatchOutcome:
        """Report failed actions to the invoker, best effort."""
        failed = [r for r in results if not r.ok]
        kinds = {_STATUS_ERRORS.get(r.status, ErrorKind.INTERNAL) for r in failed}
        kind = next(
            (k for k in (ErrorKind.REJECTED, ErrorKind.RATE_LIMIT_EXHAUSTED) if k in kinds),
            ErrorKind.INTERNAL,
        )

        logger.error(
            "[DISPATCH] %s: %d of %d action(s) failed (%s)",
            command, len(failed), len(results), ", ".join(f"{r.action.type}={r.status}" for r in failed),
        )
        text = error_text(kind)
        apology = await self._send(invocation, text, ephemeral=True)
        return DispatchOutcome(
            InvocationState.FAILED, command, kind, reply_text=text, results=[*results, apology],
        )

    async def _fail(
        self,
        invocation: Invocation,
        command: str,
        kind: ErrorKind,
        detail: str = "",
    ) -> DispatchOutcome:
        text = error_text(kind, detail)
        result = await self._send(invocation, text, ephemeral=True)
        return DispatchOutcome(InvocationState.FAILED, command, kind, reply_text=text, results=[result])

    async def _send(self, invocation: Invocation, text: str, *, ephemeral: bool = False) -> ActionResult:
        action = OutboundAction.send_message(
            invocation.channel_id,
            text,
            interaction=invocation.trigger.interaction,
            ephemeral=ephemeral and invocation.is_slash,
        )
        result = await self.sink.enqueue(action)
        if not result.ok:
            logger.error(
                "[DISPATCH] Could not answer in channel %s: %s (%s)",
                invocation.channel_id, result.status, result.detail,
            )
        return result

    def _abandoned_done(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[DISPATCH] Abandoned handler %s failed later: %r", task.get_name(), exc)
        else:
            logger.info("[DISPATCH] Abandoned handler %s finished late; its result was dropped", task.get_name())

    async def shutdown(self) -> None:
        """Cancel handlers that outlived their timeout."""
        for task in list(self._abandoned):
            task.cancel()
        if self._abandoned:
            await asyncio.gather(*self._abandoned, return_exceptions=True)
        self._abandoned.clear()
