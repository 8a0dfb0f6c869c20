"""
Permission and policy gate.

Decides whether an actor may run a command against a target. The gate is
pure: it reads only its arguments and the role ids captured at construction,
and never touches the database or the platform.

Rules, first deny wins:

0. Commands that need persistence are denied with ``FEATURE_DISABLED`` while
   the database is switched off.
1. A command requiring a role the actor lacks is denied with
   ``INSUFFICIENT_ROLE``. Elevated members satisfy every requirement.
2. Mutating a restricted tag is denied with ``RESTRICTED`` unless the actor
   created it or is elevated.
3. Role self-assignment only grants the opt-in role and only to the actor
   themself, otherwise ``SELF_ONLY``.

4. Thread-owner commands need an unlocked thread created by the actor
   (``NOT_A_THREAD``, ``THREAD_LOCKED``, ``NOT_THREAD_OWNER``). Elevated
   members skip this rule.
"""

from __future__ import annotations

from typing import Optional

from ferrocord.datatypes.command_datatypes import (
    Allow,
    CommandSpec,
    Deny,
    Permission,
    PolicyDecision,
    PolicyTarget,
)
from ferrocord.datatypes.error_datatypes import DenyReason
from ferrocord.datatypes.invocation_datatypes import Actor

_ALLOW = Allow()


class PermissionGate:
    """Evaluates the command policy for one configuration snapshot."""

    def __init__(
        self,
        elevated_role_id: Optional[int] = None,
        restricted_role_id: Optional[int] = None,
        opt_in_role_id: Optional[int] = None,
        persistence_enabled: bool = True,
    ) -> None:
        self.elevated_role_id = elevated_role_id
        self.restricted_role_id = restricted_role_id
        self.opt_in_role_id = opt_in_role_id
        self.persistence_enabled = persistence_enabled

    @classmethod
    def from_config(cls, config) -> "PermissionGate":
        """Build a gate from an ``AppConfig``."""
        return cls(
            elevated_role_id=config.elevated_role_id,
            restricted_role_id=config.restricted_role_id,
            opt_in_role_id=config.opt_in_role_id,
            persistence_enabled=config.persistence_enabled,
        )

    def is_elevated(self, actor: Actor) -> bool:
        return actor.has_role(self.elevated_role_id)

    def check(
        self,
        actor: Actor,
        command: CommandSpec,
        target: Optional[PolicyTarget] = None,
    ) -> PolicyDecision:
        if command.requires_persistence and not self.persistence_enabled:
            return Deny(DenyReason.FEATURE_DISABLED)

        elevated = self.is_elevated(actor)

        if command.permission is Permission.ELEVATED and not elevated:
            return Deny(DenyReason.INSUFFICIENT_ROLE)
        if command.permission is Permission.RESTRICTED and not (
            elevated or actor.has_role(self.restricted_role_id)
        ):
            return Deny(DenyReason.INSUFFICIENT_ROLE)

        if target is None:
            target = PolicyTarget()

        tag = target.tag
        if command.mutates_tag and tag is not None and tag.restricted:
            if actor.id != tag.creator_id and not elevated:
                return Deny(DenyReason.RESTRICTED)

        if command.self_only:
            if target.member_id is not None and target.member_id != actor.id:
                return Deny(DenyReason.SELF_ONLY)
            if self.opt_in_role_id is None or target.role_id != self.opt_in_role_id:
                return Deny(DenyReason.SELF_ONLY)

        if command.thread_owner_only and not elevated:
            thread = target.thread
            if thread is None:
                return Deny(DenyReason.NOT_A_THREAD)
            if thread.locked:
                return Deny(DenyReason.THREAD_LOCKED)
            if thread.owner_id != actor.id:
                return Deny(DenyReason.NOT_THREAD_OWNER)

        return _ALLOW
