"""Tests for the permission gate rules and their order."""

import pytest

from ferrocord.datatypes.command_datatypes import Allow, CommandSpec, Deny, Permission, PolicyTarget, ThreadInfo
from ferrocord.datatypes.error_datatypes import DenyReason, ErrorKind
from ferrocord.datatypes.invocation_datatypes import Actor
from ferrocord.datatypes.tag_datatypes import Tag
from ferrocord.policy.permission_gate import PermissionGate

ELEVATED = 900
RESTRICTED_CMDS = 901
OPT_IN = 902


async def _noop(ctx):
    return None


def _spec(**kwargs) -> CommandSpec:
    return CommandSpec("test", _noop, **kwargs)


def _tag(creator_id: int = 1, restricted: bool = True) -> Tag:
    return Tag("rustfmt", "x", creator_id, None, "2024-01-01T00:00:00+00:00", None, 0, restricted)


@pytest.fixture
def gate() -> PermissionGate:
    return PermissionGate(ELEVATED, RESTRICTED_CMDS, OPT_IN, persistence_enabled=True)


def test_everyone_command_is_allowed(gate):
    assert isinstance(gate.check(Actor(1), _spec()), Allow)


def test_elevated_command_requires_elevated_role(gate):
    spec = _spec(permission=Permission.ELEVATED)

    decision = gate.check(Actor(1), spec)
    assert decision == Deny(DenyReason.INSUFFICIENT_ROLE)
    assert decision.reason.error_kind is ErrorKind.FORBIDDEN
    assert gate.check(Actor(1, frozenset({ELEVATED})), spec).allowed


def test_restricted_command_accepts_restricted_or_elevated_role(gate):
    spec = _spec(permission=Permission.RESTRICTED)

    assert gate.check(Actor(1), spec) == Deny(DenyReason.INSUFFICIENT_ROLE)
    assert gate.check(Actor(1, frozenset({RESTRICTED_CMDS})), spec).allowed
    assert gate.check(Actor(1, frozenset({ELEVATED})), spec).allowed


def test_restricted_tag_blocks_other_members(gate):
    spec = _spec(mutates_tag=True)
    target = PolicyTarget(tag=_tag(creator_id=1))

    assert gate.check(Actor(2), spec, target) == Deny(DenyReason.RESTRICTED)
    assert gate.check(Actor(1), spec, target).allowed
    assert gate.check(Actor(2, frozenset({ELEVATED})), spec, target).allowed


def test_unrestricted_tag_and_read_commands_pass(gate):
    assert gate.check(Actor(2), _spec(mutates_tag=True), PolicyTarget(tag=_tag(restricted=False))).allowed
    assert gate.check(Actor(2), _spec(), PolicyTarget(tag=_tag())).allowed


def test_role_rule_runs_before_restricted_rule(gate):
    spec = _spec(permission=Permission.ELEVATED, mutates_tag=True)

    decision = gate.check(Actor(2), spec, PolicyTarget(tag=_tag(creator_id=1)))

    assert decision == Deny(DenyReason.INSUFFICIENT_ROLE)


def test_self_only_requires_own_member_and_opt_in_role(gate):
    spec = _spec(self_only=True)

    assert gate.check(Actor(1), spec, PolicyTarget(member_id=1, role_id=OPT_IN)).allowed
    assert gate.check(Actor(1), spec, PolicyTarget(member_id=2, role_id=OPT_IN)) == Deny(DenyReason.SELF_ONLY)
    assert gate.check(Actor(1), spec, PolicyTarget(member_id=1, role_id=ELEVATED)) == Deny(DenyReason.SELF_ONLY)
    # elevation does not lift the self-only rule
    assert gate.check(
        Actor(1, frozenset({ELEVATED})), spec, PolicyTarget(member_id=2, role_id=OPT_IN)
    ) == Deny(DenyReason.SELF_ONLY)


def test_self_only_without_configured_opt_in_role():
    gate = PermissionGate(ELEVATED, None, None)

    decision = gate.check(Actor(1), _spec(self_only=True), PolicyTarget(member_id=1, role_id=None))

    assert decision == Deny(DenyReason.SELF_ONLY)


def test_thread_owner_rule_checks_thread_lock_then_owner(gate):
    spec = _spec(thread_owner_only=True)

    assert gate.check(Actor(1), spec, PolicyTarget(thread=ThreadInfo(100, owner_id=1))).allowed
    assert gate.check(Actor(1), spec) == Deny(DenyReason.NOT_A_THREAD)
    assert gate.check(
        Actor(1), spec, PolicyTarget(thread=ThreadInfo(100, owner_id=1, locked=True))
    ) == Deny(DenyReason.THREAD_LOCKED)
    assert gate.check(Actor(1), spec, PolicyTarget(thread=ThreadInfo(100, owner_id=2))) == Deny(
        DenyReason.NOT_THREAD_OWNER
    )
    assert DenyReason.NOT_THREAD_OWNER.error_kind is ErrorKind.FORBIDDEN


def test_elevated_member_may_pin_anywhere(gate):
    moderator = Actor(1, frozenset({ELEVATED}))
    spec = _spec(thread_owner_only=True)

    assert gate.check(moderator, spec).allowed
    assert gate.check(moderator, spec, PolicyTarget(thread=ThreadInfo(100, owner_id=2, locked=True))).allowed

def test_persistence_disabled_denies_first():
    gate = PermissionGate(ELEVATED, RESTRICTED_CMDS, OPT_IN, persistence_enabled=False)
    spec = _spec(permission=Permission.ELEVATED, requires_persistence=True)

    decision = gate.check(Actor(1), spec)

    assert decision == Deny(DenyReason.FEATURE_DISABLED)
    assert decision.reason.error_kind is ErrorKind.FEATURE_DISABLED
    assert gate.check(Actor(1), _spec()).allowed


def test_gate_from_config(app_config):
    gate = PermissionGate.from_config(app_config)

    assert gate.elevated_role_id == 900
    assert gate.restricted_role_id == 901
    assert gate.opt_in_role_id == 902
    assert gate.persistence_enabled is True
