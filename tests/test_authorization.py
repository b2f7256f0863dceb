"""Unit tests for the authorization engine."""

import pytest

from authorization import (
    DEFAULT_ROLE_PERMISSIONS, AuthorizationEngine, Identity,
    check_activation_change, check_role_change, engine_for, load_permissions,
)
from errors import Conflict, Forbidden
from models import Role, RolePermission


def _identity(role, user_id="USR001"):
    return Identity(id=user_id, role=role)


def test_role_gate_is_plain_membership():
    engine = AuthorizationEngine()

    assert engine.authorize(_identity(Role.SECRETARY), "events:create").allowed
    assert engine.authorize(_identity(Role.ADMIN), "events:create").allowed
    # No hierarchy: President does not inherit Secretary's rights
    assert not engine.authorize(_identity(Role.PRESIDENT), "events:create").allowed
    assert not engine.authorize(_identity(Role.MEMBER), "events:create").allowed

    assert engine.authorize(_identity(Role.PRESIDENT), "timeline:create").allowed
    assert not engine.authorize(_identity(Role.SECRETARY), "timeline:create").allowed


def test_anonymous_never_passes():
    engine = AuthorizationEngine(lambda role: ["*"])

    decision = engine.authorize(None, "polls:vote")
    assert not decision.allowed
    assert decision.basis == "anonymous"
    assert not engine.authorize(None, "profile:view_private", owner_id="USR001").allowed


def test_open_actions_allow_any_account():
    engine = AuthorizationEngine()
    for role in Role:
        assert engine.authorize(_identity(role), "polls:create").allowed
        assert engine.authorize(_identity(role), "timeline:read").allowed


def test_ownership_gate():
    engine = AuthorizationEngine()
    owner = _identity(Role.MEMBER, "USR002")
    other = _identity(Role.MEMBER, "USR003")

    decision = engine.authorize(owner, "profile:update", owner_id="USR002")
    assert decision.allowed and decision.basis == "owner"
    assert not engine.authorize(other, "profile:update", owner_id="USR002").allowed
    assert engine.authorize(_identity(Role.PRESIDENT), "profile:update", owner_id="USR002").allowed
    assert engine.authorize(_identity(Role.ADMIN), "profile:update", owner_id="USR002").allowed
    assert not engine.authorize(_identity(Role.SECRETARY), "profile:update", owner_id="USR002").allowed


def test_private_visibility_rule():
    engine = AuthorizationEngine()

    assert engine.can_view_private(_identity(Role.MEMBER, "USR005"), "USR005")
    assert engine.can_view_private(_identity(Role.ADMIN), "USR005")
    assert engine.can_view_private(_identity(Role.PRESIDENT), "USR005")
    assert not engine.can_view_private(_identity(Role.SECRETARY), "USR005")
    assert not engine.can_view_private(_identity(Role.MEMBER, "USR006"), "USR005")
    assert not engine.can_view_private(None, "USR005")


def test_permission_table_grants_declared_capabilities():
    granted = {Role.MEMBER: ["create_events"]}
    engine = AuthorizationEngine(lambda role: granted.get(role, []))

    decision = engine.authorize(_identity(Role.MEMBER), "events:create")
    assert decision.allowed
    assert decision.basis == "permission"
    # Actions without a capability are not widened by the table
    assert not engine.authorize(_identity(Role.MEMBER), "events:check_in").allowed


def test_permission_lookup_is_cached():
    calls = []

    def lookup(role):
        calls.append(role)
        return []

    engine = AuthorizationEngine(lookup)
    engine.authorize(_identity(Role.MEMBER), "events:create")
    engine.authorize(_identity(Role.MEMBER), "blogs:create")
    assert calls == [Role.MEMBER]


def test_enforce_reports_required_and_actual_role():
    engine = AuthorizationEngine()

    with pytest.raises(Forbidden) as excinfo:
        engine.enforce(_identity(Role.MEMBER), "blogs:create")

    body = excinfo.value.to_dict()
    assert body["error"] == "forbidden"
    assert body["required"] == ["Admin", "Secretary"]
    assert body["your_role"] == "Member"


def test_self_demotion_guard():
    actor = _identity(Role.ADMIN, "USR001")

    with pytest.raises(Conflict) as excinfo:
        check_role_change(actor, "USR001", Role.MEMBER)
    assert excinfo.value.reason == "self_demotion"
    assert excinfo.value.status_code == 400

    check_role_change(actor, "USR001", Role.ADMIN)
    check_role_change(actor, "USR002", Role.MEMBER)


def test_self_deactivation_guard():
    actor = _identity(Role.ADMIN, "USR001")
    with pytest.raises(Conflict):
        check_activation_change(actor, "USR001", False)
    check_activation_change(actor, "USR001", True)


def test_seeded_permissions_are_loaded_from_the_table(db):
    assert load_permissions(db, Role.ADMIN) == ["*"]
    assert set(load_permissions(db, Role.SECRETARY)) == set(DEFAULT_ROLE_PERMISSIONS[Role.SECRETARY])

    row = db.query(RolePermission).filter(RolePermission.role == Role.PRESIDENT).first()
    row.permissions = ["view_private_profiles", "create_blogs"]
    db.commit()

    engine = engine_for(db)
    assert engine.authorize(_identity(Role.PRESIDENT), "blogs:create").allowed
    assert not engine.authorize(_identity(Role.PRESIDENT), "events:create").allowed
