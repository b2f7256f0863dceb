"""Authorization engine.

Every gated operation in the API names an *action*. A rule per action says
which roles pass the static role gate, whether the owner of the resource
passes as well, and which capability string from the ``role_permissions``
table grants it too. ``authorize`` is the single entry point; routers never
compare roles themselves.

Roles carry no hierarchy: a President does not inherit what a Secretary may
do. Anonymous callers never pass a gate.
"""
import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional

from sqlalchemy.orm import Session

from errors import Conflict, Forbidden
from models import Role, RolePermission

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class Identity:
    id: str
    role: Role
    is_active: bool = True
    username: Optional[str] = None


@dataclass(frozen=True)
class Rule:
    # None means "any authenticated account"
    roles: Optional[FrozenSet[Role]] = None
    owner_may: bool = False
    capability: Optional[str] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    action: str
    basis: str
    required_roles: Optional[FrozenSet[Role]] = None
    actual_role: Optional[Role] = None

    def __bool__(self):
        return self.allowed


ADMIN_ONLY = frozenset({Role.ADMIN})
EDITORS = frozenset({Role.ADMIN, Role.SECRETARY})
PUBLISHERS = frozenset({Role.ADMIN, Role.PRESIDENT})
STEWARDS = frozenset({Role.ADMIN, Role.PRESIDENT})

RULES = {
    # Events and attendance
    "events:create": Rule(EDITORS, capability="create_events"),
    "events:update": Rule(EDITORS, capability="update_events"),
    "events:delete": Rule(EDITORS, capability="delete_events"),
    "events:list_hosts": Rule(EDITORS),
    "events:check_in": Rule(EDITORS),
    "events:attendees": Rule(EDITORS),
    "events:rsvp": Rule(),
    # Blogs
    "blogs:create": Rule(EDITORS, capability="create_blogs"),
    "blogs:update": Rule(EDITORS, capability="update_blogs"),
    "blogs:delete": Rule(EDITORS, capability="delete_blogs"),
    "blogs:view_unapproved": Rule(ADMIN_ONLY),
    "blogs:approve": Rule(ADMIN_ONLY),
    # Timeline
    "timeline:read": Rule(),
    "timeline:create": Rule(PUBLISHERS),
    "timeline:update": Rule(PUBLISHERS),
    "timeline:delete": Rule(PUBLISHERS),
    # Profiles and connections
    "profile:create": Rule(),
    "profile:update": Rule(STEWARDS, owner_may=True),
    "profile:view_private": Rule(STEWARDS, owner_may=True, capability="view_private_profiles"),
    "connections:manage": Rule(),
    "users:network": Rule(),
    # Polls
    "polls:create": Rule(),
    "polls:vote": Rule(),
    "polls:delete": Rule(ADMIN_ONLY, owner_may=True),
    # Administration
    "users:list": Rule(ADMIN_ONLY),
    "users:update_role": Rule(ADMIN_ONLY),
    "users:activate": Rule(ADMIN_ONLY),
    "users:delete": Rule(ADMIN_ONLY),
    "roles:read": Rule(ADMIN_ONLY),
    "roles:update": Rule(ADMIN_ONLY),
}

DEFAULT_ROLE_PERMISSIONS = {
    Role.ADMIN: [WILDCARD],
    Role.PRESIDENT: ["view_private_profiles", "view_events", "view_blogs"],
    Role.SECRETARY: [
        "create_events", "update_events", "delete_events",
        "create_blogs", "update_blogs", "delete_blogs",
        "view_events", "view_blogs",
    ],
    Role.MEMBER: ["view_public_profiles", "view_events", "view_blogs", "create_own_blog"],
}


class AuthorizationEngine:
    """Decides whether an identity may perform an action.

    ``permission_lookup`` maps a role to its capability strings; it is the
    data-driven policy source merged on top of the static rules. Lookups are
    cached for the engine's lifetime, which is one request.
    """

    def __init__(self, permission_lookup: Optional[Callable[[Role], Iterable[str]]] = None):
        self._permission_lookup = permission_lookup
        self._granted = {}

    def permissions_for(self, role: Role) -> FrozenSet[str]:
        if self._permission_lookup is None:
            return frozenset()
        if role not in self._granted:
            self._granted[role] = frozenset(self._permission_lookup(role) or ())
        return self._granted[role]

    def authorize(self, identity: Optional[Identity], action: str, owner_id: Optional[str] = None) -> Decision:
        rule = RULES[action]
        if identity is None:
            return Decision(False, action, "anonymous", rule.roles, None)

        if rule.roles is None or identity.role in rule.roles:
            return Decision(True, action, "role", rule.roles, identity.role)

        if rule.owner_may and owner_id is not None and identity.id == owner_id:
            return Decision(True, action, "owner", rule.roles, identity.role)

        if rule.capability is not None:
            granted = self.permissions_for(identity.role)
            if WILDCARD in granted or rule.capability in granted:
                return Decision(True, action, "permission", rule.roles, identity.role)

        return Decision(False, action, "role_gate", rule.roles, identity.role)

    def enforce(self, identity: Optional[Identity], action: str, owner_id: Optional[str] = None) -> Decision:
        decision = self.authorize(identity, action, owner_id)
        if not decision.allowed:
            required = sorted(role.value for role in decision.required_roles or ())
            actual = decision.actual_role.value if decision.actual_role else None
            logger.info(f"Denied {action} for role {actual}; requires one of {required}")
            message = "Access denied"
            if required:
                message = f"This action requires one of the following roles: {', '.join(required)}"
            if RULES[action].owner_may:
                message += " (or ownership of the resource)"
            raise Forbidden(message, required=required, your_role=actual)
        return decision

    def can_view_private(self, identity: Optional[Identity], owner_id: str) -> bool:
        return self.authorize(identity, "profile:view_private", owner_id).allowed


def check_role_change(actor: Identity, target_id: str, new_role: Role):
    """An Admin may not move their own account off the Admin role."""
    if actor.id == target_id and new_role != Role.ADMIN:
        raise Conflict(
            "You cannot change your own role from Admin",
            reason="self_demotion",
            status_code=400,
        )


def check_activation_change(actor: Identity, target_id: str, is_active: bool):
    if actor.id == target_id and not is_active:
        raise Conflict(
            "You cannot deactivate your own account",
            reason="self_deactivation",
            status_code=400,
        )


def load_permissions(db: Session, role: Role):
    row = db.query(RolePermission).filter(RolePermission.role == role).first()
    return row.permissions if row else []


def engine_for(db: Session) -> AuthorizationEngine:
    return AuthorizationEngine(lambda role: load_permissions(db, role))


def seed_role_permissions(db: Session):
    """Insert the default permission list for every role that has none."""
    existing = {row.role for row in db.query(RolePermission).all()}
    created = 0
    for role, permissions in DEFAULT_ROLE_PERMISSIONS.items():
        if role not in existing:
            db.add(RolePermission(role=role, permissions=list(permissions)))
            created += 1
    if created:
        db.commit()
        logger.info(f"Seeded permissions for {created} role(s)")
