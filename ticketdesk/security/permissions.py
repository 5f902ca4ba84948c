"""Role → capability table used by callers to authorize ticket operations.

The ticket services never consult this module: callers check a permission
before invoking an operation.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType

from ticketdesk.models.enums import UserRole


class Permission(str, Enum):
    """Capability tags, ``<resource>:<action>``."""

    TICKETS_CREATE = "tickets:create"
    TICKETS_READ = "tickets:read"
    TICKETS_UPDATE = "tickets:update"
    TICKETS_DELETE = "tickets:delete"
    TICKETS_ASSIGN = "tickets:assign"
    TICKETS_READ_ALL = "tickets:read_all"

    CREATORS_CREATE = "creators:create"
    CREATORS_READ = "creators:read"
    CREATORS_UPDATE = "creators:update"
    CREATORS_DELETE = "creators:delete"
    CREATORS_READ_ALL = "creators:read_all"

    USERS_CREATE = "users:create"
    USERS_READ = "users:read"
    USERS_UPDATE = "users:update"
    USERS_DELETE = "users:delete"
    USERS_READ_ALL = "users:read_all"

    SETTINGS_READ = "settings:read"
    SETTINGS_UPDATE = "settings:update"

    REPORTS_VIEW = "reports:view"
    REPORTS_EXPORT = "reports:export"

    AUDIT_VIEW = "audit:view"


_P = Permission

ROLE_PERMISSIONS: MappingProxyType[UserRole, frozenset[Permission]] = MappingProxyType({
    UserRole.SUPER_ADMIN: frozenset(Permission),
    UserRole.MANAGER: frozenset({
        _P.TICKETS_CREATE, _P.TICKETS_READ, _P.TICKETS_UPDATE, _P.TICKETS_ASSIGN, _P.TICKETS_READ_ALL,
        _P.CREATORS_READ, _P.CREATORS_UPDATE, _P.CREATORS_READ_ALL,
        _P.USERS_READ, _P.USERS_READ_ALL,
        _P.REPORTS_VIEW, _P.REPORTS_EXPORT,
    }),
    UserRole.SCHEDULER: frozenset({
        _P.TICKETS_CREATE, _P.TICKETS_READ, _P.TICKETS_UPDATE, _P.TICKETS_READ_ALL,
        _P.CREATORS_READ, _P.CREATORS_UPDATE, _P.CREATORS_READ_ALL,
        _P.REPORTS_VIEW,
    }),
    UserRole.CHATTER: frozenset({
        _P.TICKETS_CREATE, _P.TICKETS_READ, _P.TICKETS_UPDATE,
        _P.CREATORS_READ,
    }),
    UserRole.CREATOR: frozenset({
        _P.TICKETS_READ, _P.TICKETS_UPDATE,
    }),
})


def actor_can_perform(role: UserRole | str, permission: Permission | str) -> bool:
    """Return True if `role` grants `permission`; unknown roles or tags grant nothing."""
    try:
        role = UserRole(role)
        permission = Permission(permission)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def permissions_for(role: UserRole | str) -> frozenset[Permission]:
    try:
        return ROLE_PERMISSIONS[UserRole(role)]
    except ValueError:
        return frozenset()
