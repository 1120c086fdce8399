"""
Permission catalogue and default role permissions.

Permissions are (resource, action) pairs identified as "resource.action",
e.g. "events.delete". The default table below is static process data,
not user data; stores may override it per role (see GrantStore.set_role_defaults).
"""

from dataclasses import dataclass
from enum import Enum

from authz.core.auth.roles import Role
from authz.core.errors import UnknownPermission


class PermissionAction(str, Enum):
    """Actions a permission can grant."""
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MANAGE = "MANAGE"
    MODERATE = "MODERATE"
    EXECUTE = "EXECUTE"


# Resource types known to the system
RESOURCES: tuple[str, ...] = ("users", "events", "news", "forum", "donations", "admin")


@dataclass(frozen=True)
class Permission:
    """A (resource, action) pair."""
    resource: str
    action: PermissionAction

    @property
    def id(self) -> str:
        """Get permission as 'resource.action' string."""
        return permission_id(self.resource, self.action)

    @classmethod
    def parse(cls, value: str) -> "Permission":
        """
        Parse a 'resource.action' permission id.

        Raises:
            UnknownPermission: If the id is malformed or the action is undefined
        """
        resource, sep, action = value.rpartition(".")
        if not sep or not resource or not action:
            raise UnknownPermission(f"Malformed permission id: {value!r}")
        return cls(resource=resource, action=parse_action(action))

    def __str__(self) -> str:
        return self.id


def parse_action(value: "PermissionAction | str") -> PermissionAction:
    """
    Convert a stored or requested value into a PermissionAction.

    Raises:
        UnknownPermission: If the action is undefined
    """
    if isinstance(value, PermissionAction):
        return value
    try:
        return PermissionAction(str(value).upper())
    except ValueError:
        raise UnknownPermission(f"Undefined action: {value!r}") from None


def permission_id(resource: str, action: "PermissionAction | str") -> str:
    """Build the canonical permission id for a (resource, action) pair."""
    return f"{resource}.{parse_action(action).value.lower()}"


def normalize_permission_id(value: str) -> str:
    """Validate a permission id and return its canonical form."""
    return Permission.parse(value).id


def all_permissions() -> list[Permission]:
    """Every permission of the catalogue (resource x action)."""
    return [
        Permission(resource=resource, action=action)
        for resource in RESOURCES
        for action in PermissionAction
    ]


def _ids(*values: str) -> frozenset[str]:
    return frozenset(normalize_permission_id(v) for v in values)


# Default permissions per role. SUPER_ADMIN is an implicit wildcard and
# carries no explicit entries.
DEFAULT_ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.SUPER_ADMIN: frozenset(),
    Role.ADMIN: _ids(
        "users.read", "users.update", "users.delete", "users.manage",
        "events.read", "events.create", "events.update", "events.delete", "events.manage",
        "news.read", "news.create", "news.update", "news.delete", "news.moderate",
        "forum.read", "forum.moderate", "forum.manage",
        "donations.read", "donations.manage",
        "admin.read", "admin.execute",
    ),
    Role.MODERATOR: _ids(
        "users.read",
        "events.read", "events.moderate",
        "news.read", "news.moderate",
        "forum.read", "forum.moderate",
        "donations.read",
    ),
    Role.EDITOR: _ids(
        "events.read", "events.create", "events.update",
        "news.read", "news.create", "news.update",
        "forum.read", "forum.create", "forum.update",
    ),
    Role.USER_MANAGER: _ids(
        "users.read", "users.update", "users.manage",
        "events.read",
        "news.read",
        "forum.read", "forum.moderate",
    ),
    Role.EVENT_MANAGER: _ids(
        "events.read", "events.create", "events.update", "events.manage",
        "news.read",
        "forum.read",
    ),
    Role.VIEWER: _ids(
        "events.read",
        "news.read",
        "forum.read",
        "donations.read",
    ),
    Role.CLIENT: _ids(
        "events.read",
        "news.read",
        "forum.read", "forum.create",
        "donations.create",
    ),
    Role.GUEST: _ids(
        "events.read",
        "news.read",
    ),
}
