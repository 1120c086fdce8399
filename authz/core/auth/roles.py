"""
Role hierarchy.

Roles are a closed set, each mapped to a unique numeric level
(higher = more authority). "A can manage B" iff level(A) > level(B).

Usage:
    hierarchy = RoleHierarchy()
    hierarchy.level(Role.ADMIN)                         # 90
    hierarchy.can_manage(Role.ADMIN, Role.EDITOR)       # True
    hierarchy.can_manage(Role.ADMIN, Role.SUPER_ADMIN)  # False
"""

from enum import Enum

from authz.core.errors import UnknownRole


class Role(str, Enum):
    """System roles."""
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    EDITOR = "EDITOR"
    USER_MANAGER = "USER_MANAGER"
    EVENT_MANAGER = "EVENT_MANAGER"
    VIEWER = "VIEWER"
    CLIENT = "CLIENT"
    GUEST = "GUEST"


# Role hierarchy (higher number = more authority)
ROLE_LEVELS: dict[Role, int] = {
    Role.SUPER_ADMIN: 100,
    Role.ADMIN: 90,
    Role.MODERATOR: 70,
    Role.EDITOR: 60,
    Role.USER_MANAGER: 55,
    Role.EVENT_MANAGER: 50,
    Role.VIEWER: 30,
    Role.CLIENT: 20,
    Role.GUEST: 10,
}

ROLE_DESCRIPTIONS: dict[Role, str] = {
    Role.SUPER_ADMIN: "Full system access",
    Role.ADMIN: "General administrator",
    Role.MODERATOR: "Content moderator",
    Role.EDITOR: "Content editor",
    Role.USER_MANAGER: "User management specialist",
    Role.EVENT_MANAGER: "Event management specialist",
    Role.VIEWER: "Extended read-only access",
    Role.CLIENT: "Standard user",
    Role.GUEST: "Guest with very limited access",
}

# Level of a user with no active role assignment (implicit GUEST)
IMPLICIT_LEVEL = 0


def _validate_levels() -> None:
    missing = set(Role) - set(ROLE_LEVELS)
    if missing:
        raise RuntimeError(f"Roles without a level: {sorted(r.value for r in missing)}")
    levels = list(ROLE_LEVELS.values())
    if len(set(levels)) != len(levels):
        raise RuntimeError("Role levels must be unique")
    if min(levels) <= IMPLICIT_LEVEL:
        raise RuntimeError("Role levels must be above the implicit level")


_validate_levels()


def parse_role(value: "Role | str") -> Role:
    """
    Convert a stored value into a Role.

    Raises:
        UnknownRole: If the value does not name a defined role
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).upper())
    except ValueError:
        raise UnknownRole(f"Undefined role: {value!r}") from None


class RoleHierarchy:
    """
    Static role hierarchy.

    Configuration:
        allow_super_admin_peers: Let a SUPER_ADMIN manage another SUPER_ADMIN
            (themselves included). Off by default so a script cannot demote
            the last super admin.
    """

    def __init__(self, allow_super_admin_peers: bool = False):
        self.allow_super_admin_peers = allow_super_admin_peers

    @staticmethod
    def level(role: Role) -> int:
        """Get the numeric level of a role."""
        return ROLE_LEVELS[role]

    @staticmethod
    def outranks(actor_level: int, target_level: int) -> bool:
        return actor_level > target_level

    def can_manage(self, actor_role: Role, target_role: Role) -> bool:
        """Check if a holder of actor_role may manage a holder of target_role."""
        if actor_role is Role.SUPER_ADMIN:
            return target_role is not Role.SUPER_ADMIN or self.allow_super_admin_peers
        return self.outranks(self.level(actor_role), self.level(target_role))

    def can_manage_levels(
        self,
        actor_role: Role,
        actor_level: int,
        target_role: Role,
        target_level: int,
    ) -> bool:
        """
        Same as can_manage, with explicit levels.

        Used for effective permission sets, where a user without any
        assignment carries the GUEST role at the implicit level 0.
        """
        if actor_role is Role.SUPER_ADMIN and actor_level == self.level(Role.SUPER_ADMIN):
            return target_role is not Role.SUPER_ADMIN or self.allow_super_admin_peers
        return self.outranks(actor_level, target_level)

    @staticmethod
    def roles_by_level() -> list[Role]:
        """All roles, highest level first."""
        return sorted(ROLE_LEVELS, key=ROLE_LEVELS.__getitem__, reverse=True)
