"""
Role-based authorization.

Permissions are ``module:action`` strings. Each role declares only the
permissions it adds on top of the role below it; the effective set of a
role is the union of its own declarations and those of every lower role.
"""

from typing import Iterable

from reservapp.core.exceptions import ForbiddenException
from reservapp.models.role import ROLE_HIERARCHY, UserRole, role_rank

# Permissions each role adds to those it inherits
DECLARED_PERMISSIONS: dict[UserRole, frozenset[str]] = {
    UserRole.USER: frozenset(
        {
            "venues:read",
            "services:read",
            "reservations:read",
            "reservations:create",
            "payments:read",
            "payments:create",
            "receipts:read",
        }
    ),
    UserRole.EMPLOYEE: frozenset(
        {
            "dashboard:read",
            "reservations:update",
        }
    ),
    UserRole.MANAGER: frozenset(
        {
            "users:read",
            "venues:update",
            "services:create",
            "services:update",
            "payments:update",
            "reports:read",
            "reports:create",
        }
    ),
    UserRole.ADMIN: frozenset(
        {
            "users:create",
            "users:update",
            "venues:create",
            "reservations:cancel",
            "payments:refund",
            "payments:verify",
            "reports:export",
            "receipts:verify",
            "audit:read",
        }
    ),
    UserRole.SUPER_ADMIN: frozenset(
        {
            "users:delete",
            "users:manage_permissions",
            "venues:delete",
            "services:delete",
            "payments:bulk_update",
        }
    ),
}


def permission_key(module: str, action: str) -> str:
    return f"{module}:{action}"


def permissions_for(role: UserRole | str | None) -> frozenset[str]:
    """
    Effective permission set of a role.

    Unknown roles get the empty set.
    """
    rank = role_rank(role)
    granted: set[str] = set()
    for lower_role in ROLE_HIERARCHY[: rank + 1]:
        granted |= DECLARED_PERMISSIONS[lower_role]
    return frozenset(granted)


def is_authorized(role: UserRole | str | None, module: str, action: str) -> bool:
    """
    Check whether a role may perform ``action`` on ``module``.

    SUPER_ADMIN is authorized for everything, including permissions not in
    the table. Unknown roles are never authorized.
    """
    rank = role_rank(role)
    if rank < 0:
        return False
    if ROLE_HIERARCHY[rank] == UserRole.SUPER_ADMIN:
        return True
    return permission_key(module, action) in permissions_for(role)


def has_all_permissions(
    role: UserRole | str | None, permissions: Iterable[tuple[str, str]]
) -> bool:
    return all(is_authorized(role, module, action) for module, action in permissions)


def has_any_permission(
    role: UserRole | str | None, permissions: Iterable[tuple[str, str]]
) -> bool:
    return any(is_authorized(role, module, action) for module, action in permissions)


def require_permission(role: UserRole | str | None, module: str, action: str) -> None:
    """
    Raises:
        ForbiddenException: If the role lacks the permission
    """
    if not is_authorized(role, module, action):
        raise ForbiddenException(f"Access denied: missing {permission_key(module, action)} permission")


def can_assign_role(actor_role: UserRole | str | None, target_role: UserRole | str) -> bool:
    """
    Check whether ``actor_role`` may grant ``target_role`` to another user.

    SUPER_ADMIN assigns any role, ADMIN anything but SUPER_ADMIN and
    MANAGER only USER or EMPLOYEE. Lower roles assign nothing.
    """
    actor_rank = role_rank(actor_role)
    target_rank = role_rank(target_role)
    if actor_rank < 0 or target_rank < 0:
        return False

    actor = ROLE_HIERARCHY[actor_rank]
    if actor == UserRole.SUPER_ADMIN:
        return True
    if actor == UserRole.ADMIN:
        return ROLE_HIERARCHY[target_rank] != UserRole.SUPER_ADMIN
    if actor == UserRole.MANAGER:
        return ROLE_HIERARCHY[target_rank] in (UserRole.USER, UserRole.EMPLOYEE)
    return False
