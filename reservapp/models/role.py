"""User role enum for role-based access control."""

from enum import Enum as PyEnum


class UserRole(str, PyEnum):
    """
    Platform roles, ordered from least to most privileged.

    Role Hierarchy (lowest to highest):
    0. USER - Customer; books services and pays for own reservations
    1. EMPLOYEE - Venue staff; handles day-to-day reservations
    2. MANAGER - Venue manager; services, payment status, reports
    3. ADMIN - Platform administration, refunds, audit
    4. SUPER_ADMIN - Everything, including permission management

    A role inherits every permission of the roles below it.
    """

    USER = "USER"
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


ROLE_HIERARCHY: tuple[UserRole, ...] = (
    UserRole.USER,
    UserRole.EMPLOYEE,
    UserRole.MANAGER,
    UserRole.ADMIN,
    UserRole.SUPER_ADMIN,
)


def role_rank(role: UserRole | str | None) -> int:
    """
    Position of a role in the hierarchy.

    Unrecognized values rank -1, below USER, so every check against them fails.
    """
    try:
        return ROLE_HIERARCHY.index(UserRole(role))
    except (ValueError, TypeError):
        return -1
