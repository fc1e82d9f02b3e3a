"""Role-based access control (RBAC) for LearnHub.

Hierarchical permission system:
- ADMIN (level 2): Moderates every course
- INSTRUCTOR (level 1): Authors and grades own courses
- STUDENT (level 0): Enrolls and progresses through courses

Ownership checks (is this the course's instructor, is this the student's own
enrollment) are done by the services on top of these role checks.
"""

from enum import Enum
from uuid import UUID


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


# Role hierarchy mapping (role -> permission level)
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 0,
    UserRole.INSTRUCTOR: 1,
    UserRole.ADMIN: 2,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Unknown roles get -1 so they never pass a permission check.
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return -1
    return ROLE_HIERARCHY.get(role, -1)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.INSTRUCTOR)
        True
        >>> has_permission(UserRole.STUDENT, UserRole.INSTRUCTOR)
        False
        >>> has_permission("admin", "student")
        True
    """
    level = get_role_level(user_role)
    return level >= 0 and level >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.ADMIN]


def is_instructor(role: UserRole | str) -> bool:
    """Check if role is INSTRUCTOR."""
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.INSTRUCTOR]


def is_student(role: UserRole | str) -> bool:
    """Check if role is STUDENT."""
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.STUDENT]


def can_manage_course(
    user_id: UUID, role: UserRole | str, instructor_id: UUID | None
) -> bool:
    """Check if the user may moderate a course (approve, grade, author).

    Admins manage every course; instructors only the ones they own.

    Examples:
        >>> from uuid import uuid4
        >>> owner = uuid4()
        >>> can_manage_course(owner, UserRole.INSTRUCTOR, owner)
        True
        >>> can_manage_course(uuid4(), UserRole.INSTRUCTOR, owner)
        False
    """
    if is_admin(role):
        return True
    return is_instructor(role) and instructor_id is not None and user_id == instructor_id
