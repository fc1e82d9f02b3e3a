"""Pydantic schemas for the authenticated caller."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from learnhub.auth.permissions import UserRole, can_manage_course, is_admin


class AuthenticatedUser(BaseModel):
    """Pre-authenticated caller passed to every service operation."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    role: UserRole
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)

    def can_manage(self, instructor_id: UUID | None) -> bool:
        """Check if the user is the course instructor or an admin."""
        return can_manage_course(self.id, self.role, instructor_id)


# ==============================================================================
# Internal Schemas (not exposed in API)
# ==============================================================================


class TokenPayload(BaseModel):
    """Access token claims issued by the identity service."""

    sub: UUID
    role: UserRole
    type: str
    email: str | None = None
