"""Platform roles referenced by code scopes and permission checks."""

from enum import Enum


class Role(str, Enum):
    """User roles with hierarchical permissions."""

    SUPER_ADMIN = "SUPER_ADMIN"  # Platform-wide admin
    SCHOOL_ADMIN = "SCHOOL_ADMIN"  # Issues every kind of code for their school
    TEACHER = "TEACHER"  # Issues enrollment codes for their courses
    STUDENT = "STUDENT"

    @classmethod
    def normalize(cls, value: "Role | str | None") -> str | None:
        """Return the canonical uppercase role name, or None."""
        if value is None:
            return None
        if isinstance(value, Role):
            return value.value
        value = value.strip()
        return value.upper() if value else None
