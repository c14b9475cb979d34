"""Role-based permission decorators and utilities."""

import uuid
from functools import wraps
from typing import Callable

from classkey.exceptions import ForbiddenException, UnauthorizedException
from classkey.models.access_code import AccessCode, CodeKind
from classkey.models.role import Role
from classkey.utils.tenant_context import get_current_user_id_or_none, get_current_user_role


def require_role(*allowed_roles: Role | str) -> Callable:
    """Decorator that enforces role-based access control.

    Usage:
        @router.post("/codes")
        @require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
        async def issue_code(...):
            ...

    Args:
        *allowed_roles: Roles that are allowed to access the endpoint

    Returns:
        Decorator function
    """
    role_values = {Role.normalize(role) for role in allowed_roles}

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            if get_current_user_id_or_none() is None:
                raise UnauthorizedException()

            current_role = Role.normalize(get_current_user_role())

            # Super admins can access everything
            if current_role == Role.SUPER_ADMIN.value:
                return await func(*args, **kwargs)

            if current_role not in role_values:
                raise ForbiddenException()

            return await func(*args, **kwargs)

        return wrapper

    return decorator


class PermissionChecker:
    """Utility class for checking permissions programmatically."""

    def __init__(self, user_role: str | None, user_id: uuid.UUID | None = None):
        self.role = Role.normalize(user_role)
        self.user_id = user_id

    @property
    def is_admin(self) -> bool:
        """Check if user is a school or super admin."""
        return self.role in (Role.SUPER_ADMIN.value, Role.SCHOOL_ADMIN.value)

    @property
    def is_teacher(self) -> bool:
        """Check if user is teacher."""
        return self.role == Role.TEACHER.value

    def can_issue(self, kind: CodeKind) -> bool:
        """Admins issue every kind of code, teachers only enrollment codes."""
        if self.is_admin:
            return True
        return self.is_teacher and kind == CodeKind.COURSE_ENROLLMENT

    def can_manage_code(self, access_code: AccessCode) -> bool:
        """Admins manage every code, teachers only the codes they issued."""
        if self.is_admin:
            return True
        return self.is_teacher and access_code.issuer_id == self.user_id
