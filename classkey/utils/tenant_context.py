"""Request context management using contextvars.

This module provides context variables for tracking the caller's school
(tenant), user id, role and email throughout a request lifecycle.
"""

import contextvars
import uuid

from classkey.exceptions import UserContextError

# Context variables for request-scoped data
_tenant_id: contextvars.ContextVar[uuid.UUID | None] = contextvars.ContextVar(
    "tenant_id", default=None
)
_current_user_id: contextvars.ContextVar[uuid.UUID | None] = contextvars.ContextVar(
    "current_user_id", default=None
)
_current_user_role: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "current_user_role", default=None
)
_current_user_email: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "current_user_email", default=None
)


# === Tenant Context ===

def get_tenant_id_or_none() -> uuid.UUID | None:
    """Get the current school (tenant) ID or None if not set.

    Returns:
        The current tenant's UUID or None
    """
    return _tenant_id.get()


def set_tenant_id(tid: uuid.UUID | None) -> None:
    """Set the current tenant ID.

    Args:
        tid: Tenant UUID to set (or None to clear)
    """
    _tenant_id.set(tid)


# === User Context ===

def get_current_user_id() -> uuid.UUID:
    """Get the current user ID.

    Returns:
        The current user's UUID

    Raises:
        UserContextError: If user context is not set
    """
    uid = _current_user_id.get()
    if uid is None:
        raise UserContextError("User context is not set")
    return uid


def get_current_user_id_or_none() -> uuid.UUID | None:
    """Get the current user ID or None for anonymous requests."""
    return _current_user_id.get()


def set_current_user_id(uid: uuid.UUID | None) -> None:
    """Set the current user ID.

    Args:
        uid: User UUID to set (or None to clear)
    """
    _current_user_id.set(uid)


def get_current_user_email() -> str | None:
    return _current_user_email.get()


def set_current_user_email(email: str | None) -> None:
    _current_user_email.set(email)


# === Role Context ===

def get_current_user_role() -> str | None:
    """Get the current user's role.

    Returns:
        The current user's role string or None
    """
    return _current_user_role.get()


def set_current_user_role(role: str | None) -> None:
    """Set the current user's role.

    Args:
        role: Role string to set (or None to clear)
    """
    _current_user_role.set(role)


# === Utility Functions ===

def clear_all_context() -> None:
    """Clear all context variables.

    Call this at the end of each request to prevent context leakage.
    """
    _tenant_id.set(None)
    _current_user_id.set(None)
    _current_user_role.set(None)
    _current_user_email.set(None)
