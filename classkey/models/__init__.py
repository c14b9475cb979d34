"""SQLAlchemy models for ClassKey."""

from classkey.models.base import Base, BaseModel, TimestampMixin
from classkey.models.role import Role
from classkey.models.access_code import AccessCode, CodeKind, CodeStatus
from classkey.models.redemption import CodeRedemption

__all__ = [
    # Base
    "Base",
    "BaseModel",
    "TimestampMixin",
    # Role
    "Role",
    # Access codes
    "AccessCode",
    "CodeKind",
    "CodeStatus",
    "CodeRedemption",
]
