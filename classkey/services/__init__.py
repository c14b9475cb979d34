"""Service layer for business logic."""

from classkey.services.access_code_service import AccessCodeService, get_access_code_service
from classkey.services.code_store import CodeStore
from classkey.services.redemption_guard import RedemptionGuard
from classkey.services.scope_validator import validate_scope

__all__ = [
    "AccessCodeService",
    "get_access_code_service",
    "CodeStore",
    "RedemptionGuard",
    "validate_scope",
]
