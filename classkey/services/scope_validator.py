"""Scope validation shared by every kind of code."""

import logging

from classkey.exceptions import EmailMismatch, RoleMismatch, ScopeMismatch
from classkey.models.role import Role
from classkey.schemas.access_code import CodeScope, RedemptionContext

logger = logging.getLogger(__name__)


def validate_scope(scope: CodeScope, context: RedemptionContext) -> None:
    """Check that a redemption request matches what the code was scoped for.

    Checks run in a fixed order (email, role, target) and each failure is a
    distinct error so the caller can tell the user exactly what is wrong.

    Raises:
        EmailMismatch: The code is bound to another email address
        RoleMismatch: The code is for a different role
        ScopeMismatch: The code grants access to a different school or course
    """
    if scope.required_email:
        if not context.email or context.normalized_email != scope.required_email.strip().lower():
            logger.info(f"Email mismatch for {scope.kind.value} code on target {scope.target_id}")
            raise EmailMismatch()

    required_role = Role.normalize(scope.required_role)
    if required_role:
        if Role.normalize(context.role) != required_role:
            logger.info(f"Role mismatch: code requires {required_role}, redeemer claimed {context.role}")
            if required_role == Role.STUDENT.value:
                raise RoleMismatch("Only students can use this code")
            if required_role == Role.TEACHER.value:
                raise RoleMismatch("This link is only for teachers")
            raise RoleMismatch()

    if context.target_id != scope.target_id:
        logger.info(f"Target mismatch: code is for {scope.target_id}, request was for {context.target_id}")
        raise ScopeMismatch()
