"""Code validation and redemption API endpoints.

Both endpoints are public. A bearer token, when present, is the only source
of the redeemer's identity; otherwise the email and role sent in the body
are used.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from classkey.database import get_db
from classkey.exceptions import ValidationException
from classkey.schemas.access_code import RedeemRequest, RedemptionContext
from classkey.schemas.common import APIResponse, ErrorResponse
from classkey.services.access_code_service import get_access_code_service
from classkey.utils.tenant_context import (
    get_current_user_email,
    get_current_user_id_or_none,
    get_current_user_role,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    }
)


def build_context(data: RedeemRequest) -> RedemptionContext:
    """Describe the redeemer from the token, or from the body when anonymous."""
    redeemer_id = get_current_user_id_or_none()
    if redeemer_id is not None:
        email = get_current_user_email()
        role = get_current_user_role()
    else:
        email = data.email
        role = data.claimed_role

    if redeemer_id is None and not email:
        raise ValidationException([{"field": "email", "message": "Email is required when not signed in"}])

    return RedemptionContext(
        redeemer_id=redeemer_id,
        email=email,
        role=role,
        target_id=data.target_id,
    )


@router.post("/validate", response_model=APIResponse)
async def validate_code(
    data: RedeemRequest,
    db: AsyncSession = Depends(get_db),
):
    """Check that a code can be redeemed without using it."""
    preview = await get_access_code_service().preview(db, data.code, build_context(data))

    return APIResponse(
        status="success",
        data=preview,
        message=preview.message,
    )


@router.post("", response_model=APIResponse)
async def redeem_code(
    data: RedeemRequest,
    db: AsyncSession = Depends(get_db),
):
    """Redeem a code. The returned grant tells the caller what to provision."""
    grant = await get_access_code_service().redeem(db, data.code, build_context(data))

    message = "You have already redeemed this code" if grant.already_redeemed else "Code redeemed successfully"
    return APIResponse(
        status="success",
        data=grant,
        message=message,
    )
