"""Access code management API endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from classkey.database import get_db
from classkey.exceptions import ForbiddenException
from classkey.models.access_code import AccessCode, CodeKind, CodeStatus
from classkey.models.role import Role
from classkey.schemas.access_code import (
    CodeRegenerate,
    CodeUpdate,
    IssueRequest,
    RedemptionResponse,
)
from classkey.schemas.common import APIResponse, PaginationMeta
from classkey.services.access_code_service import get_access_code_service
from classkey.utils.permissions import PermissionChecker, require_role
from classkey.utils.tenant_context import (
    get_current_user_id,
    get_current_user_role,
    get_tenant_id_or_none,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _checker() -> PermissionChecker:
    return PermissionChecker(get_current_user_role(), get_current_user_id())


async def _get_managed_code(db: AsyncSession, code_id: UUID) -> AccessCode:
    access_code = await get_access_code_service().get_code(db, code_id)
    if not _checker().can_manage_code(access_code):
        raise ForbiddenException("You can only manage codes you issued")
    return access_code


@router.post("", response_model=APIResponse, status_code=201)
@require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
async def issue_code(
    data: IssueRequest,
    db: AsyncSession = Depends(get_db),
):
    """Issue a new invitation, teacher join link or enrollment code."""
    if not _checker().can_issue(data.kind):
        raise ForbiddenException("Teachers can only issue course enrollment codes")

    # Invitations default to the caller's school
    default_target = None if data.kind == CodeKind.COURSE_ENROLLMENT else get_tenant_id_or_none()

    issued = await get_access_code_service().issue_code(
        db,
        data,
        issuer_id=get_current_user_id(),
        default_target_id=default_target,
    )

    return APIResponse(
        status="success",
        data=issued,
        message="Code issued successfully",
    )


@router.get("", response_model=APIResponse)
@require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
async def list_codes(
    kind: CodeKind | None = None,
    status: CodeStatus | None = None,
    target_id: UUID | None = None,
    issuer_id: UUID | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List codes. Teachers only see the codes they issued."""
    service = get_access_code_service()

    if not _checker().is_admin:
        issuer_id = get_current_user_id()

    codes, total = await service.list_codes(
        db,
        issuer_id=issuer_id,
        target_id=target_id,
        kind=kind,
        status=status,
        page=page,
        page_size=page_size,
    )

    return APIResponse(
        status="success",
        data=[service.to_response(c) for c in codes],
        pagination=PaginationMeta.from_total(page, page_size, total),
    )


@router.get("/{code_id}", response_model=APIResponse)
@require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
async def get_code(
    code_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get a code by ID."""
    access_code = await _get_managed_code(db, code_id)
    return APIResponse(status="success", data=get_access_code_service().to_response(access_code))


@router.patch("/{code_id}", response_model=APIResponse)
@require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
async def update_code(
    code_id: UUID,
    data: CodeUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a code's metadata, usage limit, expiry or active flag."""
    service = get_access_code_service()
    await _get_managed_code(db, code_id)

    access_code = await service.update_code(db, code_id, data)

    return APIResponse(
        status="success",
        data=service.to_response(access_code),
        message="Code updated successfully",
    )


@router.post("/{code_id}/cancel", response_model=APIResponse)
@require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
async def cancel_code(
    code_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Cancel a pending code."""
    service = get_access_code_service()
    await _get_managed_code(db, code_id)

    access_code = await service.cancel_code(db, code_id)

    return APIResponse(
        status="success",
        data=service.to_response(access_code),
        message="Code cancelled",
    )


@router.post("/{code_id}/regenerate", response_model=APIResponse)
@require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
async def regenerate_code(
    code_id: UUID,
    data: CodeRegenerate | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Replace the string of an unredeemed code and restart its expiry."""
    await _get_managed_code(db, code_id)

    issued = await get_access_code_service().regenerate_code(
        db,
        code_id,
        expires_in_days=data.expires_in_days if data else None,
    )

    return APIResponse(
        status="success",
        data=issued,
        message="Code regenerated",
    )


@router.delete("/{code_id}", response_model=APIResponse)
@require_role(Role.SCHOOL_ADMIN)
async def delete_code(
    code_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Hard delete a code and its usage log."""
    await get_access_code_service().delete_code(db, code_id)
    return APIResponse(status="success", message="Code deleted")


@router.get("/{code_id}/redemptions", response_model=APIResponse)
@require_role(Role.SCHOOL_ADMIN, Role.TEACHER)
async def list_code_redemptions(
    code_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Get the usage log of a code."""
    await _get_managed_code(db, code_id)

    redemptions = await get_access_code_service().list_redemptions(db, code_id)

    return APIResponse(
        status="success",
        data=[RedemptionResponse.model_validate(r) for r in redemptions],
    )
