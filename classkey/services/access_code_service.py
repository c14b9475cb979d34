"""Access code issuance and management service."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classkey.config import get_settings
from classkey.exceptions import (
    ConflictException,
    GenerationExhausted,
    NotFoundException,
    ValidationException,
)
from classkey.models.access_code import AccessCode, CodeKind, CodeStatus
from classkey.models.redemption import CodeRedemption
from classkey.models.role import Role
from classkey.schemas.access_code import (
    CodePreview,
    CodeResponse,
    CodeScope,
    CodeUpdate,
    Grant,
    IssuedCode,
    IssueRequest,
    RedemptionContext,
)
from classkey.services.code_store import CodeStore
from classkey.services.redemption_guard import RedemptionGuard
from classkey.utils.code_generator import generate_unique
from classkey.utils.expiry import compute_expiry, ensure_utc, is_expired, utc_now
from classkey.utils.status_machine import ensure_transition, is_terminal

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_REQUIRED_ROLES = {
    CodeKind.SCHOOL_INVITATION: Role.STUDENT.value,
    CodeKind.COURSE_ENROLLMENT: Role.STUDENT.value,
    CodeKind.TEACHER_JOIN: Role.TEACHER.value,
}


class AccessCodeService:
    """Service for issuing, managing and redeeming access codes."""

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        tolerance: timedelta | None = None,
    ):
        self.clock = clock
        self.tolerance = settings.expiry_tolerance if tolerance is None else tolerance

    # === Issuance ===

    async def issue_code(
        self,
        db: AsyncSession,
        request: IssueRequest,
        issuer_id: UUID,
        default_target_id: UUID | None = None,
    ) -> IssuedCode:
        """Create a new code for the given scope and return what to share.

        Invitations and teacher join links are bound to one email, can be used
        once and expire after ``invitation_code_expiry_days`` unless told
        otherwise. Enrollment codes default to unlimited uses and no expiry.
        """
        kind = request.kind
        target_id = request.target_id or default_target_id
        if target_id is None:
            raise ValidationException([{"field": "target_id", "message": "A target school or course is required"}])

        email = request.required_email.strip().lower() if request.required_email else None
        if kind.is_single_redeemer:
            if not email:
                raise ValidationException([{"field": "required_email", "message": "Email is required for invitations"}])
            if request.max_uses not in (None, 1):
                raise ValidationException([{"field": "max_uses", "message": "Invitations can only be used once"}])
            max_uses = 1
            lead = request.lead_duration or settings.invitation_lead
        else:
            max_uses = request.max_uses
            lead = request.lead_duration

        required_role = Role.normalize(request.required_role) or DEFAULT_REQUIRED_ROLES[kind]
        if required_role not in {role.value for role in Role}:
            raise ValidationException([{"field": "required_role", "message": f"Unknown role: {request.required_role}"}])

        now = self.clock()
        expires_at = compute_expiry(now, lead)
        store = CodeStore(db)

        if email:
            pending = await store.find_pending_for_email(kind, target_id, email)
            if any(not is_expired(now, c.expires_at, self.tolerance) for c in pending):
                raise ConflictException("A pending invitation already exists for this email")

        def build(code: str) -> Awaitable[AccessCode]:
            return store.add(
                AccessCode(
                    code=code,
                    kind=kind.value,
                    target_id=target_id,
                    required_role=required_role,
                    required_email=email,
                    issuer_id=issuer_id,
                    title=request.title,
                    message=request.message,
                    is_active=True,
                    created_at=now,
                    expires_at=expires_at,
                    max_uses=max_uses,
                    current_uses=0,
                    status=CodeStatus.PENDING.value,
                )
            )

        access_code = await self._with_fresh_code(store, build)
        await store.commit()

        logger.info(f"Issued {kind.value} code {access_code.id} for target {target_id} by {issuer_id}")
        return self.to_issued(access_code)

    async def regenerate_code(
        self,
        db: AsyncSession,
        code_id: UUID,
        expires_in_days: int | None = None,
    ) -> IssuedCode:
        """Replace the string of an unredeemed code and restart its expiry."""
        store = CodeStore(db)
        access_code = await self._get_or_404(store, code_id)

        if not access_code.is_pending:
            raise ConflictException("Only pending codes can be regenerated")
        if await store.count_redemptions(code_id) > 0:
            raise ConflictException("Cannot regenerate a code that has already been redeemed")

        now = self.clock()
        if expires_in_days:
            lead = timedelta(days=expires_in_days)
        else:
            lead = self._original_lead(access_code)

        async def reassign(code: str) -> AccessCode:
            current = await store.get(code_id, fresh=True)
            current.code = code
            current.expires_at = compute_expiry(now, lead)
            await store.flush()
            return current

        access_code = await self._with_fresh_code(store, reassign)
        await store.commit()

        logger.info(f"Code {code_id} regenerated with a new string")
        return self.to_issued(access_code)

    async def _with_fresh_code(
        self,
        store: CodeStore,
        apply: Callable[[str], Awaitable[AccessCode]],
    ) -> AccessCode:
        # A concurrent issuer may persist the same string between our check and our insert
        for attempt in range(1, settings.code_insert_attempts + 1):
            code = await generate_unique(
                store.code_exists,
                max_attempts=settings.code_generation_max_attempts,
                alphabet=settings.code_alphabet,
                length=settings.code_length,
            )
            try:
                return await apply(code)
            except IntegrityError:
                await store.rollback()
                logger.warning(f"Code string taken concurrently (attempt {attempt}/{settings.code_insert_attempts})")

        raise GenerationExhausted()

    # === Management ===

    async def get_code(self, db: AsyncSession, code_id: UUID) -> AccessCode:
        """Get a code by ID."""
        return await self._get_or_404(CodeStore(db), code_id)

    async def list_codes(
        self,
        db: AsyncSession,
        issuer_id: UUID | None = None,
        target_id: UUID | None = None,
        kind: CodeKind | None = None,
        status: CodeStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[AccessCode], int]:
        """List codes with optional filters."""
        return await CodeStore(db).list_codes(
            issuer_id=issuer_id,
            target_id=target_id,
            kind=kind,
            status=status,
            offset=(page - 1) * page_size,
            limit=page_size,
        )

    async def update_code(self, db: AsyncSession, code_id: UUID, data: CodeUpdate) -> AccessCode:
        """Apply the fields present in ``data`` to a code."""
        store = CodeStore(db)
        access_code = await self._get_or_404(store, code_id)
        fields = data.model_fields_set
        now = self.clock()

        if is_terminal(access_code.status) and fields - {"title", "message"}:
            raise ConflictException(f"A {access_code.status.lower()} code can no longer be changed")

        if "max_uses" in fields:
            if access_code.code_kind.is_single_redeemer:
                raise ValidationException([{"field": "max_uses", "message": "Invitations can only be used once"}])
            if not await store.set_max_uses(code_id, data.max_uses, now):
                current = await store.get(code_id, fresh=True)
                if current is None:
                    raise NotFoundException("Code")
                if is_terminal(current.status):
                    raise ConflictException(f"A {current.status.lower()} code can no longer be changed")
                raise ValidationException(
                    [
                        {
                            "field": "max_uses",
                            "message": f"Must be greater than the {current.current_uses} uses already taken",
                        }
                    ]
                )
            access_code = await store.get(code_id, fresh=True)

        if "expires_in_days" in fields:
            if not data.expires_in_days:
                if access_code.code_kind.is_single_redeemer:
                    raise ValidationException(
                        [{"field": "expires_in_days", "message": "Invitations must have an expiry"}]
                    )
                access_code.expires_at = None
            else:
                access_code.expires_at = compute_expiry(now, timedelta(days=data.expires_in_days))

        if "is_active" in fields and data.is_active is not None:
            access_code.is_active = data.is_active
        if "title" in fields:
            access_code.title = data.title
        if "message" in fields:
            access_code.message = data.message

        await store.flush()
        await store.commit()

        logger.info(f"Code {code_id} updated ({', '.join(sorted(fields)) or 'no fields'})")
        return access_code

    async def cancel_code(self, db: AsyncSession, code_id: UUID) -> AccessCode:
        """Cancel a pending code. Cancelled codes can never be redeemed again."""
        store = CodeStore(db)
        access_code = await self._get_or_404(store, code_id)
        ensure_transition(access_code.status, CodeStatus.CANCELLED)

        now = self.clock()
        moved = await store.transition_status(
            code_id,
            CodeStatus.PENDING,
            CodeStatus.CANCELLED,
            cancelled_at=now,
            updated_at=now,
        )
        if not moved:
            # Consumed or cancelled by someone else since we read it
            current = await store.get(code_id, fresh=True)
            ensure_transition(current.status, CodeStatus.CANCELLED)
            raise ConflictException("The code changed while it was being cancelled, please retry")

        await store.commit()
        logger.info(f"Code {code_id} cancelled")
        return await store.get(code_id, fresh=True)

    async def delete_code(self, db: AsyncSession, code_id: UUID) -> None:
        """Administratively delete a code and its usage log."""
        store = CodeStore(db)
        access_code = await self._get_or_404(store, code_id)
        await store.delete(access_code)
        await store.commit()
        logger.info(f"Code {code_id} deleted")

    async def list_redemptions(self, db: AsyncSession, code_id: UUID) -> list[CodeRedemption]:
        """Get the usage log of a code."""
        store = CodeStore(db)
        await self._get_or_404(store, code_id)
        return await store.list_redemptions(code_id)

    # === Redemption ===

    async def preview(self, db: AsyncSession, code: str, context: RedemptionContext) -> CodePreview:
        """Validate a code for a redeemer without using it."""
        return await RedemptionGuard(db, clock=self.clock, tolerance=self.tolerance).preview(code, context)

    async def redeem(self, db: AsyncSession, code: str, context: RedemptionContext) -> Grant:
        """Redeem a code. Provisioning from the grant is up to the caller."""
        return await RedemptionGuard(db, clock=self.clock, tolerance=self.tolerance).validate_and_redeem(
            code, context
        )

    # === Presentation ===

    def build_redemption_url(self, kind: CodeKind, code: str) -> str:
        """Link a recipient follows to redeem a code."""
        paths = {
            CodeKind.SCHOOL_INVITATION: settings.school_invitation_path,
            CodeKind.COURSE_ENROLLMENT: settings.course_enrollment_path,
            CodeKind.TEACHER_JOIN: settings.teacher_join_path,
        }
        return f"{settings.app_base_url.rstrip('/')}{paths[kind]}{code}"

    def to_issued(self, access_code: AccessCode) -> IssuedCode:
        return IssuedCode(
            id=access_code.id,
            code=access_code.code,
            scope=CodeScope.model_validate(access_code),
            expires_at=access_code.expires_at,
            max_uses=access_code.max_uses,
            redemption_url=self.build_redemption_url(access_code.code_kind, access_code.code),
        )

    def to_response(self, access_code: AccessCode) -> CodeResponse:
        response = CodeResponse.model_validate(access_code)
        response.is_expired = is_expired(self.clock(), access_code.expires_at, self.tolerance)
        return response

    # === Helpers ===

    async def _get_or_404(self, store: CodeStore, code_id: UUID) -> AccessCode:
        access_code = await store.get(code_id, fresh=True)
        if access_code is None:
            raise NotFoundException("Code")
        return access_code

    def _original_lead(self, access_code: AccessCode) -> timedelta | None:
        if access_code.expires_at is None:
            return None
        lead = ensure_utc(access_code.expires_at) - ensure_utc(access_code.created_at)
        if lead <= timedelta(0):
            return settings.invitation_lead
        return lead


_access_code_service: AccessCodeService | None = None


def get_access_code_service() -> AccessCodeService:
    """Get the access code service singleton."""
    global _access_code_service
    if _access_code_service is None:
        _access_code_service = AccessCodeService()
    return _access_code_service
