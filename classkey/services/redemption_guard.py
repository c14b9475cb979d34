"""Redemption guard: validates a code and consumes one use atomically."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from classkey.config import get_settings
from classkey.exceptions import (
    CodeCancelled,
    CodeDisabled,
    CodeExhausted,
    CodeExpired,
    CodeNotFound,
    RedemptionError,
)
from classkey.models.access_code import AccessCode, CodeStatus
from classkey.models.redemption import CodeRedemption
from classkey.schemas.access_code import CodePreview, CodeScope, Grant, RedemptionContext
from classkey.services.code_store import CodeStore
from classkey.services.scope_validator import validate_scope
from classkey.utils.code_generator import normalize
from classkey.utils.expiry import ensure_utc, is_expired, utc_now
from classkey.utils.status_machine import terminal_status_for

logger = logging.getLogger(__name__)
settings = get_settings()


class RedemptionGuard:
    """Checks every precondition of a redemption and takes one use.

    Check order:
        1. the code exists
        2. it is not cancelled or disabled
        3. the redeemer matches its scope
        4. it has not expired
        5. a redeemer who already redeemed it gets their original grant back
        6. it still has uses left
        7. one conditional UPDATE takes the use and flips the status if the
           code is now full, and the redemption is logged in the same
           transaction
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utc_now,
        tolerance: timedelta | None = None,
    ):
        self.store = CodeStore(db)
        self.clock = clock
        self.tolerance = settings.expiry_tolerance if tolerance is None else tolerance

    async def preview(self, code: str, context: RedemptionContext) -> CodePreview:
        """Run every check without consuming a use."""
        access_code = await self._load(code)
        self._check_open(access_code)
        scope = CodeScope.model_validate(access_code)
        validate_scope(scope, context)
        self._check_not_expired(access_code, self.clock())

        existing = await self.store.find_redemption(access_code.id, context.redeemer_key, context.normalized_email)
        if existing is None:
            self._check_has_uses(access_code)

        return CodePreview(
            message="You have already redeemed this code" if existing else "Code is valid",
            code=access_code.code,
            scope=scope,
            title=access_code.title,
            code_message=access_code.message,
            expires_at=access_code.expires_at,
            remaining_uses=access_code.remaining_uses,
            already_redeemed=existing is not None,
        )

    async def validate_and_redeem(self, code: str, context: RedemptionContext) -> Grant:
        """Redeem a code for the given redeemer.

        Returns:
            The Grant the caller provisions from. A retry by a redeemer who
            already succeeded returns the original grant with
            ``already_redeemed=True`` and leaves the counter untouched.

        Raises:
            RedemptionError: The specific reason the code cannot be used
        """
        now = self.clock()
        access_code = await self._load(code)
        self._check_open(access_code)
        scope = CodeScope.model_validate(access_code)
        validate_scope(scope, context)
        self._check_not_expired(access_code, now)

        code_id = access_code.id
        redeemer_key = context.redeemer_key

        existing = await self.store.find_redemption(code_id, redeemer_key, context.normalized_email)
        if existing is not None:
            logger.info(f"Code {code_id} already redeemed by {redeemer_key}, returning original grant")
            return self._grant(access_code, scope, existing.redeemed_at, already_redeemed=True)

        self._check_has_uses(access_code)

        consumed = await self.store.consume_use(code_id, terminal_status_for(scope.kind), now)
        if consumed is None:
            # Another request changed the code between our read and our write
            raise await self._classify_lost_race(access_code)
        uses, status = consumed

        redemption = CodeRedemption(
            code_id=code_id,
            redeemer_key=redeemer_key,
            redeemer_id=context.redeemer_id,
            redeemer_email=context.normalized_email,
            redeemed_at=now,
        )
        try:
            await self.store.record_redemption(redemption)
        except IntegrityError:
            # Same redeemer raced itself; undo our increment and hand back theirs
            await self.store.rollback()
            existing = await self.store.find_redemption(code_id, redeemer_key, context.normalized_email)
            if existing is None:
                raise
            current = await self.store.get(code_id, fresh=True)
            if current is None:
                raise CodeNotFound()
            logger.info(f"Concurrent duplicate redemption of {code_id} by {redeemer_key} collapsed")
            return self._grant(current, scope, existing.redeemed_at, already_redeemed=True)

        await self.store.commit()

        remaining = None if access_code.max_uses is None else max(access_code.max_uses - uses, 0)
        logger.info(
            f"Code {code_id} redeemed by {redeemer_key} "
            f"({uses}/{access_code.max_uses if access_code.max_uses is not None else 'unlimited'}, status={status})"
        )
        return Grant(
            code_id=code_id,
            code=access_code.code,
            scope=scope,
            remaining_uses=remaining,
            status=CodeStatus(status),
            redeemed_at=now,
        )

    async def _load(self, code: str) -> AccessCode:
        access_code = await self.store.get_by_code(normalize(code))
        if access_code is None:
            raise CodeNotFound()
        return access_code

    def _check_open(self, access_code: AccessCode) -> None:
        if access_code.status == CodeStatus.CANCELLED.value:
            raise CodeCancelled()
        if not access_code.is_active:
            raise CodeDisabled()

    def _check_not_expired(self, access_code: AccessCode, now: datetime) -> None:
        # Checked before usage so a full, expired code reports Expired
        if is_expired(now, access_code.expires_at, self.tolerance):
            raise CodeExpired()

    def _check_has_uses(self, access_code: AccessCode) -> None:
        if access_code.status == CodeStatus.ACCEPTED.value:
            raise CodeExhausted("This invitation has already been used")
        if access_code.status == CodeStatus.EXHAUSTED.value or access_code.is_full:
            raise CodeExhausted()

    async def _classify_lost_race(self, access_code: AccessCode) -> RedemptionError:
        current = await self.store.get(access_code.id, fresh=True)
        if current is None:
            return CodeNotFound()
        logger.info(f"Lost redemption race on {current.id} (status={current.status}, uses={current.current_uses})")
        if current.status == CodeStatus.CANCELLED.value:
            return CodeCancelled()
        if not current.is_active:
            return CodeDisabled()
        if current.status == CodeStatus.ACCEPTED.value:
            return CodeExhausted("This invitation has already been used")
        return CodeExhausted()

    def _grant(
        self,
        access_code: AccessCode,
        scope: CodeScope,
        redeemed_at: datetime,
        already_redeemed: bool = False,
    ) -> Grant:
        return Grant(
            code_id=access_code.id,
            code=access_code.code,
            scope=scope,
            remaining_uses=access_code.remaining_uses,
            status=CodeStatus(access_code.status),
            redeemed_at=ensure_utc(redeemed_at),
            already_redeemed=already_redeemed,
        )
