"""Persistent store for access codes and their redemption log.

The store owns ``current_uses``. It is only ever changed through
``consume_use``, a single conditional UPDATE, so concurrent redeemers on
different service instances cannot both take the last remaining use.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from classkey.exceptions import StoreUnavailable
from classkey.models.access_code import AccessCode, CodeKind, CodeStatus
from classkey.models.redemption import CodeRedemption

logger = logging.getLogger(__name__)


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate connectivity failures into the retryable StoreUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error(f"Code store unavailable: {exc}")
        raise StoreUnavailable() from exc


class CodeStore:
    """Repository for AccessCode and CodeRedemption rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # === Codes ===

    async def code_exists(self, code: str) -> bool:
        """Check whether a code string is already taken."""
        with store_errors():
            result = await self.db.execute(
                select(func.count()).select_from(AccessCode).where(AccessCode.code == code)
            )
            return (result.scalar() or 0) > 0

    async def add(self, access_code: AccessCode) -> AccessCode:
        """Insert a new code. Unique violations propagate to the caller."""
        with store_errors():
            self.db.add(access_code)
            await self.db.flush()
            return access_code

    async def get(self, code_id: UUID, fresh: bool = False) -> AccessCode | None:
        """Get a code by ID, optionally bypassing the session's identity map."""
        stmt = select(AccessCode).where(AccessCode.id == code_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        with store_errors():
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

    async def get_by_code(self, code: str) -> AccessCode | None:
        """Get the current state of a code by exact string match."""
        stmt = (
            select(AccessCode)
            .where(AccessCode.code == code)
            .execution_options(populate_existing=True)
        )
        with store_errors():
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

    async def consume_use(
        self,
        code_id: UUID,
        terminal_status: CodeStatus,
        now: datetime,
    ) -> tuple[int, str] | None:
        """Atomically take one use of a code.

        The increment and the status flip happen in one UPDATE guarded by
        ``current_uses < max_uses``. Returns the new ``(current_uses, status)``
        or None when no row qualified (full, cancelled, disabled or consumed
        by a concurrent redeemer).
        """
        fills_code = and_(
            AccessCode.max_uses.is_not(None),
            AccessCode.current_uses + 1 >= AccessCode.max_uses,
        )
        stmt = (
            update(AccessCode)
            .where(
                AccessCode.id == code_id,
                AccessCode.status == CodeStatus.PENDING.value,
                AccessCode.is_active.is_(True),
                or_(
                    AccessCode.max_uses.is_(None),
                    AccessCode.current_uses < AccessCode.max_uses,
                ),
            )
            .values(
                current_uses=AccessCode.current_uses + 1,
                status=case((fills_code, terminal_status.value), else_=AccessCode.status),
                updated_at=now,
            )
            .returning(AccessCode.current_uses, AccessCode.status)
            .execution_options(synchronize_session=False)
        )
        with store_errors():
            result = await self.db.execute(stmt)
            row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    async def transition_status(
        self,
        code_id: UUID,
        from_status: CodeStatus,
        to_status: CodeStatus,
        **values,
    ) -> bool:
        """Conditionally move a code between statuses. Returns whether it moved."""
        stmt = (
            update(AccessCode)
            .where(AccessCode.id == code_id, AccessCode.status == from_status.value)
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        with store_errors():
            result = await self.db.execute(stmt)
            return result.rowcount == 1

    async def set_max_uses(self, code_id: UUID, max_uses: int | None, now: datetime) -> bool:
        """Change the usage limit of a PENDING code without undercutting uses already taken."""
        stmt = update(AccessCode).where(
            AccessCode.id == code_id,
            AccessCode.status == CodeStatus.PENDING.value,
        )
        if max_uses is not None:
            stmt = stmt.where(AccessCode.current_uses < max_uses)
        stmt = stmt.values(max_uses=max_uses, updated_at=now).execution_options(synchronize_session=False)
        with store_errors():
            result = await self.db.execute(stmt)
            return result.rowcount == 1

    async def find_pending_for_email(
        self,
        kind: CodeKind,
        target_id: UUID,
        email: str,
    ) -> list[AccessCode]:
        """Get PENDING codes of a kind bound to an email on a target."""
        with store_errors():
            result = await self.db.execute(
                select(AccessCode).where(
                    AccessCode.kind == kind.value,
                    AccessCode.target_id == target_id,
                    AccessCode.required_email == email,
                    AccessCode.status == CodeStatus.PENDING.value,
                )
            )
            return list(result.scalars().all())

    async def list_codes(
        self,
        issuer_id: UUID | None = None,
        target_id: UUID | None = None,
        kind: CodeKind | None = None,
        status: CodeStatus | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[AccessCode], int]:
        """List codes with optional filters, newest first."""
        query = select(AccessCode)

        if issuer_id:
            query = query.where(AccessCode.issuer_id == issuer_id)
        if target_id:
            query = query.where(AccessCode.target_id == target_id)
        if kind:
            query = query.where(AccessCode.kind == kind.value)
        if status:
            query = query.where(AccessCode.status == status.value)

        count_query = select(func.count()).select_from(query.subquery())
        query = query.order_by(AccessCode.created_at.desc()).offset(offset).limit(limit)

        with store_errors():
            total = (await self.db.execute(count_query)).scalar() or 0
            result = await self.db.execute(query)
            return list(result.scalars().all()), total

    async def delete(self, access_code: AccessCode) -> None:
        """Hard delete a code together with its redemption log."""
        with store_errors():
            await self.db.execute(
                delete(CodeRedemption).where(CodeRedemption.code_id == access_code.id)
            )
            await self.db.delete(access_code)
            await self.db.flush()

    # === Redemptions ===

    async def find_redemption(
        self,
        code_id: UUID,
        redeemer_key: str,
        email: str | None = None,
    ) -> CodeRedemption | None:
        """Get the redemption a redeemer already made on a code, if any.

        A redeemer who first redeemed by email and later signed in is matched
        on that email as well as on their current key.
        """
        same_redeemer = CodeRedemption.redeemer_key == redeemer_key
        if email:
            same_redeemer = or_(same_redeemer, CodeRedemption.redeemer_email == email)
        with store_errors():
            result = await self.db.execute(
                select(CodeRedemption)
                .where(CodeRedemption.code_id == code_id, same_redeemer)
                .order_by(CodeRedemption.redeemed_at.asc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def record_redemption(self, redemption: CodeRedemption) -> CodeRedemption:
        """Append to the redemption log. Duplicate redeemers raise IntegrityError."""
        with store_errors():
            self.db.add(redemption)
            await self.db.flush()
            return redemption

    async def count_redemptions(self, code_id: UUID) -> int:
        with store_errors():
            result = await self.db.execute(
                select(func.count()).select_from(CodeRedemption).where(CodeRedemption.code_id == code_id)
            )
            return result.scalar() or 0

    async def list_redemptions(self, code_id: UUID) -> list[CodeRedemption]:
        """Get the usage log of a code, oldest first."""
        with store_errors():
            result = await self.db.execute(
                select(CodeRedemption)
                .where(CodeRedemption.code_id == code_id)
                .order_by(CodeRedemption.redeemed_at.asc())
            )
            return list(result.scalars().all())

    # === Transactions ===

    async def flush(self) -> None:
        with store_errors():
            await self.db.flush()

    async def commit(self) -> None:
        with store_errors():
            await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
