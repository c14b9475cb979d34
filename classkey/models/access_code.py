"""Access code model shared by invitations, enrollment codes and join links."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from classkey.models.base import BaseModel


class CodeKind(str, Enum):
    """What a code grants access to."""

    SCHOOL_INVITATION = "SCHOOL_INVITATION"
    COURSE_ENROLLMENT = "COURSE_ENROLLMENT"
    TEACHER_JOIN = "TEACHER_JOIN"

    @property
    def is_single_redeemer(self) -> bool:
        """Invitations and join links are consumed by exactly one person."""
        return self in (CodeKind.SCHOOL_INVITATION, CodeKind.TEACHER_JOIN)


class CodeStatus(str, Enum):
    """Stored lifecycle status of a code.

    Expiry is not a status: it is evaluated from ``expires_at`` on every use.
    """

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EXHAUSTED = "EXHAUSTED"
    CANCELLED = "CANCELLED"


class AccessCode(BaseModel):
    """A short code an issuer shares and a redeemer later consumes."""

    __tablename__ = "access_codes"
    __table_args__ = (
        CheckConstraint("current_uses >= 0", name="ck_access_codes_uses_non_negative"),
        CheckConstraint("max_uses IS NULL OR max_uses >= 1", name="ck_access_codes_max_uses_positive"),
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_access_codes_uses_within_limit",
        ),
        CheckConstraint(
            "expires_at IS NULL OR expires_at > created_at",
            name="ck_access_codes_expiry_after_creation",
        ),
        Index("idx_access_codes_target", "kind", "target_id"),
        Index(
            "idx_access_codes_pending_email",
            "required_email",
            "target_id",
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    target_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    required_role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    required_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    issuer_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CodeStatus.PENDING.value,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def code_kind(self) -> CodeKind:
        return CodeKind(self.kind)

    @property
    def is_pending(self) -> bool:
        """Check if the code may still be redeemed (ignoring expiry)."""
        return self.status == CodeStatus.PENDING.value

    @property
    def is_full(self) -> bool:
        """Check if every allowed use has been consumed."""
        return self.max_uses is not None and self.current_uses >= self.max_uses

    @property
    def remaining_uses(self) -> int | None:
        """Remaining uses, or None when the code is unlimited."""
        if self.max_uses is None:
            return None
        return max(self.max_uses - self.current_uses, 0)
