"""Append-only log of successful code redemptions."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from uuid_extensions import uuid7

from classkey.models.base import Base


class CodeRedemption(Base):
    """One consumed use of an access code.

    ``redeemer_key`` is the redeemer's account id, or their lower-cased email
    when they do not have an account yet. The unique constraint on
    ``(code_id, redeemer_key)`` is what makes redemption idempotent.
    """

    __tablename__ = "code_redemptions"
    __table_args__ = (
        UniqueConstraint("code_id", "redeemer_key", name="uq_code_redemptions_code_redeemer"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid7,
    )
    code_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("access_codes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    redeemer_key: Mapped[str] = mapped_column(String(255), nullable=False)
    redeemer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    redeemer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    redeemed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
