"""Access code issuance, management and redemption schemas."""

from datetime import datetime, timedelta
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from classkey.models.access_code import CodeKind, CodeStatus


class CodeScope(BaseModel):
    """What a code is bound to: its kind, target, and optional role/email."""

    model_config = ConfigDict(from_attributes=True)

    kind: CodeKind
    target_id: UUID
    required_role: str | None = None
    required_email: str | None = None


class RedemptionContext(BaseModel):
    """Who is redeeming a code and for which target."""

    redeemer_id: UUID | None = None
    email: str | None = None
    role: str | None = None
    target_id: UUID

    @model_validator(mode="after")
    def require_identity(self) -> "RedemptionContext":
        if self.redeemer_id is None and not self.email:
            raise ValueError("A redeemer id or email is required")
        return self

    @property
    def normalized_email(self) -> str | None:
        return self.email.strip().lower() if self.email else None

    @property
    def redeemer_key(self) -> str:
        """Stable identity used for the idempotency constraint."""
        if self.redeemer_id is not None:
            return str(self.redeemer_id)
        return self.normalized_email


class Grant(BaseModel):
    """Successful redemption outcome handed back to the caller for provisioning."""

    code_id: UUID
    code: str
    scope: CodeScope
    remaining_uses: int | None = None
    status: CodeStatus
    redeemed_at: datetime
    already_redeemed: bool = False


class CodePreview(BaseModel):
    """Read-only validation result shown before a redeemer commits."""

    valid: bool = True
    message: str = "Code is valid"
    code: str
    scope: CodeScope
    title: str | None = None
    code_message: str | None = None
    expires_at: datetime | None = None
    remaining_uses: int | None = None
    already_redeemed: bool = False


class IssueRequest(BaseModel):
    """Schema for issuing a new code."""

    kind: CodeKind
    target_id: UUID | None = None
    required_role: str | None = None
    required_email: EmailStr | None = None
    expires_in_days: int | None = Field(default=None, gt=0)
    max_uses: int | None = Field(default=None, ge=1)
    title: str | None = Field(default=None, max_length=255)
    message: str | None = None

    @property
    def lead_duration(self) -> timedelta | None:
        if self.expires_in_days is None:
            return None
        return timedelta(days=self.expires_in_days)


class IssuedCode(BaseModel):
    """Issuance output: what the issuer shares with the recipient."""

    id: UUID
    code: str
    scope: CodeScope
    expires_at: datetime | None = None
    max_uses: int | None = None
    redemption_url: str


class CodeUpdate(BaseModel):
    """Schema for updating a code. Only fields that are sent are applied."""

    title: str | None = Field(default=None, max_length=255)
    message: str | None = None
    is_active: bool | None = None
    max_uses: int | None = Field(default=None, ge=1)
    expires_in_days: int | None = Field(default=None, ge=0)


class CodeRegenerate(BaseModel):
    """Schema for issuing a fresh string for an unredeemed code."""

    expires_in_days: int | None = Field(default=None, gt=0)


class CodeResponse(BaseModel):
    """Schema for code response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    kind: CodeKind
    target_id: UUID
    required_role: str | None = None
    required_email: str | None = None
    issuer_id: UUID
    title: str | None = None
    message: str | None = None
    is_active: bool
    status: CodeStatus
    max_uses: int | None = None
    current_uses: int
    remaining_uses: int | None = None
    expires_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime

    # Computed at read time
    is_expired: bool = False


class RedemptionResponse(BaseModel):
    """One entry of a code's usage log."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code_id: UUID
    redeemer_id: UUID | None = None
    redeemer_email: str | None = None
    redeemed_at: datetime


class RedeemRequest(BaseModel):
    """Schema for validating or redeeming a code."""

    code: str = Field(min_length=1, max_length=32)
    target_id: UUID
    email: EmailStr | None = None
    claimed_role: str | None = None
