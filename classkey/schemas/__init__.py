"""Pydantic schemas for request/response validation."""

from classkey.schemas.access_code import (
    CodePreview,
    CodeRegenerate,
    CodeResponse,
    CodeScope,
    CodeUpdate,
    Grant,
    IssuedCode,
    IssueRequest,
    RedeemRequest,
    RedemptionContext,
    RedemptionResponse,
)
from classkey.schemas.common import APIResponse, ErrorDetail, ErrorResponse, PaginationMeta

__all__ = [
    # Common
    "APIResponse",
    "ErrorDetail",
    "ErrorResponse",
    "PaginationMeta",
    # Access codes
    "CodePreview",
    "CodeRegenerate",
    "CodeResponse",
    "CodeScope",
    "CodeUpdate",
    "Grant",
    "IssuedCode",
    "IssueRequest",
    "RedeemRequest",
    "RedemptionContext",
    "RedemptionResponse",
]
