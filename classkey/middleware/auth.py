"""Authentication middleware for JWT token validation."""

import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from classkey.utils.security import decode_access_token
from classkey.utils.tenant_context import (
    clear_all_context,
    set_current_user_email,
    set_current_user_id,
    set_current_user_role,
    set_tenant_id,
)


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that extracts and validates JWT tokens from requests.

    A missing or invalid token leaves the context empty. Endpoints decide
    whether that is acceptable: management routes require a role, redemption
    routes fall back to the identity sent in the request body.
    """

    # Paths that never carry an identity
    EXEMPT_PATHS = {
        "/health",
        "/api/docs",
        "/api/redoc",
        "/api/openapi.json",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and extract authentication context."""
        # Clear context from previous request
        clear_all_context()

        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        token = self._extract_token(request)

        if token:
            payload = decode_access_token(token)
            if payload:
                try:
                    set_current_user_id(uuid.UUID(payload["sub"]))

                    if payload.get("tenant_id"):
                        set_tenant_id(uuid.UUID(payload["tenant_id"]))

                    if payload.get("role"):
                        set_current_user_role(payload["role"])

                    if payload.get("email"):
                        set_current_user_email(payload["email"])
                except (KeyError, ValueError, TypeError):
                    # Malformed claims - treat the request as anonymous
                    clear_all_context()

        response = await call_next(request)

        # Clear context after request
        clear_all_context()

        return response

    def _extract_token(self, request: Request) -> str | None:
        """Extract the bearer token from the Authorization header."""
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            return auth_header.removeprefix("Bearer ").strip()
        return None
