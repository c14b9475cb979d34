"""Middleware exports."""

from classkey.middleware.auth import AuthMiddleware

__all__ = ["AuthMiddleware"]
