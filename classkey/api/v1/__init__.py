"""API v1 router aggregator."""

from fastapi import APIRouter

from classkey.api.v1 import codes, redemptions

api_router = APIRouter(tags=["API v1"])

# Include all API routers
api_router.include_router(codes.router, prefix="/codes", tags=["Codes"])
api_router.include_router(redemptions.router, prefix="/redemptions", tags=["Redemptions"])
