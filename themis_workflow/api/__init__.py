"""API routes for the Themis workflow."""

from fastapi import APIRouter

from .approvals import router as approvals_router
from .notifications import router as notifications_router
from .session import router as session_router

# Main API router
api_router = APIRouter()

api_router.include_router(session_router)
api_router.include_router(approvals_router)
api_router.include_router(notifications_router)

__all__ = ["api_router"]
