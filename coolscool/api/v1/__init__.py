"""
API v1 routes.
"""

from fastapi import APIRouter

from coolscool.api.v1 import progress, sessions

router = APIRouter()

router.include_router(sessions.router, prefix="/sessions", tags=["Sessions"])
router.include_router(progress.router, prefix="/curricula", tags=["Progress"])
