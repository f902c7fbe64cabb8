"""
HTTP routes for the keepsake API.
"""

from __future__ import annotations

from fastapi import APIRouter

from keepsake.routes import auth, backup, countdowns, diaries, photos

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(diaries.router, prefix="/diaries", tags=["diaries"])
router.include_router(photos.router, prefix="/photos", tags=["photos"])
router.include_router(countdowns.router, prefix="/countdowns", tags=["countdowns"])
router.include_router(backup.router, prefix="/backup", tags=["backup"])
