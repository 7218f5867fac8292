"""
API v1 routes.
"""

from fastapi import APIRouter

from playtest_levels.api.v1 import admin, levels, notifications, payments

router = APIRouter()

router.include_router(levels.router, prefix="/levels", tags=["Levels"])
router.include_router(payments.router, prefix="/levels", tags=["Payments"])
router.include_router(notifications.router, prefix="/levels", tags=["Notifications"])
router.include_router(admin.router, prefix="/levels", tags=["Admin"])
