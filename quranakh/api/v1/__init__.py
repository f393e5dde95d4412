"""API v1 router package."""

from fastapi import APIRouter

from quranakh.api.v1 import assignments, auth, gradebook, grades, notifications, parents, rubrics

router = APIRouter(prefix="/api/v1")

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(assignments.router, prefix="/assignments", tags=["assignments"])
router.include_router(rubrics.router, prefix="/rubrics", tags=["rubrics"])
router.include_router(grades.router, prefix="/grades", tags=["grades"])
router.include_router(gradebook.router, prefix="/gradebook", tags=["gradebook"])
router.include_router(parents.router, prefix="/parents", tags=["parents"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
