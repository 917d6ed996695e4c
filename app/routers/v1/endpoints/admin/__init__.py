# app/routers/v1/endpoints/admin/__init__.py

from fastapi import APIRouter, Depends

from app.dependencies import get_admin_user

from . import points, tasks

# Every endpoint below requires an admin token
router = APIRouter(
    dependencies=[Depends(get_admin_user)]
)

# /admin/config/points, /admin/users/{id}/points/adjust
router.include_router(points.router)

# /admin/tasks, /admin/tasks/run
router.include_router(tasks.router, prefix="/tasks")
