# app/routers/v1/api.py

from fastapi import APIRouter

from app.routers.v1.endpoints import points
from app.routers.v1.endpoints import admin as admin_v1_router

# Everything here is served under /v1
api_router = APIRouter(prefix="/v1")

api_router.include_router(points.router, tags=["Points"])

api_router.include_router(admin_v1_router.router, prefix="/admin", tags=["Admin"])
