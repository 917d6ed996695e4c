# app/routers/v1/endpoints/admin/points.py

import logging

from fastapi import APIRouter, Depends, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.redis import get_redis_client
from app.dependencies import CurrentUser, get_admin_user, get_db
from app.models.points import PointTransactionType
from app.schemas.points import (
    AdjustPointsRequest,
    PointsConfigSchema,
    PointsConfigUpdate,
    PointsMutationResult,
)
from app.services import points as points_service
from app.services import points_config as points_config_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/config/points", response_model=PointsConfigSchema)
async def get_points_config_endpoint(
    db: Session = Depends(get_db),
    redis: Redis = Depends(get_redis_client),
):
    """[ADMIN] Current points program configuration."""
    return await points_config_service.get_points_config(db, redis)


@router.put("/config/points", response_model=PointsConfigSchema)
async def update_points_config_endpoint(
    request_data: PointsConfigUpdate,
    db: Session = Depends(get_db),
    redis: Redis = Depends(get_redis_client),
):
    """[ADMIN] Partial update; fields that are not sent keep their value."""
    return await points_config_service.update_points_config(db, redis, request_data)


@router.post(
    "/users/{user_id}/points/adjust",
    response_model=PointsMutationResult,
    status_code=status.HTTP_201_CREATED,
)
def adjust_user_points_endpoint(
    user_id: str,
    request_data: AdjustPointsRequest,
    db: Session = Depends(get_db),
    admin_user: CurrentUser = Depends(get_admin_user),
):
    """[ADMIN] Manually adds or subtracts points."""
    logger.info(
        f"Admin {admin_user.user_id} adjusting points of user {user_id}: "
        f"{request_data.type} {request_data.amount} ({request_data.reason!r})"
    )
    if request_data.type == "add":
        return points_service.add_points(
            db, user_id, request_data.amount, PointTransactionType.MANUAL_ADD, reason=request_data.reason
        )
    return points_service.deduct_points(
        db, user_id, request_data.amount, PointTransactionType.MANUAL_SUBTRACT, reason=request_data.reason
    )
