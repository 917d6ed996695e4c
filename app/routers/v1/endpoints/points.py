# app/routers/v1/endpoints/points.py

from datetime import datetime

import pydantic
from fastapi import APIRouter, Depends, Query, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.core.redis import get_redis_client
from app.dependencies import CurrentUser, ensure_self_or_admin, get_current_user, get_db
from app.models.points import PointTransactionType
from app.schemas.pagination import PaginatedResponse
from app.schemas.points import (
    PointBalanceRead,
    PointHistoryQuery,
    PointTransactionRead,
    RedemptionValidationRequest,
)
from app.services import points as points_service

router = APIRouter()


def get_history_query(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    transaction_type: PointTransactionType | None = Query(None),
    start_date: datetime | None = Query(None, description="Inclusive lower bound on created_at"),
    end_date: datetime | None = Query(None, description="Inclusive upper bound on created_at"),
) -> PointHistoryQuery:
    try:
        return PointHistoryQuery(
            page=page, limit=limit, transaction_type=transaction_type,
            start_date=start_date, end_date=end_date,
        )
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid history query.", details={"errors": e.errors(include_url=False, include_context=False)})


@router.get("/users/me/points", response_model=PointBalanceRead)
def get_my_balance(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Balance of the current user."""
    return points_service.get_balance(db, current_user.user_id)


@router.get("/users/me/points/history", response_model=PaginatedResponse[PointTransactionRead])
def get_my_history(
    query: PointHistoryQuery = Depends(get_history_query),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Transaction history of the current user, newest first."""
    return points_service.get_transaction_history(db, current_user.user_id, query)


@router.post("/users/me/points/redemption/validate", status_code=status.HTTP_204_NO_CONTENT)
async def validate_my_redemption(
    request_data: RedemptionValidationRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    redis: Redis = Depends(get_redis_client),
):
    """Checks whether the current user may pay part of an order with points."""
    await points_service.validate_redemption(
        db, redis, current_user.user_id, request_data.points_to_use, request_data.order_total
    )


@router.get("/users/{user_id}/points", response_model=PointBalanceRead)
def get_user_balance(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Balance of a user. Only the user themself or an admin."""
    ensure_self_or_admin(user_id, current_user)
    return points_service.get_balance(db, user_id)


@router.get("/users/{user_id}/points/history", response_model=PaginatedResponse[PointTransactionRead])
def get_user_history(
    user_id: str,
    query: PointHistoryQuery = Depends(get_history_query),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_self_or_admin(user_id, current_user)
    return points_service.get_transaction_history(db, user_id, query)


@router.get("/users/{user_id}/points/transactions/{transaction_id}", response_model=PointTransactionRead)
def get_user_transaction(
    user_id: str,
    transaction_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_self_or_admin(user_id, current_user)
    return points_service.get_transaction(db, user_id, transaction_id)
