# app/services/points.py

import logging
import math
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from app.crud import points as crud_points
from app.models.points import CREDIT_TYPES, DEBIT_TYPES, PointTransactionType
from app.schemas.pagination import PaginatedResponse
from app.schemas.points import (
    PointBalanceRead,
    PointHistoryQuery,
    PointsMutationResult,
    PointTransactionRead,
)
from app.services import points_config as points_config_service

logger = logging.getLogger(__name__)

# Credits that create new value. REFUND_CANCELLED only restores points spent earlier.
EARNING_TYPES = frozenset({PointTransactionType.EARNED_ORDER, PointTransactionType.MANUAL_ADD})
USAGE_TYPES = frozenset({PointTransactionType.MANUAL_SUBTRACT, PointTransactionType.USED})


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive integer.", code="INVALID_AMOUNT", details={"amount": amount})


def _validate_type(transaction_type, allowed: frozenset, kind: str) -> PointTransactionType:
    try:
        transaction_type = PointTransactionType(transaction_type)
    except ValueError:
        transaction_type = None
    if transaction_type not in allowed:
        raise ValidationError(
            f"Not a {kind} transaction type.",
            code="INVALID_TRANSACTION_TYPE",
            details={"allowed": sorted(t.value for t in allowed)},
        )
    return transaction_type


def add_points(
    db: Session,
    user_id: str,
    amount: int,
    transaction_type: PointTransactionType,
    order_id: str | None = None,
    reason: str | None = None,
    expires_at: datetime | None = None,
    commit: bool = True,
) -> PointsMutationResult:
    """
    Credits points to a user.
    The balance row is locked for the duration of the DB transaction, the
    ledger row and the counters are written together.
    """
    _validate_amount(amount)
    transaction_type = _validate_type(transaction_type, CREDIT_TYPES, "credit")

    try:
        balance = crud_points.get_or_create_balance_for_update(db, user_id)

        new_balance = balance.current_balance + amount
        crud_points.create_transaction(
            db,
            balance=balance,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=new_balance,
            order_id=order_id,
            reason=reason,
            expires_at=expires_at,
        )
        balance.current_balance = new_balance
        if transaction_type in EARNING_TYPES:
            balance.lifetime_earned += amount

        db.flush()
        if commit:
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Added {amount} points to user {user_id} (type: {transaction_type.value}). New balance: {new_balance}")
    return PointsMutationResult(new_balance=new_balance)


def deduct_points(
    db: Session,
    user_id: str,
    amount: int,
    transaction_type: PointTransactionType,
    order_id: str | None = None,
    reason: str | None = None,
    commit: bool = True,
) -> PointsMutationResult:
    """
    Debits points from a user. Never lets the balance go below zero: the check
    is made against the locked row, so two concurrent deductions cannot both
    pass it.
    """
    _validate_amount(amount)
    transaction_type = _validate_type(transaction_type, DEBIT_TYPES, "debit")

    try:
        balance = crud_points.get_balance_for_update(db, user_id)
        available = balance.current_balance if balance else 0
        if amount > available:
            raise InsufficientBalanceError(available=available, requested=amount)

        new_balance = available - amount
        crud_points.create_transaction(
            db,
            balance=balance,
            transaction_type=transaction_type,
            amount=-amount,
            balance_after=new_balance,
            order_id=order_id,
            reason=reason,
        )
        balance.current_balance = new_balance
        if transaction_type in USAGE_TYPES:
            balance.lifetime_used += amount
        elif transaction_type == PointTransactionType.EXPIRED:
            balance.lifetime_expired += amount

        db.flush()
        if commit:
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Deducted {amount} points from user {user_id} (type: {transaction_type.value}). New balance: {new_balance}")
    return PointsMutationResult(new_balance=new_balance)


def get_balance(db: Session, user_id: str) -> PointBalanceRead:
    """Balance and lifetime counters. A user without a ledger gets zeros."""
    balance = crud_points.get_balance(db, user_id)
    if balance is None:
        return PointBalanceRead()
    return PointBalanceRead.model_validate(balance)


def get_transaction_history(db: Session, user_id: str, query: PointHistoryQuery) -> PaginatedResponse[PointTransactionRead]:
    """Paginated transaction history, newest first."""
    balance = crud_points.get_balance(db, user_id)
    if balance is None:
        return PaginatedResponse[PointTransactionRead](
            total_items=0, total_pages=0, current_page=query.page, size=query.limit, items=[]
        )

    filters = {
        "transaction_type": query.transaction_type,
        "start_date": query.start_date,
        "end_date": query.end_date,
    }
    skip = (query.page - 1) * query.limit
    total = crud_points.count_transactions(db, balance.id, **filters)
    transactions = crud_points.get_transactions(db, balance.id, skip=skip, limit=query.limit, **filters)

    return PaginatedResponse[PointTransactionRead](
        total_items=total,
        total_pages=math.ceil(total / query.limit),
        current_page=query.page,
        size=query.limit,
        items=[PointTransactionRead.model_validate(t) for t in transactions],
    )


def get_transaction(db: Session, user_id: str, transaction_id: int) -> PointTransactionRead:
    balance = crud_points.get_balance(db, user_id)
    transaction = crud_points.get_transaction(db, balance.id, transaction_id) if balance else None
    if transaction is None:
        raise NotFoundError(
            f"Point transaction {transaction_id} not found for user {user_id}.",
            details={"transaction_id": transaction_id},
        )
    return PointTransactionRead.model_validate(transaction)


async def validate_redemption(
    db: Session,
    redis: Redis,
    user_id: str,
    points_to_use: int,
    order_total: float,
) -> None:
    """
    Checks whether `points_to_use` may be redeemed against an order of `order_total`.
    Raises instead of returning a flag; nothing is written.
    """
    config = await points_config_service.get_points_config(db, redis)

    if not config.points_enabled:
        raise ValidationError("Points system is currently disabled.", code="POINTS_DISABLED")

    if points_to_use < config.point_min_redemption:
        raise ValidationError(
            f"Minimum points redemption is {config.point_min_redemption}.",
            code="POINTS_BELOW_MINIMUM",
            details={"minimum": config.point_min_redemption, "requested": points_to_use},
        )

    max_redemption = int(
        (Decimal(str(order_total)) * config.point_max_redemption_pct / 100).to_integral_value(rounding=ROUND_FLOOR)
    )
    if points_to_use > max_redemption:
        raise ValidationError(
            f"Maximum points usage for this order is {max_redemption} ({config.point_max_redemption_pct}% of total).",
            code="POINTS_EXCEED_MAX",
            details={"max_allowed": max_redemption, "requested": points_to_use},
        )

    balance = crud_points.get_balance(db, user_id)
    available = balance.current_balance if balance else 0
    if available < points_to_use:
        raise InsufficientBalanceError(available=available, requested=points_to_use)
