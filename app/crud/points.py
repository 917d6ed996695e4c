# app/crud/points.py

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.models.points import PointBalance, PointTransaction, PointTransactionType
from app.models.points_config import PointsConfig

# --- Balances ---

def get_balance(db: Session, user_id: str) -> PointBalance | None:
    """Plain read of the balance row, no locking."""
    return db.query(PointBalance).filter(PointBalance.user_id == user_id).first()


def balance_for_update_query(db: Session, user_id: str):
    return db.query(PointBalance).filter(
        PointBalance.user_id == user_id
    ).with_for_update().populate_existing()


def get_balance_for_update(db: Session, user_id: str) -> PointBalance | None:
    """
    Reads the balance row with `SELECT ... FOR UPDATE`.
    Concurrent mutations of the same user wait here until the holder commits.
    """
    return balance_for_update_query(db, user_id).first()


def get_or_create_balance_for_update(db: Session, user_id: str) -> PointBalance:
    """
    Returns the locked balance row, creating an empty one on first use.
    If another request creates the row first, the unique key fires inside the
    savepoint and we re-read that row under lock instead.
    """
    balance = get_balance_for_update(db, user_id)
    if balance:
        return balance

    try:
        with db.begin_nested():
            balance = PointBalance(
                user_id=user_id,
                current_balance=0,
                lifetime_earned=0,
                lifetime_used=0,
                lifetime_expired=0,
            )
            db.add(balance)
            db.flush()
    except IntegrityError:
        balance = get_balance_for_update(db, user_id)
        if balance is None:
            raise
    return balance


# --- Transactions ---

def create_transaction(
    db: Session,
    balance: PointBalance,
    transaction_type: PointTransactionType,
    amount: int,
    balance_after: int,
    order_id: str | None = None,
    reason: str | None = None,
    expires_at: datetime | None = None,
) -> PointTransaction:
    """
    Adds a transaction to the session.
    Requires an outer db.commit().
    """
    transaction = PointTransaction(
        balance_id=balance.id,
        transaction_type=transaction_type,
        amount=amount,
        balance_after=balance_after,
        order_id=order_id,
        reason=reason,
        expires_at=expires_at,
    )
    db.add(transaction)
    return transaction


def _history_query(
    db: Session,
    balance_id: int,
    transaction_type: Optional[PointTransactionType] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    query = db.query(PointTransaction).filter(PointTransaction.balance_id == balance_id)
    if transaction_type:
        query = query.filter(PointTransaction.transaction_type == transaction_type)
    if start_date:
        query = query.filter(PointTransaction.created_at >= start_date)
    if end_date:
        query = query.filter(PointTransaction.created_at <= end_date)
    return query


def get_transactions(
    db: Session,
    balance_id: int,
    skip: int = 0,
    limit: int = 20,
    **filters,
) -> List[PointTransaction]:
    """Paginated history, newest first."""
    return _history_query(db, balance_id, **filters).order_by(
        PointTransaction.created_at.desc(), PointTransaction.id.desc()
    ).offset(skip).limit(limit).all()


def count_transactions(db: Session, balance_id: int, **filters) -> int:
    return _history_query(db, balance_id, **filters).count()


def get_transaction(db: Session, balance_id: int, transaction_id: int) -> PointTransaction | None:
    return db.query(PointTransaction).filter(
        PointTransaction.id == transaction_id,
        PointTransaction.balance_id == balance_id,
    ).first()


def get_all_transactions_chronological(db: Session, user_id: str) -> List[PointTransaction]:
    """All transactions of a user, oldest first."""
    return db.query(PointTransaction).join(PointBalance).filter(
        PointBalance.user_id == user_id
    ).order_by(PointTransaction.id.asc()).all()


def get_order_transaction(
    db: Session, order_id: str, transaction_type: PointTransactionType
) -> PointTransaction | None:
    """Finds a transaction of the given type already recorded for an order."""
    return db.query(PointTransaction).filter(
        PointTransaction.order_id == order_id,
        PointTransaction.transaction_type == transaction_type,
    ).first()


# --- Expiration ---

def get_matured_earnings(db: Session, now: datetime) -> List[PointTransaction]:
    """
    Unprocessed EARNED_ORDER credits whose expiry date has passed.
    The owning balance is loaded eagerly for grouping by user.
    """
    return db.query(PointTransaction).options(joinedload(PointTransaction.balance)).filter(
        PointTransaction.transaction_type == PointTransactionType.EARNED_ORDER,
        PointTransaction.expires_at.isnot(None),
        PointTransaction.expires_at <= now,
        PointTransaction.amount > 0,
    ).all()


def get_earnings_expiring_between(db: Session, start: datetime, end: datetime) -> List[Tuple[str, int, datetime]]:
    """(user_id, amount, expires_at) of EARNED_ORDER credits with start < expires_at <= end."""
    return db.query(
        PointBalance.user_id, PointTransaction.amount, PointTransaction.expires_at
    ).join(PointBalance, PointTransaction.balance_id == PointBalance.id).filter(
        PointTransaction.transaction_type == PointTransactionType.EARNED_ORDER,
        PointTransaction.expires_at > start,
        PointTransaction.expires_at <= end,
        PointTransaction.amount > 0,
    ).all()


def mark_transactions_as_processed(db: Session, transaction_ids: Iterable[int]) -> int:
    """
    Clears `expires_at` so the expiration job never looks at these rows again.
    Requires an outer db.commit().
    """
    ids = list(transaction_ids)
    if not ids:
        return 0
    return db.query(PointTransaction).filter(
        PointTransaction.id.in_(ids)
    ).update({"expires_at": None}, synchronize_session=False)


# --- Config ---

def get_first_config(db: Session) -> PointsConfig | None:
    return db.query(PointsConfig).order_by(PointsConfig.id.asc()).first()


def create_default_config(db: Session) -> PointsConfig:
    config = PointsConfig()
    db.add(config)
    db.commit()
    db.refresh(config)
    return config
