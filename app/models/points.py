# app/models/points.py

import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import relationship

from app.db.session import Base


class PointTransactionType(str, enum.Enum):
    EARNED_ORDER = "EARNED_ORDER"
    MANUAL_ADD = "MANUAL_ADD"
    REFUND_CANCELLED = "REFUND_CANCELLED"
    MANUAL_SUBTRACT = "MANUAL_SUBTRACT"
    EXPIRED = "EXPIRED"
    USED = "USED"


CREDIT_TYPES = frozenset({
    PointTransactionType.EARNED_ORDER,
    PointTransactionType.MANUAL_ADD,
    PointTransactionType.REFUND_CANCELLED,
})
DEBIT_TYPES = frozenset({
    PointTransactionType.MANUAL_SUBTRACT,
    PointTransactionType.EXPIRED,
    PointTransactionType.USED,
})


class PointBalance(Base):
    __tablename__ = "point_balances"

    id = Column(Integer, primary_key=True, index=True)
    # Assigned by the user service, not by us
    user_id = Column(String(64), unique=True, nullable=False, index=True)

    current_balance = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_earned = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_used = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_expired = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    transactions = relationship("PointTransaction", back_populates="balance")

    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="ck_point_balances_non_negative"),
    )


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id = Column(Integer, primary_key=True, index=True)
    balance_id = Column(Integer, ForeignKey("point_balances.id"), nullable=False)

    transaction_type = Column(
        Enum(PointTransactionType, name="point_transaction_type", native_enum=False, length=32),
        nullable=False,
    )
    # Positive for credits, negative for debits
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)

    order_id = Column(String(64), nullable=True, index=True)
    reason = Column(String, nullable=True)

    # Cleared to NULL once the expiration job has consumed the row
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    balance = relationship("PointBalance", back_populates="transactions")

    __table_args__ = (
        Index("ix_point_transactions_type_expires_at", "transaction_type", "expires_at"),
        Index("ix_point_transactions_balance_created_at", "balance_id", "created_at"),
        # One earning per order, even under concurrent redelivery of the paid event
        Index(
            "uq_point_transactions_earned_order_id",
            "order_id",
            unique=True,
            postgresql_where=text("transaction_type = 'EARNED_ORDER'"),
            sqlite_where=text("transaction_type = 'EARNED_ORDER'"),
        ),
    )
