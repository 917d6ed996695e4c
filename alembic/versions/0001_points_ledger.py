"""points ledger tables

Revision ID: 0001_points_ledger
Revises:
Create Date: 2026-10-17 00:00:00
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_points_ledger"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPES = ("EARNED_ORDER", "MANUAL_ADD", "REFUND_CANCELLED", "MANUAL_SUBTRACT", "EXPIRED", "USED")


def upgrade() -> None:
    op.create_table(
        "point_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("current_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_earned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_expired", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("current_balance >= 0", name="ck_point_balances_non_negative"),
    )
    op.create_index("ix_point_balances_id", "point_balances", ["id"])
    op.create_index("ix_point_balances_user_id", "point_balances", ["user_id"], unique=True)

    op.create_table(
        "point_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("balance_id", sa.Integer(), sa.ForeignKey("point_balances.id"), nullable=False),
        sa.Column(
            "transaction_type",
            sa.Enum(*TRANSACTION_TYPES, name="point_transaction_type", native_enum=False, length=32),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_point_transactions_id", "point_transactions", ["id"])
    op.create_index("ix_point_transactions_order_id", "point_transactions", ["order_id"])
    op.create_index("ix_point_transactions_type_expires_at", "point_transactions", ["transaction_type", "expires_at"])
    op.create_index("ix_point_transactions_balance_created_at", "point_transactions", ["balance_id", "created_at"])
    op.create_index(
        "uq_point_transactions_earned_order_id",
        "point_transactions",
        ["order_id"],
        unique=True,
        postgresql_where=sa.text("transaction_type = 'EARNED_ORDER'"),
    )

    op.create_table(
        "points_config",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("points_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("point_earning_rate", sa.Numeric(5, 2), nullable=False, server_default="5"),
        sa.Column("point_min_redemption", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("point_max_redemption_pct", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("point_expiration_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("point_expiration_months", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_points_config_id", "points_config", ["id"])


def downgrade() -> None:
    op.drop_index("ix_points_config_id", table_name="points_config")
    op.drop_table("points_config")
    op.drop_index("uq_point_transactions_earned_order_id", table_name="point_transactions")
    op.drop_index("ix_point_transactions_balance_created_at", table_name="point_transactions")
    op.drop_index("ix_point_transactions_type_expires_at", table_name="point_transactions")
    op.drop_index("ix_point_transactions_order_id", table_name="point_transactions")
    op.drop_index("ix_point_transactions_id", table_name="point_transactions")
    op.drop_table("point_transactions")
    op.drop_index("ix_point_balances_user_id", table_name="point_balances")
    op.drop_index("ix_point_balances_id", table_name="point_balances")
    op.drop_table("point_balances")
