# tests/test_points_service.py

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import InsufficientBalanceError, NotFoundError, ValidationError
from app.crud import points as crud_points
from app.models.points import PointTransactionType
from app.schemas.points import PointHistoryQuery
from app.services import points as points_service

USER_ID = "user-1"


def test_add_points_creates_balance_and_ledger_row(db_session):
    result = points_service.add_points(db_session, USER_ID, 500, PointTransactionType.MANUAL_ADD, reason="welcome bonus")

    assert result.new_balance == 500
    balance = points_service.get_balance(db_session, USER_ID)
    assert balance.current_balance == 500
    assert balance.lifetime_earned == 500

    transactions = crud_points.get_all_transactions_chronological(db_session, USER_ID)
    assert len(transactions) == 1
    assert transactions[0].amount == 500
    assert transactions[0].balance_after == 500
    assert transactions[0].transaction_type == PointTransactionType.MANUAL_ADD


def test_balance_equals_sum_of_ledger(db_session):
    points_service.add_points(db_session, USER_ID, 1000, PointTransactionType.EARNED_ORDER, order_id="o-1")
    points_service.add_points(db_session, USER_ID, 200, PointTransactionType.MANUAL_ADD)
    points_service.deduct_points(db_session, USER_ID, 300, PointTransactionType.USED, order_id="o-2")
    points_service.add_points(db_session, USER_ID, 300, PointTransactionType.REFUND_CANCELLED, order_id="o-2")
    points_service.deduct_points(db_session, USER_ID, 150, PointTransactionType.EXPIRED)

    transactions = crud_points.get_all_transactions_chronological(db_session, USER_ID)
    balance = points_service.get_balance(db_session, USER_ID)

    assert sum(t.amount for t in transactions) == balance.current_balance == 1050
    running = 0
    for transaction in transactions:
        running += transaction.amount
        assert transaction.balance_after == running


def test_lifetime_counters_by_type(db_session):
    points_service.add_points(db_session, USER_ID, 1000, PointTransactionType.EARNED_ORDER, order_id="o-1")
    points_service.add_points(db_session, USER_ID, 100, PointTransactionType.MANUAL_ADD)
    points_service.deduct_points(db_session, USER_ID, 300, PointTransactionType.USED)
    points_service.deduct_points(db_session, USER_ID, 50, PointTransactionType.MANUAL_SUBTRACT)
    points_service.add_points(db_session, USER_ID, 300, PointTransactionType.REFUND_CANCELLED, order_id="o-9")
    points_service.deduct_points(db_session, USER_ID, 200, PointTransactionType.EXPIRED)

    balance = points_service.get_balance(db_session, USER_ID)
    assert balance.lifetime_earned == 1100
    assert balance.lifetime_used == 350
    assert balance.lifetime_expired == 200
    assert balance.current_balance == 850


def test_deduct_more_than_balance_is_rejected(db_session):
    points_service.add_points(db_session, USER_ID, 100, PointTransactionType.MANUAL_ADD)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        points_service.deduct_points(db_session, USER_ID, 101, PointTransactionType.MANUAL_SUBTRACT)

    assert exc_info.value.available == 100
    assert exc_info.value.requested == 101
    assert exc_info.value.status_code == 409
    assert points_service.get_balance(db_session, USER_ID).current_balance == 100
    assert len(crud_points.get_all_transactions_chronological(db_session, USER_ID)) == 1


def test_deduct_from_unknown_user_is_rejected(db_session):
    with pytest.raises(InsufficientBalanceError) as exc_info:
        points_service.deduct_points(db_session, "nobody", 1, PointTransactionType.MANUAL_SUBTRACT)
    assert exc_info.value.available == 0
    assert crud_points.get_balance(db_session, "nobody") is None


def test_deduct_whole_balance_reaches_zero(db_session):
    points_service.add_points(db_session, USER_ID, 100, PointTransactionType.MANUAL_ADD)
    result = points_service.deduct_points(db_session, USER_ID, 100, PointTransactionType.USED)
    assert result.new_balance == 0


@pytest.mark.parametrize("amount", [0, -5, 1.5, True])
def test_non_positive_or_non_integer_amount_is_rejected(db_session, amount):
    with pytest.raises(ValidationError) as exc_info:
        points_service.add_points(db_session, USER_ID, amount, PointTransactionType.MANUAL_ADD)
    assert exc_info.value.code == "INVALID_AMOUNT"


def test_wrong_direction_type_is_rejected(db_session):
    with pytest.raises(ValidationError) as exc_info:
        points_service.add_points(db_session, USER_ID, 10, PointTransactionType.USED)
    assert exc_info.value.code == "INVALID_TRANSACTION_TYPE"

    with pytest.raises(ValidationError):
        points_service.deduct_points(db_session, USER_ID, 10, PointTransactionType.EARNED_ORDER)

    with pytest.raises(ValidationError):
        points_service.add_points(db_session, USER_ID, 10, "BONUS")


def test_string_type_is_accepted(db_session):
    result = points_service.add_points(db_session, USER_ID, 10, "MANUAL_ADD")
    assert result.new_balance == 10


def test_get_balance_of_unknown_user_is_zero_and_creates_nothing(db_session):
    balance = points_service.get_balance(db_session, "ghost")
    assert balance.current_balance == 0
    assert balance.lifetime_earned == 0
    assert crud_points.get_balance(db_session, "ghost") is None


# --- History ---

def _seed_history(db):
    for i in range(5):
        points_service.add_points(db, USER_ID, 100 + i, PointTransactionType.MANUAL_ADD)
    points_service.deduct_points(db, USER_ID, 50, PointTransactionType.USED)


def test_history_is_paginated_newest_first(db_session):
    _seed_history(db_session)

    page1 = points_service.get_transaction_history(db_session, USER_ID, PointHistoryQuery(page=1, limit=4))
    page2 = points_service.get_transaction_history(db_session, USER_ID, PointHistoryQuery(page=2, limit=4))

    assert page1.total_items == 6
    assert page1.total_pages == 2
    assert len(page1.items) == 4
    assert len(page2.items) == 2
    assert page1.items[0].transaction_type == PointTransactionType.USED
    ids = [t.id for t in page1.items + page2.items]
    assert ids == sorted(ids, reverse=True)


def test_history_filters_by_type_and_date(db_session):
    _seed_history(db_session)
    now = datetime.now(timezone.utc)

    used_only = points_service.get_transaction_history(
        db_session, USER_ID, PointHistoryQuery(transaction_type=PointTransactionType.USED)
    )
    assert used_only.total_items == 1
    assert used_only.items[0].amount == -50

    in_range = points_service.get_transaction_history(
        db_session, USER_ID, PointHistoryQuery(start_date=now - timedelta(days=1), end_date=now + timedelta(days=1))
    )
    assert in_range.total_items == 6

    future = points_service.get_transaction_history(
        db_session, USER_ID, PointHistoryQuery(start_date=now + timedelta(days=1))
    )
    assert future.total_items == 0
    assert future.items == []


def test_history_of_unknown_user_is_empty(db_session):
    history = points_service.get_transaction_history(db_session, "ghost", PointHistoryQuery())
    assert history.total_items == 0
    assert history.total_pages == 0
    assert history.items == []


def test_history_query_rejects_inverted_date_range():
    now = datetime.now(timezone.utc)
    with pytest.raises(ValueError):
        PointHistoryQuery(start_date=now, end_date=now - timedelta(days=1))


def test_get_transaction(db_session):
    points_service.add_points(db_session, USER_ID, 70, PointTransactionType.MANUAL_ADD, reason="goodwill")
    points_service.add_points(db_session, "other-user", 10, PointTransactionType.MANUAL_ADD)
    transaction_id = crud_points.get_all_transactions_chronological(db_session, USER_ID)[0].id
    other_id = crud_points.get_all_transactions_chronological(db_session, "other-user")[0].id

    transaction = points_service.get_transaction(db_session, USER_ID, transaction_id)
    assert transaction.amount == 70
    assert transaction.reason == "goodwill"

    with pytest.raises(NotFoundError):
        points_service.get_transaction(db_session, USER_ID, other_id)
    with pytest.raises(NotFoundError):
        points_service.get_transaction(db_session, USER_ID, 999999)


# --- Redemption ---

@pytest.fixture
def redemption_setup(db_session, points_config):
    points_config()
    points_service.add_points(db_session, USER_ID, 3000, PointTransactionType.MANUAL_ADD)


async def test_valid_redemption_passes(db_session, fake_redis, redemption_setup):
    await points_service.validate_redemption(db_session, fake_redis, USER_ID, points_to_use=2000, order_total=10000)


@pytest.mark.parametrize(
    "points_to_use, order_total, expected_code",
    [
        (500, 10000, "POINTS_BELOW_MINIMUM"),
        (1500, 2999, "POINTS_EXCEED_MAX"),
        (4000, 10000, "INSUFFICIENT_POINTS"),
    ],
)
async def test_invalid_redemption_is_rejected(db_session, fake_redis, redemption_setup, points_to_use, order_total, expected_code):
    with pytest.raises((ValidationError, InsufficientBalanceError)) as exc_info:
        await points_service.validate_redemption(db_session, fake_redis, USER_ID, points_to_use, order_total)
    assert exc_info.value.code == expected_code


async def test_max_redemption_is_floored(db_session, fake_redis, redemption_setup):
    # 50% of 2001 is 1000.5, so 1000 is the ceiling
    await points_service.validate_redemption(db_session, fake_redis, USER_ID, 1000, 2001)
    with pytest.raises(ValidationError):
        await points_service.validate_redemption(db_session, fake_redis, USER_ID, 1001, 2001)


async def test_redemption_rejected_when_points_disabled(db_session, fake_redis, points_config):
    points_config(points_enabled=False)
    with pytest.raises(ValidationError) as exc_info:
        await points_service.validate_redemption(db_session, fake_redis, USER_ID, 1000, 10000)
    assert exc_info.value.code == "POINTS_DISABLED"
