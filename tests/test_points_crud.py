# tests/test_points_crud.py

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from app.crud import points as crud_points
from app.models.points import PointBalance


def test_balance_lock_query_selects_for_update(db_session):
    query = crud_points.balance_for_update_query(db_session, "u1")

    sql = str(query.statement.compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql
    assert "point_balances" in sql


def test_get_or_create_returns_row_created_concurrently(db_session, session_factory, mocker):
    real_lookup = crud_points.get_balance_for_update
    lookups = []

    def lookup_racing_with_other_request(db, user_id):
        lookups.append(user_id)
        if len(lookups) == 1:
            # Another request creates the row right after our first lookup missed it
            with session_factory() as other:
                other.add(PointBalance(user_id=user_id, current_balance=40, lifetime_earned=40))
                other.commit()
            return None
        return real_lookup(db, user_id)

    mocker.patch.object(crud_points, "get_balance_for_update", side_effect=lookup_racing_with_other_request)

    balance = crud_points.get_or_create_balance_for_update(db_session, "u1")

    assert len(lookups) == 2
    assert balance.current_balance == 40
    assert db_session.query(PointBalance).filter(PointBalance.user_id == "u1").count() == 1


def test_get_or_create_creates_empty_row(db_session):
    balance = crud_points.get_or_create_balance_for_update(db_session, "u1")
    db_session.commit()

    assert balance.id is not None
    assert balance.current_balance == 0
    assert crud_points.get_balance(db_session, "u1").id == balance.id


def test_database_rejects_negative_balance(db_session):
    db_session.add(PointBalance(user_id="u1", current_balance=-1))

    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()
