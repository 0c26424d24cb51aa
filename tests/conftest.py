"""
Shared pytest fixtures: an in-memory SQLite database per test, a user and
a fixed "today" so that snapshot dates are deterministic.
"""

from datetime import date

import pytest

from auth import create_user
from database import init_db, make_engine, make_session_factory
from ledger import latest_snapshot

TODAY = date(2024, 6, 15)


@pytest.fixture
def engine():
    test_engine = make_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def user(db):
    return create_user(db, "alice", "s3cret")


@pytest.fixture
def other_user(db):
    return create_user(db, "mallory", "hunter2")


@pytest.fixture
def balance_of(db):
    """Latest snapshot balance of an account in minor units."""

    def _balance(account_id: int):
        row = latest_snapshot(db, account_id)
        return None if row is None else row.balance

    return _balance
