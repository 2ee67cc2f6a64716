"""Pytest configuration and fixtures for ChoreMint tests."""

import pytest

from choremint.app import create_app
from choremint.models import (
    db, Child, GoalConfig, GoalHistory, REASON_CHORE_APPROVED, REASON_GOAL_ACHIEVED_RESET
)
from choremint.services.ledger_service import LedgerService
from choremint.utils.timezone import utc_now


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing."""
    app = create_app('testing')

    # Create database tables
    with app.app_context():
        db.create_all()

    yield app

    # Clean up
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client for making requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for tests."""
    with app.app_context():
        yield db.session


@pytest.fixture
def child(db_session):
    """Create a child for testing."""
    child = Child(nickname='Minji')
    db_session.add(child)
    db_session.commit()
    return child


@pytest.fixture
def child_2(db_session):
    """Create a second child for testing."""
    child = Child(nickname='Jun')
    db_session.add(child)
    db_session.commit()
    return child


@pytest.fixture
def goal_config(db_session, child):
    """Goal of 100 points for an ice cream trip."""
    config = GoalConfig(
        child_id=child.id,
        goal_threshold=100,
        reward_description='ice cream'
    )
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture
def credit():
    """Append chore-approval credits through the ledger service (hooks included)."""
    def _credit(child_id, points, times=1):
        entries = []
        for _ in range(times):
            entries.append(LedgerService.append(child_id, points, REASON_CHORE_APPROVED))
        return entries
    return _credit


@pytest.fixture
def raw_credit(db_session):
    """Insert ledger entries directly, bypassing the post-append hooks."""
    def _raw_credit(child_id, points):
        entry = LedgerService.insert(child_id, points, REASON_CHORE_APPROVED)
        db_session.commit()
        return entry
    return _raw_credit


@pytest.fixture
def record_achievement(db_session):
    """Write a goal history row, and by default its rollover, bypassing detection."""
    def _record(child_id, balance, threshold=100, reward='ice cream', achieved_at=None,
                with_rollover=True):
        history = GoalHistory(
            child_id=child_id,
            goal_threshold_at_achievement=threshold,
            reward_description_at_achievement=reward,
            balance_at_achievement=balance,
            achieved_at=achieved_at or utc_now()
        )
        db_session.add(history)
        db_session.flush()
        if with_rollover:
            LedgerService.insert(child_id, -threshold, REASON_GOAL_ACHIEVED_RESET,
                                 goal_history_id=history.id)
        db_session.commit()
        return history
    return _record
