from __future__ import annotations

import sys
from datetime import date, datetime, time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from habitpulse import create_app
from habitpulse.core.auth.auth_service import issue_tokens
from habitpulse.core.auth.csrf import generate_csrf_token
from habitpulse.core.auth.models import Role
from habitpulse.core.users.schemas import UserCreateRequest
from habitpulse.core.users.services import create_user
from habitpulse.domains.habits import services as habit_services
from habitpulse.domains.habits.ledger import completion_ledger
from habitpulse.domains.social.leaderboard import leaderboard_ranker
from habitpulse.extensions import db

# Habits in tests are backdated to this instant so any 2026 day is valid.
EPOCH = datetime(2026, 1, 1)


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


@pytest.fixture()
def app():
    """Per-test app on a fresh in-memory database built from model metadata."""
    app = create_app("testing")
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    if not Role.query.filter_by(name="admin").first():
        db.session.add(Role(name="admin", description="admin role for tests"))
        db.session.commit()
    # Process-wide memos outlive the database; ids repeat across tests.
    completion_ledger.memo.clear()
    leaderboard_ranker.cache.clear()
    try:
        yield app
    finally:
        db.session.remove()
        db.drop_all()
        completion_ledger.memo.clear()
        leaderboard_ranker.cache.clear()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


def at(day: date, hour: int = 12) -> datetime:
    """Naive UTC timestamp on ``day``."""
    return datetime.combine(day, time(hour=hour))


@pytest.fixture()
def make_user(app):
    counter = {"n": 0}

    def _make(name: str | None = None, **overrides):
        counter["n"] += 1
        label = name or f"user{counter['n']}"
        payload = {
            "email": f"{label.lower()}@example.com",
            "password": "secret123",
            "full_name": label,
            "timezone": "UTC",
        }
        payload.update(overrides)
        return create_user(UserCreateRequest(**payload))

    return _make


@pytest.fixture()
def make_habit(app):
    def _make(user, name: str = "Read", **overrides):
        params = {"kind": "simple", "timezone": "UTC", "created_at": EPOCH}
        params.update(overrides)
        return habit_services.create_habit(user.id, name=name, **params)

    return _make


@pytest.fixture()
def complete(app):
    """Record ``times`` increments for ``habit`` on ``day``."""

    def _complete(habit, day: date, times: int = 1, delta: int = 1):
        results = []
        for _ in range(times):
            results.append(completion_ledger.append(habit.id, habit.user_id, delta, at(day)))
        return results[-1] if results else None

    return _complete


@pytest.fixture()
def auth_for(app):
    """JWT + CSRF headers for a user."""

    def _headers(user) -> dict[str, str]:
        tokens = issue_tokens(user)
        return {
            "Authorization": f"Bearer {tokens['access_token']}",
            "X-CSRF-Token": generate_csrf_token(user.id),
        }

    return _headers
