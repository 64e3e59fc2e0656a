from datetime import datetime, timedelta

import pytest

from app import create_app
from models import db
from security.attempt_store import AttemptStore
from security.throttle import LoginThrottle


class FakeClock:
    """Callable clock the store and limiters read instead of the wall clock."""

    def __init__(self, start=datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)
        return self.now


DATABASE_THROTTLE = {
    "firewall": "main",
    "max_count_attempts": 3,
    "timeout": 600,
    "watch_period": 3600,
    "storage": "database",
}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def throttle_settings():
    return dict(DATABASE_THROTTLE)


@pytest.fixture
def app(throttle_settings, clock):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "LOGIN_THROTTLE": throttle_settings,
        "LOG_LEVEL": "WARNING",
    })
    # swap in an extension driven by the fake clock
    LoginThrottle(app, clock=clock)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def throttle(app):
    return app.extensions["login_throttle"]


@pytest.fixture
def store(app, clock):
    return AttemptStore(clock=clock)
