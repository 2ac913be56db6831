"""Shared test fixtures for submanager tests."""

from datetime import date

import pytest

from submanager import db
from submanager.config import Config
from submanager.logging_setup import reset_logging


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep host config env vars out of tests."""
    for var in ("SUBMANAGER_CONFIG", "SUBMANAGER_DB_PATH", "SUBMANAGER_TIMEZONE"):
        monkeypatch.delenv(var, raising=False)
    yield
    reset_logging()


@pytest.fixture
def db_path(tmp_path):
    """Initialize a real SQLite database using schema.sql and return its path."""
    path = tmp_path / "test.db"
    db.init_db(path)
    return path


@pytest.fixture
def db_conn(db_path):
    """Yield a database connection with row factory set."""
    with db.get_db(db_path) as conn:
        yield conn


@pytest.fixture
def make_config(db_path):
    """Factory fixture that creates Config instances pointing at the test db."""
    def _make_config(**overrides):
        defaults = {"db_path": db_path}
        defaults.update(overrides)
        return Config(**defaults)
    return _make_config


@pytest.fixture
def make_subscription():
    """Factory fixture that creates Subscription dataclass instances with defaults."""
    def _make_subscription(**overrides):
        defaults = {
            "id": "sub1",
            "user_id": "alice",
            "name": "Netflix",
            "amount": 15.99,
            "currency": "USD",
            "period": "monthly",
            "last_payment_date": date(2024, 4, 15),
            "next_payment_date": date(2024, 5, 15),
            "notification_enabled": True,
        }
        defaults.update(overrides)
        return db.Subscription(**defaults)
    return _make_subscription


@pytest.fixture
def make_settings():
    """Factory fixture that creates NotificationSettings instances with defaults."""
    def _make_settings(**overrides):
        defaults = {
            "user_id": "alice",
            "enabled": True,
            "server_url": "https://api.day.app",
            "device_key": "abc123",
            "days_before": 3,
            "history": {},
        }
        defaults.update(overrides)
        return db.NotificationSettings(**defaults)
    return _make_settings
