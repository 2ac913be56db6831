"""Database operations for subscriptions and notification settings."""

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Iterator

from .history import NotificationHistory
from .periods import Period, parse_period

logger = logging.getLogger("submanager.db")


class InvalidSubscriptionError(ValueError):
    """A stored subscription row whose payment dates cannot be read."""

    def __init__(self, subscription_id: str, name: str, reason: str):
        super().__init__(f"Subscription {subscription_id} ({name}): {reason}")
        self.subscription_id = subscription_id
        self.name = name


@dataclass
class Subscription:
    id: str
    user_id: str
    name: str
    period: str
    last_payment_date: date
    next_payment_date: date
    amount: float = 0.0
    currency: str = "CNY"
    custom_days: int | str | None = None
    category: str = ""
    notification_enabled: bool = True

    @property
    def billing_period(self) -> Period:
        """Parsed period. Raises InvalidPeriodError for malformed rows."""
        return parse_period(self.period, self.custom_days)


@dataclass
class NotificationSettings:
    user_id: str
    enabled: bool = False
    server_url: str = ""
    device_key: str = ""
    days_before: int = 3
    history: dict[str, str] = field(default_factory=dict)  # subscription_id -> ISO timestamp


def init_db(db_path: Path) -> None:
    """Initialize database with schema."""
    schema_path = Path(__file__).parent / "schema.sql"
    with sqlite3.connect(db_path) as conn:
        conn.executescript(schema_path.read_text())


@contextmanager
def get_db(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Get database connection with row factory."""
    # timeout=30.0 waits up to 30s for locks instead of failing immediately
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


# ============================================================================
# Subscriptions
# ============================================================================


def _parse_stored_date(row: sqlite3.Row, column: str) -> date:
    value = row[column]
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        raise InvalidSubscriptionError(
            row["id"], row["name"], f"unreadable {column} {value!r}",
        ) from None


def _row_to_subscription(row: sqlite3.Row) -> Subscription:
    """Raises InvalidSubscriptionError if a payment date cannot be parsed."""
    return Subscription(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        category=row["category"],
        amount=row["amount"],
        currency=row["currency"],
        period=row["period"],
        custom_days=row["custom_days"],
        last_payment_date=_parse_stored_date(row, "last_payment_date"),
        next_payment_date=_parse_stored_date(row, "next_payment_date"),
        notification_enabled=bool(row["notification_enabled"]),
    )


def _rows_to_subscriptions(
    rows: list[sqlite3.Row],
    invalid: list[InvalidSubscriptionError] | None,
) -> list[Subscription]:
    """Convert rows one at a time so one bad row doesn't hide the rest.

    Unreadable rows go into invalid when given, otherwise they are logged.
    """
    subscriptions = []
    for row in rows:
        try:
            subscriptions.append(_row_to_subscription(row))
        except InvalidSubscriptionError as e:
            if invalid is None:
                logger.warning("Skipping %s", e)
            else:
                invalid.append(e)
    return subscriptions


def add_subscription(
    conn: sqlite3.Connection,
    user_id: str,
    name: str,
    period: str,
    last_payment_date: date,
    next_payment_date: date,
    amount: float = 0.0,
    currency: str = "CNY",
    custom_days: int | None = None,
    category: str = "",
    notification_enabled: bool = True,
    subscription_id: str | None = None,
) -> str:
    """Insert a subscription and return its id."""
    subscription_id = subscription_id or uuid.uuid4().hex
    conn.execute(
        """
        INSERT INTO subscriptions (
            id, user_id, name, category, amount, currency, period,
            custom_days, last_payment_date, next_payment_date, notification_enabled
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            subscription_id, user_id, name, category, amount, currency, period,
            str(custom_days) if custom_days is not None else None,
            last_payment_date.isoformat(), next_payment_date.isoformat(),
            1 if notification_enabled else 0,
        ),
    )
    return subscription_id


def get_subscription(conn: sqlite3.Connection, subscription_id: str) -> Subscription | None:
    cursor = conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,))
    row = cursor.fetchone()
    return _row_to_subscription(row) if row else None


def list_subscriptions(
    conn: sqlite3.Connection,
    user_id: str,
    invalid: list[InvalidSubscriptionError] | None = None,
) -> list[Subscription]:
    """All readable subscriptions for a user, soonest due first."""
    cursor = conn.execute(
        "SELECT * FROM subscriptions WHERE user_id = ? ORDER BY next_payment_date, name",
        (user_id,),
    )
    return _rows_to_subscriptions(cursor.fetchall(), invalid)


def list_notifiable_subscriptions(
    conn: sqlite3.Connection,
    user_id: str,
    invalid: list[InvalidSubscriptionError] | None = None,
) -> list[Subscription]:
    """Readable subscriptions for a user that have reminders switched on."""
    cursor = conn.execute(
        """
        SELECT * FROM subscriptions
        WHERE user_id = ? AND notification_enabled = 1
        ORDER BY next_payment_date, name
        """,
        (user_id,),
    )
    return _rows_to_subscriptions(cursor.fetchall(), invalid)


def update_subscription_dates(
    conn: sqlite3.Connection,
    subscription_id: str,
    last_payment_date: date,
    next_payment_date: date,
) -> None:
    """Persist renewed payment dates."""
    conn.execute(
        """
        UPDATE subscriptions
        SET last_payment_date = ?, next_payment_date = ?, updated_at = datetime('now')
        WHERE id = ?
        """,
        (last_payment_date.isoformat(), next_payment_date.isoformat(), subscription_id),
    )


def set_subscription_notification_enabled(
    conn: sqlite3.Connection, subscription_id: str, enabled: bool,
) -> bool:
    """Toggle reminders for one subscription. Returns False if it doesn't exist."""
    cursor = conn.execute(
        """
        UPDATE subscriptions
        SET notification_enabled = ?, updated_at = datetime('now')
        WHERE id = ?
        """,
        (1 if enabled else 0, subscription_id),
    )
    return cursor.rowcount > 0


def delete_subscription(conn: sqlite3.Connection, subscription_id: str) -> bool:
    """Delete a subscription and drop its notification history entry."""
    row = conn.execute(
        "SELECT user_id FROM subscriptions WHERE id = ?", (subscription_id,),
    ).fetchone()
    if not row:
        return False

    conn.execute("DELETE FROM subscriptions WHERE id = ?", (subscription_id,))

    settings = get_notification_settings(conn, row["user_id"])
    if settings and subscription_id in settings.history:
        history = NotificationHistory(settings.history)
        history.forget(subscription_id)
        update_notification_history(conn, settings.user_id, history.to_dict())
    return True


# ============================================================================
# Notification settings
# ============================================================================


def _row_to_settings(row: sqlite3.Row) -> NotificationSettings:
    try:
        history = json.loads(row["history"] or "{}")
    except json.JSONDecodeError:
        logger.warning("Discarding unreadable notification history for %s", row["user_id"])
        history = {}
    if not isinstance(history, dict):
        history = {}
    return NotificationSettings(
        user_id=row["user_id"],
        enabled=bool(row["enabled"]),
        server_url=row["server_url"],
        device_key=row["device_key"],
        days_before=row["days_before"],
        history=history,
    )


def get_notification_settings(
    conn: sqlite3.Connection, user_id: str,
) -> NotificationSettings | None:
    cursor = conn.execute(
        "SELECT * FROM notification_settings WHERE user_id = ?", (user_id,),
    )
    row = cursor.fetchone()
    return _row_to_settings(row) if row else None


def list_users_with_notifications_enabled(
    conn: sqlite3.Connection,
) -> list[NotificationSettings]:
    cursor = conn.execute(
        "SELECT * FROM notification_settings WHERE enabled = 1 ORDER BY user_id",
    )
    return [_row_to_settings(row) for row in cursor.fetchall()]


def save_notification_settings(
    conn: sqlite3.Connection, settings: NotificationSettings,
) -> None:
    """Insert or replace a user's notification settings, history included."""
    conn.execute(
        """
        INSERT INTO notification_settings (
            user_id, enabled, server_url, device_key, days_before, history
        ) VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (user_id) DO UPDATE SET
            enabled = excluded.enabled,
            server_url = excluded.server_url,
            device_key = excluded.device_key,
            days_before = excluded.days_before,
            history = excluded.history,
            updated_at = datetime('now')
        """,
        (
            settings.user_id,
            1 if settings.enabled else 0,
            settings.server_url,
            settings.device_key,
            settings.days_before,
            json.dumps(settings.history, sort_keys=True),
        ),
    )


def update_notification_history(
    conn: sqlite3.Connection, user_id: str, history: dict[str, str],
) -> None:
    """Replace only the history column, leaving user-edited settings alone."""
    conn.execute(
        """
        UPDATE notification_settings
        SET history = ?, updated_at = datetime('now')
        WHERE user_id = ?
        """,
        (json.dumps(history, sort_keys=True), user_id),
    )
