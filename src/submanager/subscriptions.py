"""Subscription creation and renewal write-back.

Renewed dates are computed by the same resolver the reminder job uses and
saved here, explicitly, instead of as a side effect of displaying them.
"""

import logging
import sqlite3
from datetime import date

from . import db
from .currency import DEFAULT_CURRENCY
from .periods import InvalidPeriodError, advance, parse_period
from .renewal import DEFAULT_MAX_ITERATIONS, RenewalError, renew_subscription

logger = logging.getLogger("submanager.subscriptions")


def create_subscription(
    conn: sqlite3.Connection,
    user_id: str,
    name: str,
    period: str,
    last_payment_date: date,
    amount: float = 0.0,
    currency: str = DEFAULT_CURRENCY,
    custom_days: int | str | None = None,
    category: str = "",
    notification_enabled: bool = True,
) -> db.Subscription:
    """Validate and store a new subscription.

    The next payment date is one period after the last payment. Raises
    InvalidPeriodError for an unknown period or a non-positive custom length,
    ValueError for an empty name or negative amount.
    """
    name = name.strip()
    if not name:
        raise ValueError("Subscription name is required")
    if amount < 0:
        raise ValueError("Amount cannot be negative")

    billing_period = parse_period(period, custom_days)
    next_payment_date = advance(last_payment_date, billing_period)

    subscription_id = db.add_subscription(
        conn,
        user_id=user_id,
        name=name,
        period=billing_period.kind,
        last_payment_date=last_payment_date,
        next_payment_date=next_payment_date,
        amount=amount,
        currency=currency,
        custom_days=billing_period.days,
        category=category,
        notification_enabled=notification_enabled,
    )
    logger.info("Added subscription %s (%s) for %s", name, subscription_id, user_id)
    return db.get_subscription(conn, subscription_id)


def refresh_subscriptions(
    conn: sqlite3.Connection,
    user_id: str,
    today: date,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> list[db.Subscription]:
    """Roll stale payment dates forward and persist the ones that changed.

    Rows that cannot be renewed are returned as stored and logged; rows
    whose dates cannot be read at all are logged and left out.
    """
    refreshed = []
    for subscription in db.list_subscriptions(conn, user_id):
        try:
            renewed = renew_subscription(subscription, today, max_iterations=max_iterations)
        except (InvalidPeriodError, RenewalError) as e:
            logger.error("Cannot renew %s (%s): %s", subscription.name, subscription.id, e)
            refreshed.append(subscription)
            continue

        if renewed is not subscription:
            db.update_subscription_dates(
                conn, renewed.id, renewed.last_payment_date, renewed.next_payment_date,
            )
            logger.info(
                "Auto-renewed %s: %s -> %s",
                renewed.name, subscription.next_payment_date, renewed.next_payment_date,
            )
        refreshed.append(renewed)

    refreshed.sort(key=lambda s: (s.next_payment_date, s.name))
    return refreshed
