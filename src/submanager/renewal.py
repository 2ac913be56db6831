"""Auto-renewal of stale payment dates.

A subscription whose recorded next payment date has passed is rolled
forward one period at a time until the next payment date is today or
later. The same function backs the batch reminder job and the
subscription listing path, so both always agree on the due date.
"""

from dataclasses import replace
from datetime import date

from .db import Subscription
from .periods import Period, advance

DEFAULT_MAX_ITERATIONS = 5000


class RenewalError(RuntimeError):
    """Stored dates could not be rolled forward within the iteration cap."""


def resolve(
    last_payment_date: date,
    next_payment_date: date,
    period: Period,
    today: date,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> tuple[date, date]:
    """Return (last, next) payment dates with next >= today.

    Dates that are already current come back unchanged.
    """
    if next_payment_date >= today:
        return last_payment_date, next_payment_date

    last, next_ = last_payment_date, next_payment_date
    for _ in range(max_iterations):
        last, next_ = next_, advance(next_, period)
        if next_ >= today:
            return last, next_

    raise RenewalError(
        f"Next payment date {next_payment_date.isoformat()} did not reach "
        f"{today.isoformat()} within {max_iterations} {period.kind} steps"
    )


def is_stale(subscription: Subscription, today: date) -> bool:
    return subscription.next_payment_date < today


def renew_subscription(
    subscription: Subscription,
    today: date,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> Subscription:
    """Copy of subscription with resolved payment dates.

    Raises InvalidPeriodError or RenewalError for malformed rows.
    """
    last, next_ = resolve(
        subscription.last_payment_date,
        subscription.next_payment_date,
        subscription.billing_period,
        today,
        max_iterations=max_iterations,
    )
    if (last, next_) == (subscription.last_payment_date, subscription.next_payment_date):
        return subscription
    return replace(subscription, last_payment_date=last, next_payment_date=next_)
