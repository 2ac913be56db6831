"""Renewal reminder eligibility and message text.

A reminder fires once, on the day the resolved next payment date is
exactly ``days_before`` days away. There is no catch-up: if no check runs
on that day, the cycle passes without a reminder.
"""

from dataclasses import dataclass
from datetime import date, datetime, tzinfo

from .currency import format_currency
from .db import NotificationSettings, Subscription
from .history import NotificationHistory

MAX_LEAD_DAYS = 14
DAYS_BEFORE_CHOICES = (1, 3, 7, 14)

# Decision reasons
SUBSCRIPTION_DISABLED = "subscription_disabled"
NOTIFICATIONS_DISABLED = "notifications_disabled"
OVERDUE = "overdue"
BEYOND_WINDOW = "beyond_window"
LEAD_MISMATCH = "lead_mismatch"
ALREADY_SENT_TODAY = "already_sent_today"
DUE = "due"


@dataclass(frozen=True)
class ReminderDecision:
    notify: bool
    reason: str
    days_until: int | None = None

    def __bool__(self) -> bool:
        return self.notify


def validate_days_before(days_before: int) -> int:
    if days_before not in DAYS_BEFORE_CHOICES:
        choices = ", ".join(str(d) for d in DAYS_BEFORE_CHOICES)
        raise ValueError(f"days_before must be one of {choices}, got {days_before!r}")
    return days_before


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until(next_payment_date: date | datetime, today: date | datetime) -> int:
    """Whole calendar days from today to the payment date (time of day ignored)."""
    return (_as_date(next_payment_date) - _as_date(today)).days


def evaluate_reminder(
    subscription: Subscription,
    settings: NotificationSettings,
    today: date,
    tz: tzinfo | None = None,
) -> ReminderDecision:
    """Decide whether a reminder is due today for an already-resolved subscription.

    Does not touch the history; the caller records a send only after the
    notifier confirms delivery.
    """
    if not subscription.notification_enabled:
        return ReminderDecision(False, SUBSCRIPTION_DISABLED)
    if not settings.enabled:
        return ReminderDecision(False, NOTIFICATIONS_DISABLED)

    remaining = days_until(subscription.next_payment_date, today)
    if remaining < 0:
        return ReminderDecision(False, OVERDUE, remaining)
    if remaining > MAX_LEAD_DAYS:
        return ReminderDecision(False, BEYOND_WINDOW, remaining)
    if remaining != settings.days_before:
        return ReminderDecision(False, LEAD_MISMATCH, remaining)

    history = NotificationHistory(settings.history)
    if history.sent_on(subscription.id, _as_date(today), tz):
        return ReminderDecision(False, ALREADY_SENT_TODAY, remaining)

    return ReminderDecision(True, DUE, remaining)


def should_notify(
    subscription: Subscription,
    settings: NotificationSettings,
    today: date,
    tz: tzinfo | None = None,
) -> bool:
    return evaluate_reminder(subscription, settings, today, tz).notify


def format_reminder_body(subscription: Subscription, days: int) -> str:
    """Reminder body, e.g. "Netflix expires in 3 days\\n$15.99/month".

    Raises InvalidPeriodError for a malformed period; callers resolve the
    subscription first, which already rejects those.
    """
    plural = "" if days == 1 else "s"
    noun = subscription.billing_period.noun
    amount = format_currency(subscription.amount, subscription.currency)
    return f"{subscription.name} expires in {days} day{plural}\n{amount}/{noun}"
