"""Scheduled renewal reminders.

Each tick loads every user with Bark reminders switched on, rolls stale
payment dates forward, and pushes a reminder for each subscription whose
next payment is exactly ``days_before`` days away. A send is recorded in
the user's history only after Bark accepts it, so a failed push is
retried by the next tick and a successful one is never repeated the same
day. Users are processed concurrently; one user's subscriptions are
always handled by a single worker, which writes that user's history once.
"""

import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from functools import partial
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from . import db
from .bark import BarkOptions, Notifier, send_bark_notification
from .config import Config, load_config
from .history import NotificationHistory
from .periods import InvalidPeriodError
from .reminders import evaluate_reminder, format_reminder_body
from .renewal import RenewalError, renew_subscription

logger = logging.getLogger("submanager.reminder_scheduler")


def _now(tz=None):
    """Current time - thin wrapper for testability."""
    return datetime.now(tz)


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


@dataclass
class RunSummary:
    """Counts for one tick; logged, never persisted."""
    total_users: int = 0
    notifications_sent: int = 0
    renewals: int = 0
    errors: int = 0
    histories_pruned: int = 0
    timestamp: str = ""
    fatal_error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _UserOutcome:
    settings: db.NotificationSettings
    sent: int = 0
    renewals: int = 0
    errors: int = 0


@dataclass
class TraceEntry:
    """One subscription's path through the reminder check (manual verification)."""
    subscription_id: str
    name: str
    stored_next: date | None
    renewed_next: date | None = None
    days_until: int | None = None
    decision: str = ""
    dispatched: bool | None = None
    error: str | None = None
    body: str = ""

    @property
    def renewed(self) -> bool:
        return self.renewed_next is not None and self.renewed_next != self.stored_next


def _default_notifier(config: Config) -> Notifier:
    return partial(send_bark_notification, timeout=config.bark.timeout)


def _bark_options(config: Config) -> BarkOptions:
    return BarkOptions(
        sound=config.bark.sound,
        group=config.bark.group,
        icon=config.bark.icon,
    )


def _process_user(
    config: Config,
    settings: db.NotificationSettings,
    now: datetime,
    today: date,
    tz: ZoneInfo,
    notifier: Notifier,
) -> _UserOutcome:
    """Check one user's subscriptions and push any reminders that are due."""
    outcome = _UserOutcome(settings=settings)
    user_id = settings.user_id

    invalid: list[db.InvalidSubscriptionError] = []
    try:
        with db.get_db(config.db_path) as conn:
            subscriptions = db.list_notifiable_subscriptions(conn, user_id, invalid=invalid)
    except Exception as e:
        logger.error("Failed to load subscriptions for %s: %s", user_id, e)
        outcome.errors += 1
        return outcome

    for error in invalid:
        logger.error("Skipping %s for %s", error, user_id)
        outcome.errors += 1

    if not subscriptions:
        logger.debug("No subscriptions with reminders enabled for %s", user_id)
        return outcome

    logger.debug("Checking %d subscription(s) for %s", len(subscriptions), user_id)

    history = NotificationHistory(settings.history)
    options = _bark_options(config)

    for subscription in subscriptions:
        try:
            renewed = renew_subscription(
                subscription, today,
                max_iterations=config.scheduler.max_renewal_iterations,
            )
        except (InvalidPeriodError, RenewalError) as e:
            logger.error(
                "Skipping subscription %s (%s) for %s: %s",
                subscription.id, subscription.name, user_id, e,
            )
            outcome.errors += 1
            continue

        if renewed is not subscription:
            try:
                with db.get_db(config.db_path) as conn:
                    db.update_subscription_dates(
                        conn, renewed.id,
                        renewed.last_payment_date, renewed.next_payment_date,
                    )
            except Exception as e:
                logger.error("Failed to save renewed dates for %s: %s", subscription.id, e)
                outcome.errors += 1
            else:
                outcome.renewals += 1
                logger.info(
                    "Auto-renewed %s (%s): %s -> %s",
                    subscription.name, user_id,
                    subscription.next_payment_date, renewed.next_payment_date,
                )

        decision = evaluate_reminder(renewed, settings, today, tz)
        if not decision:
            logger.debug(
                "No reminder for %s (%s): %s", subscription.name, user_id, decision.reason,
            )
            continue

        body = format_reminder_body(renewed, decision.days_until)
        logger.info(
            "Sending reminder for %s (%s), %d day(s) until renewal",
            subscription.name, user_id, decision.days_until,
        )
        try:
            delivered = notifier(
                settings.server_url, settings.device_key, config.bark.title, body, options,
            )
        except Exception as e:
            logger.error("Error sending reminder for %s (%s): %s", subscription.name, user_id, e)
            outcome.errors += 1
            continue

        if not delivered:
            logger.error("Reminder not delivered for %s (%s)", subscription.name, user_id)
            outcome.errors += 1
            continue

        history.record_sent(subscription.id, now)
        outcome.sent += 1

    if outcome.sent:
        updated = history.to_dict()
        try:
            with db.get_db(config.db_path) as conn:
                db.update_notification_history(conn, user_id, updated)
        except Exception as e:
            logger.error("Failed to save notification history for %s: %s", user_id, e)
            outcome.errors += 1
        else:
            settings.history = updated
            logger.info("Recorded %d reminder(s) for %s", outcome.sent, user_id)

    return outcome


def _run_user(config, settings, now, today, tz, notifier) -> _UserOutcome:
    try:
        return _process_user(config, settings, now, today, tz, notifier)
    except Exception as e:
        logger.exception("Unexpected error checking reminders for %s: %s", settings.user_id, e)
        return _UserOutcome(settings=settings, errors=1)


def _prune_histories(
    config: Config, outcomes: list[_UserOutcome], now: datetime, summary: RunSummary,
) -> None:
    """Drop expired history entries, writing only users whose history shrank."""
    retention_days = config.scheduler.history_retention_days
    for outcome in sorted(outcomes, key=lambda o: o.settings.user_id):
        settings = outcome.settings
        history = NotificationHistory(settings.history)
        before = len(history)
        kept = history.prune(retention_days, now)
        if len(kept) == before:
            continue

        try:
            with db.get_db(config.db_path) as conn:
                db.update_notification_history(conn, settings.user_id, kept)
        except Exception as e:
            logger.error("Failed to prune notification history for %s: %s", settings.user_id, e)
            summary.errors += 1
            continue

        settings.history = kept
        summary.histories_pruned += 1
        logger.info(
            "Pruned %d old history entr%s for %s",
            before - len(kept), "y" if before - len(kept) == 1 else "ies", settings.user_id,
        )


def check_subscription_reminders(
    config: Config,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> RunSummary:
    """Run one reminder tick over every user with notifications enabled."""
    tz = resolve_timezone(config.timezone)
    now = now or _now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = now.astimezone(tz).date()
    notifier = notifier or _default_notifier(config)

    summary = RunSummary(timestamp=now.astimezone(timezone.utc).isoformat())
    logger.info("Starting reminder check for %s", today.isoformat())

    try:
        with db.get_db(config.db_path) as conn:
            settings_list = db.list_users_with_notifications_enabled(conn)
    except Exception as e:
        logger.error("Failed to load notification settings: %s", e)
        summary.errors += 1
        summary.fatal_error = str(e)
        return summary

    summary.total_users = len(settings_list)
    if not settings_list:
        logger.info("No users with notifications enabled")
        return summary

    logger.info("Found %d user(s) with notifications enabled", len(settings_list))

    workers = max(1, min(config.scheduler.max_workers, len(settings_list)))
    outcomes: list[_UserOutcome] = []
    if workers == 1:
        for settings in settings_list:
            outcomes.append(_run_user(config, settings, now, today, tz, notifier))
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reminders") as pool:
            futures = [
                pool.submit(_run_user, config, settings, now, today, tz, notifier)
                for settings in settings_list
            ]
            for future in as_completed(futures):
                outcomes.append(future.result())

    for outcome in outcomes:
        summary.notifications_sent += outcome.sent
        summary.renewals += outcome.renewals
        summary.errors += outcome.errors

    _prune_histories(config, outcomes, now, summary)

    logger.info(
        "Reminder check complete: users=%d sent=%d renewed=%d pruned=%d errors=%d",
        summary.total_users, summary.notifications_sent, summary.renewals,
        summary.histories_pruned, summary.errors,
    )
    return summary


def trace_user(
    config: Config,
    user_id: str,
    now: datetime | None = None,
    send: bool = False,
    notifier: Notifier | None = None,
) -> list[TraceEntry]:
    """Walk one user's subscriptions through the reminder check.

    Nothing is written: renewed dates and sends are reported, not saved.
    With send=True, reminders that are due are pushed for real.

    Raises LookupError if the user has no notification settings.
    """
    tz = resolve_timezone(config.timezone)
    now = now or _now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = now.astimezone(tz).date()
    notifier = notifier or _default_notifier(config)

    invalid: list[db.InvalidSubscriptionError] = []
    with db.get_db(config.db_path) as conn:
        settings = db.get_notification_settings(conn, user_id)
        if settings is None:
            raise LookupError(f"No notification settings for {user_id}")
        subscriptions = db.list_subscriptions(conn, user_id, invalid=invalid)

    entries = [
        TraceEntry(subscription_id=e.subscription_id, name=e.name, stored_next=None, error=str(e))
        for e in invalid
    ]
    for subscription in subscriptions:
        entry = TraceEntry(
            subscription_id=subscription.id,
            name=subscription.name,
            stored_next=subscription.next_payment_date,
        )
        entries.append(entry)

        try:
            renewed = renew_subscription(
                subscription, today,
                max_iterations=config.scheduler.max_renewal_iterations,
            )
        except (InvalidPeriodError, RenewalError) as e:
            entry.error = str(e)
            continue

        entry.renewed_next = renewed.next_payment_date
        decision = evaluate_reminder(renewed, settings, today, tz)
        entry.days_until = decision.days_until
        entry.decision = decision.reason

        if decision:
            entry.body = format_reminder_body(renewed, decision.days_until)
            if send:
                try:
                    entry.dispatched = bool(notifier(
                        settings.server_url, settings.device_key,
                        config.bark.title, entry.body, _bark_options(config),
                    ))
                except Exception as e:
                    entry.dispatched = False
                    entry.error = str(e)

    return entries


def run_daemon(config: Config, max_ticks: int | None = None) -> int:
    """Run reminder ticks on the configured cron schedule.

    Returns the number of ticks run (only reached when max_ticks is set).
    """
    tz = resolve_timezone(config.timezone)
    schedule = croniter(config.scheduler.cron, _now(tz))
    logger.info("Reminder daemon started (schedule: %s, timezone: %s)", config.scheduler.cron, tz.key)

    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        next_run = schedule.get_next(datetime)
        delay = (next_run - _now(tz)).total_seconds()
        if delay > 0:
            logger.debug("Next reminder check at %s", next_run.isoformat())
            time.sleep(delay)

        summary = check_subscription_reminders(config)
        if summary.fatal_error:
            logger.error("Reminder check failed: %s", summary.fatal_error)
        ticks += 1

    return ticks


def main():
    """Entry point for the scheduled reminder job. Takes no arguments."""
    from .logging_setup import setup_logging

    config = load_config()
    setup_logging(config, daemon_mode=True)

    summary = check_subscription_reminders(config)
    logger.info("Summary: %s", summary.to_dict())
    sys.exit(1 if summary.fatal_error else 0)


if __name__ == "__main__":
    main()
