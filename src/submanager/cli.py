"""CLI interface for local testing and administration."""

import argparse
import json
import sys
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path

from . import db
from .bark import send_test_push, validate_bark_config
from .config import load_config
from .currency import format_currency
from .logging_setup import setup_logging
from .periods import PERIOD_KINDS
from .reminder_scheduler import (
    check_subscription_reminders,
    resolve_timezone,
    run_daemon,
    trace_user,
)
from .reminders import DAYS_BEFORE_CHOICES, days_until, validate_days_before
from .subscriptions import create_subscription, refresh_subscriptions


def _config(args):
    return load_config(Path(args.config) if args.config else None)


def _today(config) -> date:
    return datetime.now(timezone.utc).astimezone(resolve_timezone(config.timezone)).date()


def _fail(message: str):
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def cmd_init(args):
    """Initialize the database."""
    config = _config(args)
    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    db.init_db(config.db_path)
    print(f"Database initialized at {config.db_path}")


def cmd_tick(args):
    """Run one reminder check now."""
    config = _config(args)
    summary = check_subscription_reminders(config)
    print(json.dumps(summary.to_dict(), indent=2))
    if summary.fatal_error:
        sys.exit(1)


def cmd_trace(args):
    """Show how each of a user's subscriptions goes through the reminder check."""
    config = _config(args)
    try:
        entries = trace_user(config, args.user, send=args.send)
    except LookupError as e:
        _fail(str(e))

    with db.get_db(config.db_path) as conn:
        settings = db.get_notification_settings(conn, args.user)

    print(f"User: {args.user}")
    print(f"  Notifications: {'enabled' if settings.enabled else 'disabled'}")
    print(f"  Bark server: {settings.server_url or '(not set)'}")
    print(f"  Days before: {settings.days_before}")
    print(f"  Subscriptions: {len(entries)}")

    for entry in entries:
        print(f"\n  {entry.name} [{entry.subscription_id}]")
        if entry.stored_next is not None:
            print(f"     Stored date: {entry.stored_next.isoformat()}")
        if entry.error and entry.renewed_next is None:
            print(f"     ERROR: {entry.error}")
            continue
        if entry.renewed:
            print(f"     Auto-renewed: {entry.renewed_next.isoformat()}")
        print(f"     Days until: {entry.days_until}")
        print(f"     Decision: {entry.decision}")
        if entry.body:
            print(f"     Message: {entry.body!r}")
        if entry.dispatched is not None:
            print(f"     Push: {'sent' if entry.dispatched else 'FAILED'}")
        if entry.error:
            print(f"     ERROR: {entry.error}")


def cmd_daemon(args):
    """Run reminder checks on the configured schedule."""
    config = _config(args)
    try:
        run_daemon(config)
    except KeyboardInterrupt:
        print("Stopped")


def cmd_sub_add(args):
    config = _config(args)
    try:
        last_payment = date.fromisoformat(args.last_payment)
    except ValueError:
        _fail(f"Invalid date: {args.last_payment} (expected YYYY-MM-DD)")

    with db.get_db(config.db_path) as conn:
        try:
            subscription = create_subscription(
                conn,
                user_id=args.user,
                name=args.name,
                period=args.period,
                last_payment_date=last_payment,
                amount=args.amount,
                currency=args.currency.upper(),
                custom_days=args.custom_days,
                category=args.category or "",
                notification_enabled=not args.no_notify,
            )
        except ValueError as e:
            _fail(str(e))

    print(f"Subscription created: {subscription.id}")
    print(f"  Next payment: {subscription.next_payment_date.isoformat()}")


def cmd_sub_list(args):
    config = _config(args)
    today = _today(config)
    with db.get_db(config.db_path) as conn:
        subscriptions = refresh_subscriptions(
            conn, args.user, today,
            max_iterations=config.scheduler.max_renewal_iterations,
        )

    if not subscriptions:
        print("No subscriptions")
        return

    print(f"Subscriptions for {args.user}:")
    for s in subscriptions:
        remaining = days_until(s.next_payment_date, today)
        bell = "" if s.notification_enabled else " (muted)"
        print(
            f"  [{s.id}] {s.name:20} {format_currency(s.amount, s.currency):>12}/{s.period:8} "
            f"next {s.next_payment_date.isoformat()} ({remaining}d){bell}"
        )


def cmd_sub_delete(args):
    config = _config(args)
    with db.get_db(config.db_path) as conn:
        if not db.delete_subscription(conn, args.subscription_id):
            _fail(f"Subscription not found: {args.subscription_id}")
    print(f"Deleted subscription {args.subscription_id}")


def _set_muted(args, enabled: bool):
    config = _config(args)
    with db.get_db(config.db_path) as conn:
        if not db.set_subscription_notification_enabled(conn, args.subscription_id, enabled):
            _fail(f"Subscription not found: {args.subscription_id}")
    print(f"Reminders {'on' if enabled else 'off'} for {args.subscription_id}")


def cmd_sub_mute(args):
    _set_muted(args, False)


def cmd_sub_unmute(args):
    _set_muted(args, True)


def cmd_settings_show(args):
    config = _config(args)
    with db.get_db(config.db_path) as conn:
        settings = db.get_notification_settings(conn, args.user)
    if settings is None:
        print(f"No notification settings for {args.user}")
        return

    print(f"Notification settings for {args.user}:")
    print(f"  Enabled: {settings.enabled}")
    print(f"  Bark server: {settings.server_url or '(not set)'}")
    print(f"  Device key: {'(set)' if settings.device_key else '(not set)'}")
    print(f"  Days before: {settings.days_before}")
    print(f"  History entries: {len(settings.history)}")
    for subscription_id, sent_at in sorted(settings.history.items()):
        print(f"    {subscription_id}: {sent_at}")


def cmd_settings_set(args):
    config = _config(args)
    with db.get_db(config.db_path) as conn:
        settings = db.get_notification_settings(conn, args.user) or db.NotificationSettings(
            user_id=args.user,
        )

        updates = {}
        if args.enable:
            updates["enabled"] = True
        if args.disable:
            updates["enabled"] = False
        if args.server_url is not None:
            updates["server_url"] = args.server_url
        if args.device_key is not None:
            updates["device_key"] = args.device_key
        if args.days_before is not None:
            try:
                updates["days_before"] = validate_days_before(args.days_before)
            except ValueError as e:
                _fail(str(e))

        settings = replace(settings, **updates)
        if settings.enabled:
            error = validate_bark_config(settings.server_url, settings.device_key)
            if error:
                _fail(error)

        db.save_notification_settings(conn, settings)

    print(f"Saved notification settings for {args.user}")


def cmd_bark_test(args):
    config = _config(args)
    with db.get_db(config.db_path) as conn:
        settings = db.get_notification_settings(conn, args.user)
    if settings is None:
        _fail(f"No notification settings for {args.user}")

    error = validate_bark_config(settings.server_url, settings.device_key)
    if error:
        _fail(error)

    if send_test_push(
        settings.server_url, settings.device_key,
        group=config.bark.group, timeout=config.bark.timeout,
    ):
        print("Test push sent")
    else:
        _fail("Test push failed (see log)")


def main():
    parser = argparse.ArgumentParser(description="Subscription manager CLI")
    parser.add_argument("-c", "--config", help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose (DEBUG) logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # init
    subparsers.add_parser("init", help="Initialize database")

    # tick
    subparsers.add_parser("tick", help="Run one reminder check now")

    # trace
    trace_parser = subparsers.add_parser("trace", help="Trace the reminder check for one user")
    trace_parser.add_argument("-u", "--user", required=True, help="User ID")
    trace_parser.add_argument("--send", action="store_true", help="Actually push reminders that are due")

    # daemon
    subparsers.add_parser("daemon", help="Run reminder checks on the configured schedule")

    # sub (with subparsers)
    sub_parser = subparsers.add_parser("sub", help="Manage subscriptions")
    sub_subparsers = sub_parser.add_subparsers(dest="sub_action", required=True)

    # sub add
    sub_add_parser = sub_subparsers.add_parser("add", help="Add a subscription")
    sub_add_parser.add_argument("-u", "--user", required=True, help="User ID")
    sub_add_parser.add_argument("--name", required=True, help="Display name")
    sub_add_parser.add_argument("--amount", type=float, default=0.0, help="Amount per period")
    sub_add_parser.add_argument("--currency", default="CNY", help="Currency code (e.g. USD)")
    sub_add_parser.add_argument("--period", required=True, choices=PERIOD_KINDS, help="Billing period")
    sub_add_parser.add_argument("--custom-days", type=int, help="Period length in days (custom only)")
    sub_add_parser.add_argument("--last-payment", required=True, help="Last payment date (YYYY-MM-DD)")
    sub_add_parser.add_argument("--category", help="Category label")
    sub_add_parser.add_argument("--no-notify", action="store_true", help="Disable reminders")

    # sub list
    sub_list_parser = sub_subparsers.add_parser("list", help="List subscriptions (renews stale dates)")
    sub_list_parser.add_argument("-u", "--user", required=True, help="User ID")

    # sub delete / mute / unmute
    for action, help_text in [
        ("delete", "Delete a subscription"),
        ("mute", "Turn off reminders for a subscription"),
        ("unmute", "Turn on reminders for a subscription"),
    ]:
        p = sub_subparsers.add_parser(action, help=help_text)
        p.add_argument("subscription_id", help="Subscription ID")

    # settings (with subparsers)
    settings_parser = subparsers.add_parser("settings", help="Notification settings")
    settings_subparsers = settings_parser.add_subparsers(dest="settings_action", required=True)

    settings_show_parser = settings_subparsers.add_parser("show", help="Show settings")
    settings_show_parser.add_argument("-u", "--user", required=True, help="User ID")

    settings_set_parser = settings_subparsers.add_parser("set", help="Update settings")
    settings_set_parser.add_argument("-u", "--user", required=True, help="User ID")
    toggle = settings_set_parser.add_mutually_exclusive_group()
    toggle.add_argument("--enable", action="store_true", help="Turn reminders on")
    toggle.add_argument("--disable", action="store_true", help="Turn reminders off")
    settings_set_parser.add_argument("--server-url", help="Bark server URL")
    settings_set_parser.add_argument("--device-key", help="Bark device key")
    settings_set_parser.add_argument(
        "--days-before", type=int, choices=DAYS_BEFORE_CHOICES, help="Reminder lead time in days",
    )

    # bark (with subparsers)
    bark_parser = subparsers.add_parser("bark", help="Bark push tools")
    bark_subparsers = bark_parser.add_subparsers(dest="bark_action", required=True)
    bark_test_parser = bark_subparsers.add_parser("test", help="Send a test push")
    bark_test_parser.add_argument("-u", "--user", required=True, help="User ID")

    args = parser.parse_args()

    if args.command != "init":
        config = _config(args)
        setup_logging(config, verbose=args.verbose, daemon_mode=args.command == "daemon")

    commands = {
        "init": cmd_init,
        "tick": cmd_tick,
        "trace": cmd_trace,
        "daemon": cmd_daemon,
    }

    if args.command == "sub":
        sub_commands = {
            "add": cmd_sub_add,
            "list": cmd_sub_list,
            "delete": cmd_sub_delete,
            "mute": cmd_sub_mute,
            "unmute": cmd_sub_unmute,
        }
        sub_commands[args.sub_action](args)
    elif args.command == "settings":
        settings_commands = {
            "show": cmd_settings_show,
            "set": cmd_settings_set,
        }
        settings_commands[args.settings_action](args)
    elif args.command == "bark":
        bark_commands = {
            "test": cmd_bark_test,
        }
        bark_commands[args.bark_action](args)
    else:
        commands[args.command](args)


if __name__ == "__main__":
    main()
