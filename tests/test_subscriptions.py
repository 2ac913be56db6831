"""Tests for subscriptions module."""

from datetime import date

import pytest

from submanager import db
from submanager.periods import InvalidPeriodError
from submanager.subscriptions import create_subscription, refresh_subscriptions


class TestCreateSubscription:
    def test_next_date_one_period_after_last(self, db_conn):
        sub = create_subscription(
            db_conn, "alice", "Netflix", "monthly", date(2024, 1, 31), amount=15.99, currency="USD",
        )
        assert sub.next_payment_date == date(2024, 2, 29)
        assert sub.last_payment_date == date(2024, 1, 31)
        assert db.get_subscription(db_conn, sub.id) == sub

    def test_custom_period(self, db_conn):
        sub = create_subscription(db_conn, "alice", "Gym", "custom", date(2024, 1, 1), custom_days="30")
        assert sub.next_payment_date == date(2024, 1, 31)
        assert sub.custom_days == "30"

    def test_rejects_non_positive_custom_days(self, db_conn):
        with pytest.raises(InvalidPeriodError):
            create_subscription(db_conn, "alice", "Gym", "custom", date(2024, 1, 1), custom_days=0)
        assert db.list_subscriptions(db_conn, "alice") == []

    def test_rejects_unknown_period(self, db_conn):
        with pytest.raises(InvalidPeriodError):
            create_subscription(db_conn, "alice", "Gym", "weekly", date(2024, 1, 1))

    def test_rejects_blank_name(self, db_conn):
        with pytest.raises(ValueError):
            create_subscription(db_conn, "alice", "  ", "monthly", date(2024, 1, 1))

    def test_rejects_negative_amount(self, db_conn):
        with pytest.raises(ValueError):
            create_subscription(db_conn, "alice", "X", "monthly", date(2024, 1, 1), amount=-1)


class TestRefreshSubscriptions:
    def test_persists_renewed_dates(self, db_conn):
        sub_id = db.add_subscription(
            db_conn, "alice", "Netflix", "monthly",
            date(2024, 1, 15), date(2024, 2, 15),
        )
        refreshed = refresh_subscriptions(db_conn, "alice", date(2024, 5, 1))
        assert refreshed[0].next_payment_date == date(2024, 5, 15)

        stored = db.get_subscription(db_conn, sub_id)
        assert stored.last_payment_date == date(2024, 4, 15)
        assert stored.next_payment_date == date(2024, 5, 15)

    def test_current_rows_untouched(self, db_conn):
        db.add_subscription(
            db_conn, "alice", "Netflix", "monthly", date(2024, 4, 15), date(2024, 5, 15),
        )
        before = db_conn.execute("SELECT updated_at FROM subscriptions").fetchone()[0]
        refresh_subscriptions(db_conn, "alice", date(2024, 5, 1))
        after = db_conn.execute("SELECT updated_at FROM subscriptions").fetchone()[0]
        assert before == after

    def test_bad_row_returned_as_stored(self, db_conn):
        db.add_subscription(
            db_conn, "alice", "Broken", "custom", date(2024, 1, 1), date(2024, 1, 2),
            custom_days=0,
        )
        db.add_subscription(
            db_conn, "alice", "Fine", "yearly", date(2023, 3, 1), date(2024, 3, 1),
        )
        refreshed = refresh_subscriptions(db_conn, "alice", date(2024, 5, 1))
        by_name = {s.name: s for s in refreshed}
        assert by_name["Broken"].next_payment_date == date(2024, 1, 2)
        assert by_name["Fine"].next_payment_date == date(2025, 3, 1)

    def test_unreadable_dates_left_out(self, db_conn):
        db.add_subscription(
            db_conn, "alice", "Broken", "monthly", date(2024, 1, 1), date(2024, 2, 1),
            subscription_id="bad",
        )
        db.add_subscription(
            db_conn, "alice", "Fine", "monthly", date(2024, 1, 15), date(2024, 2, 15),
        )
        db_conn.execute("UPDATE subscriptions SET next_payment_date = 'garbage' WHERE id = 'bad'")

        refreshed = refresh_subscriptions(db_conn, "alice", date(2024, 5, 1))

        assert [s.name for s in refreshed] == ["Fine"]
        assert refreshed[0].next_payment_date == date(2024, 5, 15)

    def test_same_result_as_batch_resolver(self, db_conn):
        from submanager.renewal import renew_subscription

        db.add_subscription(
            db_conn, "alice", "Netflix", "monthly",
            date(2023, 12, 31), date(2024, 1, 31), subscription_id="sub1",
        )
        stored = db.get_subscription(db_conn, "sub1")
        expected = renew_subscription(stored, date(2024, 7, 4))

        refreshed = refresh_subscriptions(db_conn, "alice", date(2024, 7, 4))
        assert refreshed[0] == expected
