"""Billing period arithmetic.

Month and year steps clamp to the last valid day of the target month:
Jan 31 + 1 month = Feb 28 (Feb 29 in leap years), Feb 29 + 1 year = Feb 28.
Each step starts from the previous result, so a month-end anchor drifts:
Jan 31 -> Feb 28 -> Mar 28.
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

MONTHLY = "monthly"
YEARLY = "yearly"
CUSTOM = "custom"

PERIOD_KINDS = (MONTHLY, YEARLY, CUSTOM)


class InvalidPeriodError(ValueError):
    """Raised for a period that cannot move a date forward."""


@dataclass(frozen=True)
class Period:
    kind: str
    days: int | None = None  # custom periods only

    @classmethod
    def monthly(cls) -> "Period":
        return cls(MONTHLY)

    @classmethod
    def yearly(cls) -> "Period":
        return cls(YEARLY)

    @classmethod
    def custom(cls, days: int) -> "Period":
        period = cls(CUSTOM, days)
        period.validate()
        return period

    def validate(self) -> None:
        if self.kind not in PERIOD_KINDS:
            raise InvalidPeriodError(f"Unknown period: {self.kind!r}")
        if self.kind == CUSTOM:
            if not isinstance(self.days, int) or isinstance(self.days, bool) or self.days <= 0:
                raise InvalidPeriodError(
                    f"Custom period needs a positive number of days, got {self.days!r}"
                )

    @property
    def noun(self) -> str:
        """Per-period unit used in reminder text ("$9.99/month")."""
        if self.kind == MONTHLY:
            return "month"
        if self.kind == YEARLY:
            return "year"
        return self.kind


def parse_period(kind: str, custom_days: int | str | None = None) -> Period:
    """Build a Period from stored columns.

    custom_days may arrive as a numeric string (form input / legacy rows).
    """
    kind = (kind or "").strip().lower()
    if kind != CUSTOM:
        period = Period(kind)
        period.validate()
        return period

    if isinstance(custom_days, str):
        try:
            custom_days = int(custom_days.strip())
        except ValueError:
            raise InvalidPeriodError(
                f"Custom period needs a positive number of days, got {custom_days!r}"
            ) from None
    return Period.custom(custom_days)


def _add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance(d: date, period: Period) -> date:
    """Return the due date one period after d."""
    period.validate()
    if period.kind == MONTHLY:
        return _add_months(d, 1)
    if period.kind == YEARLY:
        return _add_months(d, 12)
    return d + timedelta(days=period.days)
