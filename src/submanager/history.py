"""Per-user record of the last successful reminder for each subscription."""

import logging
from datetime import date, datetime, timedelta, timezone, tzinfo

logger = logging.getLogger("submanager.history")

DEFAULT_RETENTION_DAYS = 30


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp, treating naive values as UTC.

    Returns None for missing or unreadable values.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class NotificationHistory:
    """Map of subscription id to ISO timestamp of the last successful send."""

    def __init__(self, entries: dict[str, str] | None = None):
        self._entries: dict[str, str] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, subscription_id: str) -> bool:
        return subscription_id in self._entries

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def record_sent(self, subscription_id: str, timestamp: datetime) -> None:
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        self._entries[subscription_id] = timestamp.astimezone(timezone.utc).isoformat()

    def last_sent(self, subscription_id: str) -> datetime | None:
        return parse_timestamp(self._entries.get(subscription_id))

    def sent_on(self, subscription_id: str, day: date, tz: tzinfo | None = None) -> bool:
        """Whether the last send fell on the given calendar day in tz."""
        last = self.last_sent(subscription_id)
        if last is None:
            return False
        return last.astimezone(tz or timezone.utc).date() == day

    def forget(self, subscription_id: str) -> None:
        self._entries.pop(subscription_id, None)

    def prune(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        now: datetime | None = None,
    ) -> dict[str, str]:
        """Drop entries older than retention_days and return what remains.

        Unreadable timestamps are dropped too.
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        cutoff = now - timedelta(days=retention_days)

        kept = {}
        for subscription_id, value in self._entries.items():
            sent_at = parse_timestamp(value)
            if sent_at is not None and sent_at >= cutoff:
                kept[subscription_id] = value
            else:
                logger.debug("Pruning history entry %s (%s)", subscription_id, value)
        self._entries = kept
        return dict(kept)
