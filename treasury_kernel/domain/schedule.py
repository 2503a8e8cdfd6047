"""Batch window arithmetic for scheduled payouts."""

from datetime import datetime, time, timedelta, timezone


def next_batch_window(now: datetime, batch_time: time) -> datetime:
    """
    Next daily batch run strictly after ``now``.

    Today's window at ``batch_time`` UTC if it is still ahead, otherwise
    tomorrow's.
    """
    now = now.astimezone(timezone.utc)
    candidate = datetime.combine(now.date(), batch_time, tzinfo=timezone.utc)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def current_batch_window(now: datetime, batch_time: time) -> datetime:
    """Most recent batch window at or before ``now``."""
    return next_batch_window(now, batch_time) - timedelta(days=1)
