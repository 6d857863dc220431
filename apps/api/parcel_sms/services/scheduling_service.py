"""Reminder scheduling policy.

A reminder is due 48 hours before the pickup window opens. Appointments
created (or moved) closer than that get their reminder after a short
grace period instead, so a quick correction can still replace it.
"""

from datetime import datetime, timedelta

REMINDER_HOURS_BEFORE_PICKUP = 48
GRACE_PERIOD_MINUTES = 5

REMINDER_LEAD_TIME = timedelta(hours=REMINDER_HOURS_BEFORE_PICKUP)
GRACE_PERIOD = timedelta(minutes=GRACE_PERIOD_MINUTES)


def calculate_reminder_due_at(pickup_window_start: datetime, now: datetime) -> datetime:
    """Return when the reminder for a pickup should be sent.

    Strictly more than 48h ahead -> pickup minus 48h; otherwise (including
    exactly 48h and pickups already in the past) -> now plus the grace period.
    """
    if pickup_window_start - now > REMINDER_LEAD_TIME:
        return pickup_window_start - REMINDER_LEAD_TIME
    return now + GRACE_PERIOD


def calculate_immediate_due_at(now: datetime) -> datetime:
    """Due time for notices that go out right away (updates, resends)."""
    return now + GRACE_PERIOD
