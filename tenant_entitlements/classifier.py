"""
Expiration classification for subscriptions.

Pure functions: no storage access, no side effects.
"""

from datetime import datetime, timezone

from .models import ExpirationStatus, Subscription


def classify(subscription: Subscription, now: datetime) -> ExpirationStatus:
    """
    Classify a subscription against the current time.

    A subscription is expired when it has an end_date strictly before now.
    grace_days_elapsed counts UTC calendar-day boundaries crossed since
    end_date: 23:59 to 00:01 the next day is 1, 00:01 to 23:59 the same day
    is 0.

    Args:
        subscription: Subscription snapshot
        now: Timezone-aware current time

    Returns:
        ExpirationStatus (grace_days_elapsed is 0 when not expired)
    """
    end_date = subscription.end_date
    if end_date is None or not end_date < now:
        return ExpirationStatus(is_expired=False)
    elapsed = now.astimezone(timezone.utc).date() - end_date.astimezone(timezone.utc).date()
    return ExpirationStatus(is_expired=True, grace_days_elapsed=elapsed.days)


def days_remaining_in_grace(expiration: ExpirationStatus, grace_period_days: int) -> int:
    """Whole days left before the retention boundary (never negative)."""
    return max(0, grace_period_days - expiration.grace_days_elapsed)
