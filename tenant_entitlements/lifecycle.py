"""
Subscription lifecycle transitions driven by time passing.

SubscriptionLifecycle.reconcile is the only place that changes a
subscription's status because its end_date went by. Every gate calls it
before evaluating access, since the stored status can lag wall-clock time.

Transitions:
- free + trialing + expired               -> canceled (canceled_at = now)
- paid + expired >= grace window, not canceled -> canceled (canceled_at = now)
- paid + expired within grace + active     -> past_due
- anything else                            -> unchanged, no write

The target state depends only on (plan, status, end_date, now), so
concurrent reconciles for one tenant write the same values.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .classifier import classify
from .config import GRACE_PERIOD_DAYS
from .errors import SubscriptionStorageError
from .models import ExpirationStatus, Subscription, SubscriptionStatus
from .plans import Plan
from .storage import SubscriptionStorage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def plan_transition(
    subscription: Subscription,
    expiration: ExpirationStatus,
    now: datetime,
    grace_period_days: int = GRACE_PERIOD_DAYS,
) -> Optional[Dict[str, Any]]:
    """
    Compute the patch a subscription needs, or None when it is settled.

    Args:
        subscription: Current snapshot
        expiration: Result of classify() for the same snapshot and now
        now: Time used for canceled_at
        grace_period_days: Days a paid plan may stay past_due

    Returns:
        Patch dict for storage.update_subscription, or None
    """
    if not expiration.is_expired:
        return None

    if subscription.plan is Plan.FREE:
        if subscription.status is SubscriptionStatus.TRIALING:
            return {"status": SubscriptionStatus.CANCELED, "canceled_at": now}
        return None

    if expiration.grace_days_elapsed >= grace_period_days:
        if subscription.status is not SubscriptionStatus.CANCELED:
            return {"status": SubscriptionStatus.CANCELED, "canceled_at": now}
        return None

    if subscription.status is SubscriptionStatus.ACTIVE:
        return {"status": SubscriptionStatus.PAST_DUE}
    return None


class SubscriptionLifecycle:
    """Applies expiration-driven transitions and persists them."""

    def __init__(
        self,
        storage: SubscriptionStorage,
        *,
        grace_period_days: int = GRACE_PERIOD_DAYS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.grace_period_days = grace_period_days
        self._clock = clock or _utcnow

    def reconcile(self, tenant_id: str, now: Optional[datetime] = None) -> Optional[Subscription]:
        """
        Read the tenant's subscription and apply any due transition.

        Storage failures do not propagate from here: a failed read returns
        None and a failed write returns the record re-read from storage, so
        callers still run their gate logic on whatever state is stored.

        Args:
            tenant_id: Tenant whose subscription to reconcile
            now: Evaluation time (defaults to the lifecycle clock)

        Returns:
            The reconciled subscription, the unreconciled one on write
            failure, or None when the tenant has no subscription
        """
        now = now or self._clock()

        try:
            subscription = self.storage.get_subscription(tenant_id)
        except SubscriptionStorageError:
            logger.exception(
                "Subscription read failed during reconcile",
                extra={"tenant_id": tenant_id},
            )
            return None

        if subscription is None:
            return None

        expiration = classify(subscription, now)
        patch = plan_transition(subscription, expiration, now, self.grace_period_days)
        if patch is None:
            return subscription

        try:
            updated = self.storage.update_subscription(tenant_id, patch)
        except SubscriptionStorageError:
            logger.exception(
                "Subscription transition write failed; continuing with stored state",
                extra={
                    "tenant_id": tenant_id,
                    "subscription_id": subscription.id,
                    "from_status": subscription.status.value,
                    "to_status": patch["status"].value,
                },
            )
            return self._read_fresh(tenant_id)

        logger.info(
            "Subscription transitioned",
            extra={
                "tenant_id": tenant_id,
                "subscription_id": subscription.id,
                "plan": subscription.plan.value,
                "from_status": subscription.status.value,
                "to_status": updated.status.value,
                "grace_days_elapsed": expiration.grace_days_elapsed,
            },
        )
        return updated

    def _read_fresh(self, tenant_id: str) -> Optional[Subscription]:
        try:
            return self.storage.get_subscription(tenant_id)
        except SubscriptionStorageError:
            logger.exception(
                "Subscription re-read failed after write failure",
                extra={"tenant_id": tenant_id},
            )
            return None
