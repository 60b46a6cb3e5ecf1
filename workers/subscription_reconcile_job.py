"""
Subscription reconciliation job.

Runs periodically so lapsed subscriptions are transitioned even for tenants
that make no requests. Request-time reconciliation remains the source of
truth; this job only applies the same transitions earlier.

Handles:
- Expired free trials (trialing -> canceled)
- Lapsed paid plans (active -> past_due, then canceled after the grace window)
- Reporting subscriptions past the data retention boundary (never deletes)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from tenant_entitlements.classifier import classify
from tenant_entitlements.config import GRACE_PERIOD_DAYS, RECONCILE_INTERVAL_SECONDS
from tenant_entitlements.db import SqlSubscriptionStorage
from tenant_entitlements.errors import SubscriptionStorageError
from tenant_entitlements.lifecycle import SubscriptionLifecycle, plan_transition
from tenant_entitlements.models import SubscriptionStatus
from tenant_entitlements.storage import SubscriptionStorage

logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    started_at: str
    completed_at: Optional[str] = None
    subscriptions_checked: int = 0
    subscriptions_updated: int = 0
    subscriptions_canceled: int = 0
    retention_expired: int = 0
    errors: int = 0
    retention_expired_tenants: List[str] = field(default_factory=list)


def run_subscription_reconcile_cycle(
    storage: SubscriptionStorage,
    now: Optional[datetime] = None,
    *,
    grace_period_days: int = GRACE_PERIOD_DAYS,
) -> ReconcileStats:
    """
    Reconcile every expired subscription once.

    A failure for one tenant is counted and the cycle moves on.

    Args:
        storage: Subscription storage
        now: Evaluation time (defaults to current UTC time)
        grace_period_days: Days a paid plan may remain past_due

    Returns:
        ReconcileStats summary
    """
    now = now or datetime.now(timezone.utc)
    stats = ReconcileStats(started_at=now.isoformat())
    lifecycle = SubscriptionLifecycle(storage, grace_period_days=grace_period_days)

    logger.info("Starting subscription reconciliation cycle")

    try:
        expired = storage.list_expired_subscriptions(now)
    except SubscriptionStorageError:
        logger.exception("Failed to list expired subscriptions")
        stats.errors += 1
        stats.completed_at = datetime.now(timezone.utc).isoformat()
        return stats

    for subscription in expired:
        stats.subscriptions_checked += 1
        try:
            reconciled = lifecycle.reconcile(subscription.tenant_id, now=now)
        except Exception:
            logger.exception(
                "Failed to reconcile subscription",
                extra={"tenant_id": subscription.tenant_id, "subscription_id": subscription.id},
            )
            stats.errors += 1
            continue

        if reconciled is None:
            stats.errors += 1
            continue

        if reconciled.status is not subscription.status:
            stats.subscriptions_updated += 1
            if reconciled.status is SubscriptionStatus.CANCELED:
                stats.subscriptions_canceled += 1
        elif _transition_pending(reconciled, now, grace_period_days):
            # reconcile degraded to the stored state after a write failure
            stats.errors += 1

        if reconciled.is_paid and classify(reconciled, now).grace_days_elapsed >= grace_period_days:
            stats.retention_expired += 1
            stats.retention_expired_tenants.append(reconciled.tenant_id)

    stats.completed_at = datetime.now(timezone.utc).isoformat()
    logger.info(
        "Subscription reconciliation completed",
        extra={
            "subscriptions_checked": stats.subscriptions_checked,
            "subscriptions_updated": stats.subscriptions_updated,
            "subscriptions_canceled": stats.subscriptions_canceled,
            "retention_expired": stats.retention_expired,
            "errors": stats.errors,
        },
    )
    return stats


def _transition_pending(subscription, now: datetime, grace_period_days: int) -> bool:
    return plan_transition(subscription, classify(subscription, now), now, grace_period_days) is not None


def run_forever(session_factory, interval_seconds: int = RECONCILE_INTERVAL_SECONDS) -> None:
    """
    Run a reconcile cycle every interval_seconds with a fresh session.

    Each session is closed after its cycle. A failed cycle is logged and
    the loop keeps going.
    """
    while True:
        session = session_factory()
        try:
            run_subscription_reconcile_cycle(SqlSubscriptionStorage(session))
        except Exception:
            logger.exception("Subscription reconciliation cycle failed")
        finally:
            session.close()
        time.sleep(interval_seconds)


# Entry point for cron/scheduler
if __name__ == "__main__":
    import sys

    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from tenant_entitlements.config import DATABASE_URL

    logging.basicConfig(level=logging.INFO)

    if not DATABASE_URL:
        logger.error("DATABASE_URL environment variable is required")
        sys.exit(1)

    engine = create_engine(DATABASE_URL)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    try:
        results = run_subscription_reconcile_cycle(SqlSubscriptionStorage(session))
        logger.info("Reconciliation completed: %s", results)
    finally:
        session.close()
