"""
Plan usage limits (patients, users, monthly appointments/transactions).

Advisory checks for endpoints that create new records. No reconciliation:
the subscription is read as stored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from .loader import get_catalog
from .models import LimitCheckResult
from .plans import UNLIMITED, LimitType, PlanCatalog
from .storage import SubscriptionStorage

logger = logging.getLogger(__name__)


def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """First instant of now's UTC calendar month and of the following month."""
    now = now.astimezone(timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class UsageLimitChecker:
    """Compares live resource counts against the tenant's plan limits."""

    def __init__(self, storage: SubscriptionStorage, *, catalog: Optional[PlanCatalog] = None):
        self.storage = storage
        self.catalog = catalog or get_catalog()

    def check_limit(
        self,
        tenant_id: str,
        limit_type: LimitType | str,
        now: Optional[datetime] = None,
    ) -> LimitCheckResult:
        """
        Check whether the tenant may create one more resource of limit_type.

        Reaching the limit exactly blocks the next creation. Unlimited plans
        (-1) return immediately without counting.

        Args:
            tenant_id: Tenant ID
            limit_type: patients, users, appointments or transactions
            now: Reference time for the monthly limits

        Returns:
            LimitCheckResult(allowed, current, limit)
        """
        limit_type = LimitType(limit_type)
        subscription = self.storage.get_subscription(tenant_id)
        if subscription is None:
            return LimitCheckResult(allowed=False, current=0, limit=0)

        limit = self.catalog.features_for(subscription.plan).limit_for(limit_type)
        if limit == UNLIMITED:
            return LimitCheckResult(allowed=True, current=0, limit=UNLIMITED)

        current = self._count(tenant_id, limit_type, now or datetime.now(timezone.utc))
        result = LimitCheckResult(allowed=current < limit, current=current, limit=limit)
        if not result.allowed:
            logger.info(
                "Plan limit reached",
                extra={
                    "tenant_id": tenant_id,
                    "limit_type": limit_type.value,
                    "plan": subscription.plan.value,
                    "current": current,
                    "limit": limit,
                },
            )
        return result

    def _count(self, tenant_id: str, limit_type: LimitType, now: datetime) -> int:
        if limit_type is LimitType.PATIENTS:
            return self.storage.count_patients(tenant_id)
        if limit_type is LimitType.USERS:
            organization_id = self.storage.get_organization_id(tenant_id)
            if organization_id is None:
                return 0
            return self.storage.count_users(organization_id)

        start, end = month_bounds(now)
        if limit_type is LimitType.APPOINTMENTS:
            return self.storage.count_appointments(tenant_id, start, end)
        return self.storage.count_transactions(tenant_id, start, end)
