"""
Authorization gates for privileged requests.

Every gate reconciles the tenant's subscription first, then runs the shared
base access check (_resolve_base_access). The plan and feature gates layer
one extra check on top of an allowed base verdict.

Denials are returned as AuthorizationVerdict values, never raised.
Storage read failures raise SubscriptionStorageError (fail closed).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .classifier import classify, days_remaining_in_grace
from .config import GRACE_PERIOD_DAYS
from .lifecycle import SubscriptionLifecycle
from .loader import get_catalog
from .models import ACCESS_STATUSES, AuthorizationVerdict, ReasonCode
from .plans import Plan, PlanCatalog, plan_hierarchy_index
from .storage import SubscriptionStorage

logger = logging.getLogger(__name__)


class EntitlementGate:
    """
    Access, plan and feature checks for a tenant.

    Usage:
        gate = EntitlementGate(storage)
        verdict = gate.check_feature(tenant_id, "white_label")
        if not verdict.allowed:
            ...  # map verdict.reason_code to a transport response
    """

    def __init__(
        self,
        storage: SubscriptionStorage,
        *,
        catalog: Optional[PlanCatalog] = None,
        lifecycle: Optional[SubscriptionLifecycle] = None,
        grace_period_days: int = GRACE_PERIOD_DAYS,
    ):
        self.storage = storage
        self.catalog = catalog or get_catalog()
        self.grace_period_days = grace_period_days
        self.lifecycle = lifecycle or SubscriptionLifecycle(storage, grace_period_days=grace_period_days)

    def check_access(self, tenant_id: str, now: Optional[datetime] = None) -> AuthorizationVerdict:
        """Is the tenant allowed to use the product at all right now."""
        verdict = self._resolve_base_access(tenant_id, now or datetime.now(timezone.utc))
        return self._logged(tenant_id, verdict, check="access")

    def check_plan(
        self,
        tenant_id: str,
        min_plan: Plan | str,
        now: Optional[datetime] = None,
    ) -> AuthorizationVerdict:
        """
        Base access plus a minimum tier.

        Args:
            tenant_id: Tenant ID
            min_plan: Lowest tier allowed through
            now: Evaluation time

        Returns:
            Base denial unchanged, INSUFFICIENT_PLAN, or allowed
        """
        required = Plan.parse(min_plan)
        verdict = self._resolve_base_access(tenant_id, now or datetime.now(timezone.utc))
        if not verdict.allowed:
            return self._logged(tenant_id, verdict, check="plan")

        subscription = verdict.subscription
        if plan_hierarchy_index(subscription.plan) < plan_hierarchy_index(required):
            verdict = AuthorizationVerdict.deny(
                ReasonCode.INSUFFICIENT_PLAN,
                f"This feature requires the {required.value} plan or higher",
                subscription,
                required_plan=required,
                current_plan=subscription.plan,
            )
        return self._logged(tenant_id, verdict, check="plan")

    def check_feature(
        self,
        tenant_id: str,
        feature_name: str,
        now: Optional[datetime] = None,
    ) -> AuthorizationVerdict:
        """
        Base access plus the feature's plan allow-list.

        Runs the same base check as check_access, so a lapsed paid plan is
        reported with its grace or deletion code before the feature lookup.
        Unknown features are denied and report enterprise as the required
        plan.
        """
        verdict = self._resolve_base_access(tenant_id, now or datetime.now(timezone.utc))
        if not verdict.allowed:
            return self._logged(tenant_id, verdict, check="feature")

        subscription = verdict.subscription
        if not self.catalog.is_feature_enabled(subscription.plan, feature_name):
            if self.catalog.allowed_plans(feature_name) is None:
                logger.warning(
                    "Feature has no plan mapping; gating to enterprise",
                    extra={"tenant_id": tenant_id, "feature": feature_name},
                )
            required = self.catalog.minimum_plan_for(feature_name)
            verdict = AuthorizationVerdict.deny(
                ReasonCode.FEATURE_NOT_AVAILABLE,
                f"This feature requires the {required.value} plan or higher",
                subscription,
                feature=feature_name,
                required_plan=required,
                current_plan=subscription.plan,
            )
        return self._logged(tenant_id, verdict, check="feature")

    def _resolve_base_access(self, tenant_id: str, now: datetime) -> AuthorizationVerdict:
        subscription = self.lifecycle.reconcile(tenant_id, now=now)
        if subscription is None:
            # direct read; storage errors propagate from here
            subscription = self.storage.get_subscription(tenant_id)
        if subscription is None:
            return AuthorizationVerdict.deny(
                ReasonCode.SUBSCRIPTION_NOT_FOUND,
                "Subscription not found",
            )

        expiration = classify(subscription, now)

        if expiration.is_expired and not subscription.is_paid:
            return AuthorizationVerdict.deny(
                ReasonCode.TRIAL_EXPIRED,
                "Your free trial has expired. Choose a plan to keep using the product.",
                subscription,
                current_plan=subscription.plan,
            )

        # checked before status: reconcile has already demoted these to past_due/canceled
        if expiration.is_expired:
            elapsed = expiration.grace_days_elapsed
            if elapsed >= self.grace_period_days:
                return AuthorizationVerdict.deny(
                    ReasonCode.SUBSCRIPTION_EXPIRED_DELETED,
                    f"Subscription expired {elapsed} days ago and the data retention period has ended",
                    subscription,
                    days_elapsed=elapsed,
                    current_plan=subscription.plan,
                )
            remaining = days_remaining_in_grace(expiration, self.grace_period_days)
            return AuthorizationVerdict.deny(
                ReasonCode.SUBSCRIPTION_EXPIRED_GRACE_PERIOD,
                f"Subscription expired {elapsed} days ago. Renew within {remaining} days to keep your data.",
                subscription,
                days_elapsed=elapsed,
                days_remaining=remaining,
                current_plan=subscription.plan,
            )

        if subscription.status not in ACCESS_STATUSES:
            return AuthorizationVerdict.deny(
                ReasonCode.SUBSCRIPTION_INACTIVE,
                "Subscription is inactive or canceled",
                subscription,
                current_plan=subscription.plan,
            )

        return AuthorizationVerdict.allow(subscription)

    @staticmethod
    def _logged(tenant_id: str, verdict: AuthorizationVerdict, *, check: str) -> AuthorizationVerdict:
        if not verdict.allowed:
            logger.info(
                "Subscription check denied",
                extra={
                    "tenant_id": tenant_id,
                    "check": check,
                    "reason_code": verdict.reason_code.value,
                    "plan": verdict.current_plan.value if verdict.current_plan else None,
                    "required_plan": verdict.required_plan.value if verdict.required_plan else None,
                },
            )
        return verdict
