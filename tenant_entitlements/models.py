from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from . import config
from .plans import Plan


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"


ACCESS_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})

# Fields the lifecycle and billing writers may patch
PATCHABLE_FIELDS = frozenset({"plan", "status", "end_date", "canceled_at"})


def _require_aware(name: str, value: Optional[datetime]) -> None:
    if value is not None and value.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware")


@dataclass(frozen=True)
class Subscription:
    """Snapshot of a tenant's subscription as read from storage."""

    id: str
    tenant_id: str
    plan: Plan
    status: SubscriptionStatus
    start_date: datetime
    end_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        tenant_id = str(self.tenant_id).strip()
        if not tenant_id:
            raise ValueError("tenant_id is required")
        object.__setattr__(self, "tenant_id", tenant_id)
        object.__setattr__(self, "plan", Plan.parse(self.plan))
        object.__setattr__(self, "status", SubscriptionStatus(self.status))
        _require_aware("start_date", self.start_date)
        _require_aware("end_date", self.end_date)
        _require_aware("canceled_at", self.canceled_at)

    @property
    def is_paid(self) -> bool:
        return self.plan.is_paid

    def apply(self, patch: Mapping[str, Any]) -> "Subscription":
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot patch subscription fields: {', '.join(sorted(unknown))}")
        return replace(self, **dict(patch))

    @classmethod
    def new_trial(
        cls,
        tenant_id: str,
        now: Optional[datetime] = None,
        *,
        trial_days: Optional[int] = None,
        start_date: Optional[datetime] = None,
    ) -> "Subscription":
        """
        Build the free trial created at tenant signup.

        start_date defaults to now; a trial whose window already closed is
        created canceled so it never grants access.
        """
        now = now or datetime.now(timezone.utc)
        start = start_date or now
        days = config.TRIAL_PERIOD_DAYS if trial_days is None else trial_days
        end = start + timedelta(days=days)
        expired = end < now
        return cls(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            plan=Plan.FREE,
            status=SubscriptionStatus.CANCELED if expired else SubscriptionStatus.TRIALING,
            start_date=start,
            end_date=end,
            canceled_at=now if expired else None,
        )


@dataclass(frozen=True)
class ExpirationStatus:
    is_expired: bool
    grace_days_elapsed: int = 0


class ReasonCode(str, Enum):
    """Stable denial codes surfaced to transport layers."""

    SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"
    SUBSCRIPTION_EXPIRED_GRACE_PERIOD = "SUBSCRIPTION_EXPIRED_GRACE_PERIOD"
    SUBSCRIPTION_EXPIRED_DELETED = "SUBSCRIPTION_EXPIRED_DELETED"
    INSUFFICIENT_PLAN = "INSUFFICIENT_PLAN"
    FEATURE_NOT_AVAILABLE = "FEATURE_NOT_AVAILABLE"


@dataclass(frozen=True)
class AuthorizationVerdict:
    """Per-request authorization outcome. Never persisted."""

    allowed: bool
    reason_code: Optional[ReasonCode] = None
    message: Optional[str] = None
    subscription: Optional[Subscription] = None
    days_elapsed: Optional[int] = None
    days_remaining: Optional[int] = None
    required_plan: Optional[Plan] = None
    current_plan: Optional[Plan] = None
    feature: Optional[str] = None

    @classmethod
    def allow(cls, subscription: Subscription) -> "AuthorizationVerdict":
        return cls(allowed=True, subscription=subscription, current_plan=subscription.plan)

    @classmethod
    def deny(
        cls,
        reason_code: ReasonCode,
        message: str,
        subscription: Optional[Subscription] = None,
        **fields: Any,
    ) -> "AuthorizationVerdict":
        return cls(
            allowed=False,
            reason_code=reason_code,
            message=message,
            subscription=subscription,
            **fields,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Denial body for transport layers; omits fields that do not apply."""
        d: Dict[str, Any] = {
            "error": self.reason_code.value if self.reason_code else None,
            "message": self.message,
        }
        if self.subscription is not None:
            d["status"] = self.subscription.status.value
        for name in ("days_elapsed", "days_remaining", "feature"):
            value = getattr(self, name)
            if value is not None:
                d[name] = value
        if self.required_plan is not None:
            d["required_plan"] = self.required_plan.value
        if self.current_plan is not None:
            d["current_plan"] = self.current_plan.value
        return d


@dataclass(frozen=True)
class LimitCheckResult:
    allowed: bool
    current: int
    limit: int

    @property
    def unlimited(self) -> bool:
        return self.limit == -1
