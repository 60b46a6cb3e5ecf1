"""
Pydantic schemas for subscription entitlement responses.

Denial bodies mirror AuthorizationVerdict.to_dict().
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class VerdictResponse(BaseModel):
    """Body of a 403 returned for a denied subscription check."""

    error: str = Field(..., description="Stable reason code, e.g. SUBSCRIPTION_EXPIRED_GRACE_PERIOD")
    message: str = Field(..., description="Human-readable explanation")
    status: Optional[str] = Field(None, description="Stored subscription status")
    days_elapsed: Optional[int] = Field(None, description="Whole days since the subscription ended")
    days_remaining: Optional[int] = Field(None, description="Days left before the data retention boundary")
    required_plan: Optional[str] = Field(None, description="Lowest plan that would be allowed")
    current_plan: Optional[str] = Field(None, description="Tenant's current plan")
    feature: Optional[str] = Field(None, description="Feature that was requested")


class LimitResponse(BaseModel):
    """Usage against a plan limit. limit is -1 when unlimited."""

    limit_type: str = Field(..., description="patients, users, appointments or transactions")
    allowed: bool = Field(..., description="Whether one more record may be created")
    current: int = Field(..., description="Current count (0 when unlimited)")
    limit: int = Field(..., description="Plan ceiling, -1 for unlimited")


class SubscriptionSummaryResponse(BaseModel):
    """Current tenant's subscription, for UX only. Gates remain authoritative."""

    id: str
    plan: str
    status: str
    effective_plan: str = Field(..., description="Plan used for module access (free unless active)")
    start_date: datetime
    end_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    access_allowed: bool
    reason_code: Optional[str] = None
    days_remaining: Optional[int] = None
    storage: str
    features: List[str] = Field(default_factory=list, description="Plan feature list")
    modules: Dict[str, str] = Field(default_factory=dict, description="Unlocked module -> level")
