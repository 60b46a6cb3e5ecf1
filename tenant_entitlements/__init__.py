"""
Subscription lifecycle and entitlement engine.

This module provides:
- PlanCatalog / PlanCatalogLoader: plan limits and feature allow-lists from plans.json
- classify: expiration and grace-day classification
- SubscriptionLifecycle: time-driven status transitions (reconcile-then-check)
- EntitlementGate: access, plan and feature checks returning AuthorizationVerdict
- UsageLimitChecker: patient, seat and monthly usage limits
- SqlSubscriptionStorage: SQLAlchemy storage adapter
- require_* dependencies: FastAPI route enforcement

Grace period: 30 days after a paid subscription's end_date
"""

from tenant_entitlements.classifier import classify
from tenant_entitlements.errors import (
    EntitlementError,
    PlanConfigError,
    SubscriptionStorageError,
    UnknownPlanError,
)
from tenant_entitlements.gates import EntitlementGate
from tenant_entitlements.lifecycle import SubscriptionLifecycle, plan_transition
from tenant_entitlements.limits import UsageLimitChecker
from tenant_entitlements.loader import PlanCatalogLoader, get_catalog
from tenant_entitlements.models import (
    AuthorizationVerdict,
    ExpirationStatus,
    LimitCheckResult,
    ReasonCode,
    Subscription,
    SubscriptionStatus,
)
from tenant_entitlements.modules import (
    effective_plan,
    has_advanced_module_access,
    has_module_access,
)
from tenant_entitlements.plans import (
    PLAN_HIERARCHY,
    LimitType,
    ModuleLevel,
    Plan,
    PlanCatalog,
    PlanFeatures,
    plan_hierarchy_index,
)
from tenant_entitlements.storage import SubscriptionStorage

__all__ = [
    # Catalog
    "PLAN_HIERARCHY",
    "Plan",
    "PlanCatalog",
    "PlanCatalogLoader",
    "PlanFeatures",
    "LimitType",
    "ModuleLevel",
    "get_catalog",
    "plan_hierarchy_index",
    # Models
    "AuthorizationVerdict",
    "ExpirationStatus",
    "LimitCheckResult",
    "ReasonCode",
    "Subscription",
    "SubscriptionStatus",
    # Lifecycle
    "classify",
    "plan_transition",
    "SubscriptionLifecycle",
    # Gates
    "EntitlementGate",
    "UsageLimitChecker",
    # Modules
    "effective_plan",
    "has_module_access",
    "has_advanced_module_access",
    # Storage
    "SubscriptionStorage",
    # Errors
    "EntitlementError",
    "PlanConfigError",
    "SubscriptionStorageError",
    "UnknownPlanError",
]
