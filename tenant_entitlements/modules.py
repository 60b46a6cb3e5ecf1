"""
Product module access by plan.

Module access follows the plan a tenant is currently paying for: any
status other than active falls back to the free tier's modules.
"""

from __future__ import annotations

from typing import Dict, Optional

from .loader import get_catalog
from .models import Subscription, SubscriptionStatus
from .plans import ModuleLevel, Plan, PlanCatalog

ADVANCED_LEVELS = frozenset({ModuleLevel.ADVANCED, ModuleLevel.FULL})


def effective_plan(subscription: Optional[Subscription]) -> Plan:
    if subscription is None or subscription.status is not SubscriptionStatus.ACTIVE:
        return Plan.FREE
    return subscription.plan


def module_level(plan: Plan | str, module: str, catalog: Optional[PlanCatalog] = None) -> ModuleLevel:
    return (catalog or get_catalog()).features_for(plan).module_level(module)


def has_module_access(plan: Plan | str, module: str, catalog: Optional[PlanCatalog] = None) -> bool:
    return module_level(plan, module, catalog) is not ModuleLevel.NONE


def has_advanced_module_access(plan: Plan | str, module: str, catalog: Optional[PlanCatalog] = None) -> bool:
    return module_level(plan, module, catalog) in ADVANCED_LEVELS


def modules_for(plan: Plan | str, catalog: Optional[PlanCatalog] = None) -> Dict[str, str]:
    """Module -> level for every module the plan unlocks."""
    features = (catalog or get_catalog()).features_for(plan)
    return {
        module: level.value
        for module, level in sorted(features.modules.items())
        if level is not ModuleLevel.NONE
    }
