from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from .errors import UnknownPlanError

UNLIMITED = -1


class Plan(str, Enum):
    """Plan tiers. Declaration order is the tier order used by plan checks."""

    FREE = "free"
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: object) -> "Plan":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            raise UnknownPlanError(value) from None

    @property
    def is_paid(self) -> bool:
        return self is not Plan.FREE


PLAN_HIERARCHY: Tuple[Plan, ...] = (
    Plan.FREE,
    Plan.BASIC,
    Plan.PROFESSIONAL,
    Plan.ENTERPRISE,
)

PAID_PLANS: FrozenSet[Plan] = frozenset(p for p in PLAN_HIERARCHY if p.is_paid)


def plan_hierarchy_index(plan: Plan | str) -> int:
    return PLAN_HIERARCHY.index(Plan.parse(plan))


def sort_by_tier(plans: Iterable[Plan]) -> Tuple[Plan, ...]:
    return tuple(sorted(set(plans), key=plan_hierarchy_index))


class LimitType(str, Enum):
    """Numeric limits a plan caps."""

    PATIENTS = "patients"
    USERS = "users"
    APPOINTMENTS = "appointments"
    TRANSACTIONS = "transactions"

    @property
    def is_monthly(self) -> bool:
        return self in (LimitType.APPOINTMENTS, LimitType.TRANSACTIONS)


class ModuleLevel(str, Enum):
    """How much of a product module a plan unlocks."""

    NONE = "none"
    BASIC = "basic"
    ADVANCED = "advanced"
    FULL = "full"


@dataclass(frozen=True)
class PlanFeatures:
    """Entitlement limits and listed features for one plan tier."""

    plan: Plan
    patient_limit: int
    user_limit: int
    storage_label: str
    feature_list: Tuple[str, ...] = ()
    appointments_per_month: int = UNLIMITED
    transactions_per_month: int = UNLIMITED
    modules: Mapping[str, ModuleLevel] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "feature_list", tuple(self.feature_list))
        object.__setattr__(self, "modules", MappingProxyType(dict(self.modules)))

    def limit_for(self, limit_type: LimitType | str) -> int:
        limit_type = LimitType(limit_type)
        if limit_type is LimitType.PATIENTS:
            return self.patient_limit
        if limit_type is LimitType.USERS:
            return self.user_limit
        if limit_type is LimitType.APPOINTMENTS:
            return self.appointments_per_month
        return self.transactions_per_month

    def module_level(self, module: str) -> ModuleLevel:
        return self.modules.get(str(module).strip(), ModuleLevel.NONE)


@dataclass(frozen=True)
class PlanCatalog:
    """Process-wide plan table and feature allow-lists. Read-only after load."""

    plans: Mapping[Plan, PlanFeatures]
    feature_requirements: Mapping[str, Tuple[Plan, ...]]

    def __post_init__(self) -> None:
        object.__setattr__(self, "plans", MappingProxyType(dict(self.plans)))
        requirements: Dict[str, Tuple[Plan, ...]] = {
            key: sort_by_tier(plans) for key, plans in self.feature_requirements.items()
        }
        object.__setattr__(self, "feature_requirements", MappingProxyType(requirements))

    def features_for(self, plan: Plan | str) -> PlanFeatures:
        return self.plans[Plan.parse(plan)]

    def allowed_plans(self, feature_name: str) -> Optional[Tuple[Plan, ...]]:
        """Tiers unlocking the feature in tier order, or None when the feature is unknown."""
        return self.feature_requirements.get(str(feature_name).strip())

    def minimum_plan_for(self, feature_name: str) -> Plan:
        # unmapped features are gated to the top tier, never opened
        allowed = self.allowed_plans(feature_name)
        if not allowed:
            return Plan.ENTERPRISE
        return allowed[0]

    def is_feature_enabled(self, plan: Plan | str, feature_name: str) -> bool:
        allowed = self.allowed_plans(feature_name)
        return bool(allowed) and Plan.parse(plan) in allowed
