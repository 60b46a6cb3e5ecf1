from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Dict, List, Optional, Tuple

from . import config
from .errors import PlanConfigError, UnknownPlanError
from .plans import PLAN_HIERARCHY, ModuleLevel, Plan, PlanCatalog, PlanFeatures

logger = logging.getLogger(__name__)

REQUIRED_LIMIT_KEYS = ("patients", "users")


class PlanCatalogLoader:
    """Loads the plan catalog from plans.json with reload support."""

    def __init__(self, config_path: Optional[str | Path] = None) -> None:
        self._config_path = Path(config_path or config.PLANS_CONFIG_PATH)
        self._lock = RLock()
        self._catalog: PlanCatalog
        self.reload()

    @property
    def catalog(self) -> PlanCatalog:
        with self._lock:
            return self._catalog

    def reload(self) -> None:
        """Reload config from disk (for safe process restart workflows)."""
        raw = self._read_config_file()
        parsed = self._parse_config(raw)
        with self._lock:
            self._catalog = parsed
        logger.info(
            "Loaded plan catalog",
            extra={
                "path": str(self._config_path),
                "feature_count": len(parsed.feature_requirements),
            },
        )

    def _read_config_file(self) -> dict:
        try:
            with self._config_path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise PlanConfigError(f"unable to read plans config {self._config_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise PlanConfigError("plans config must contain a top-level object")
        return raw

    @classmethod
    def _parse_config(cls, raw: dict) -> PlanCatalog:
        plans_raw = raw.get("plans")
        if not isinstance(plans_raw, dict):
            raise PlanConfigError("plans config must include an object field named 'plans'", field="plans")

        plans: Dict[Plan, PlanFeatures] = {}
        for plan_key, plan_data in plans_raw.items():
            plan = cls._parse_plan_key(plan_key, field="plans")
            if not isinstance(plan_data, dict):
                raise PlanConfigError(f"plan '{plan_key}' must be an object", field=f"plans.{plan_key}")
            plans[plan] = cls._parse_plan(plan, plan_data)

        missing = [p.value for p in PLAN_HIERARCHY if p not in plans]
        if missing:
            raise PlanConfigError(f"plans config is missing tiers: {', '.join(missing)}", field="plans")

        requirements_raw = raw.get("feature_requirements", {})
        if not isinstance(requirements_raw, dict):
            raise PlanConfigError(
                "feature_requirements must map feature names to plan lists",
                field="feature_requirements",
            )

        requirements: Dict[str, Tuple[Plan, ...]] = {}
        for feature_name, allowed in requirements_raw.items():
            if not isinstance(feature_name, str) or not feature_name.strip():
                raise PlanConfigError(f"invalid feature name: {feature_name!r}", field="feature_requirements")
            if not isinstance(allowed, list) or not allowed:
                raise PlanConfigError(
                    f"feature '{feature_name}' must list at least one plan",
                    field=f"feature_requirements.{feature_name}",
                )
            requirements[feature_name.strip()] = tuple(
                cls._parse_plan_key(p, field=f"feature_requirements.{feature_name}") for p in allowed
            )

        return PlanCatalog(plans=plans, feature_requirements=requirements)

    @staticmethod
    def _parse_plan_key(value: object, *, field: str) -> Plan:
        try:
            return Plan.parse(value)
        except UnknownPlanError:
            raise PlanConfigError(f"unknown plan: {value!r}", field=field) from None

    @staticmethod
    def _parse_plan(plan: Plan, plan_data: dict) -> PlanFeatures:
        prefix = f"plans.{plan.value}"

        limits = plan_data.get("limits", {})
        if not isinstance(limits, dict):
            raise PlanConfigError(f"plan '{plan.value}' limits must be an object", field=f"{prefix}.limits")
        for key in REQUIRED_LIMIT_KEYS:
            if key not in limits:
                raise PlanConfigError(f"plan '{plan.value}' is missing limit '{key}'", field=f"{prefix}.limits")

        normalized_limits: Dict[str, int] = {}
        for limit_key, limit_value in limits.items():
            try:
                value = int(limit_value)
            except (TypeError, ValueError):
                raise PlanConfigError(
                    f"plan '{plan.value}' limit '{limit_key}' must be an integer",
                    field=f"{prefix}.limits",
                ) from None
            if value < -1:
                raise PlanConfigError(
                    f"plan '{plan.value}' limit '{limit_key}' must be -1 or a non-negative count",
                    field=f"{prefix}.limits",
                )
            normalized_limits[str(limit_key).strip()] = value

        features = plan_data.get("features", [])
        if not isinstance(features, list) or not all(isinstance(f, str) and f.strip() for f in features):
            raise PlanConfigError(f"plan '{plan.value}' features must be a list of strings", field=f"{prefix}.features")

        modules_raw = plan_data.get("modules", {})
        if not isinstance(modules_raw, dict):
            raise PlanConfigError(f"plan '{plan.value}' modules must be an object", field=f"{prefix}.modules")
        modules: Dict[str, ModuleLevel] = {}
        for module, level in modules_raw.items():
            try:
                modules[str(module).strip()] = ModuleLevel(level)
            except ValueError:
                raise PlanConfigError(
                    f"plan '{plan.value}' module '{module}' has invalid level {level!r}",
                    field=f"{prefix}.modules",
                ) from None

        feature_list: List[str] = [f.strip() for f in features]
        return PlanFeatures(
            plan=plan,
            patient_limit=normalized_limits["patients"],
            user_limit=normalized_limits["users"],
            storage_label=str(plan_data.get("storage", "")),
            feature_list=tuple(feature_list),
            appointments_per_month=normalized_limits.get("appointments_per_month", -1),
            transactions_per_month=normalized_limits.get("transactions_per_month", -1),
            modules=modules,
        )


_default_loader: Optional[PlanCatalogLoader] = None
_default_lock = RLock()


def get_catalog() -> PlanCatalog:
    """Process-wide catalog, loaded on first use."""
    global _default_loader
    with _default_lock:
        if _default_loader is None:
            _default_loader = PlanCatalogLoader()
        return _default_loader.catalog
