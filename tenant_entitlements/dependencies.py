"""
FastAPI dependencies that enforce subscription checks on routes.

Each factory returns a dependency that runs one gate and raises 403 with the
verdict's reason code when denied. Storage failures become 503 so clients
can retry; they are never reported as a policy denial.

Usage:
    @router.post("/prescriptions")
    def create_prescription(verdict=Depends(require_feature("prescriptions"))):
        ...

The host app supplies the database session on request.state.db, or
overrides get_subscription_storage.
"""

import logging
from typing import Callable, Union

from fastapi import Depends, HTTPException, Request, status

from .db import SqlSubscriptionStorage
from .errors import SubscriptionStorageError
from .gates import EntitlementGate
from .limits import UsageLimitChecker
from .models import AuthorizationVerdict, LimitCheckResult
from .plans import LimitType, Plan
from .storage import SubscriptionStorage

logger = logging.getLogger(__name__)

PLAN_LIMIT_REACHED = "PLAN_LIMIT_REACHED"


def get_tenant_id(request: Request) -> str:
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id:
        return tenant_id
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing tenant context")


def get_subscription_storage(request: Request) -> SubscriptionStorage:
    """Default storage: SQLAlchemy session placed on request.state.db."""
    db_session = getattr(request.state, "db", None)
    if db_session is None:
        logger.error(
            "No DB session available for subscription check",
            extra={"path": request.url.path},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": SubscriptionStorageError.error_code, "message": "Subscription storage unavailable"},
        )
    return SqlSubscriptionStorage(db_session)


def _unavailable(tenant_id: str, error: SubscriptionStorageError) -> HTTPException:
    logger.warning(
        "Subscription check failed closed",
        extra={"tenant_id": tenant_id, "operation": error.operation},
    )
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error.to_dict())


def _enforce(request: Request, verdict: AuthorizationVerdict) -> AuthorizationVerdict:
    if not verdict.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=verdict.to_dict())
    request.state.subscription = verdict.subscription
    return verdict


def _gated(run: Callable[[EntitlementGate, str], AuthorizationVerdict]) -> Callable:
    def dependency(
        request: Request,
        storage: SubscriptionStorage = Depends(get_subscription_storage),
    ) -> AuthorizationVerdict:
        tenant_id = get_tenant_id(request)
        try:
            verdict = run(EntitlementGate(storage), tenant_id)
        except SubscriptionStorageError as e:
            raise _unavailable(tenant_id, e) from e
        return _enforce(request, verdict)

    return dependency


def require_active_subscription() -> Callable:
    """Dependency: tenant must have usable access right now."""
    return _gated(lambda gate, tenant_id: gate.check_access(tenant_id))


def require_plan(min_plan: Union[Plan, str]) -> Callable:
    """Dependency: tenant's plan must be min_plan or higher."""
    required = Plan.parse(min_plan)
    return _gated(lambda gate, tenant_id: gate.check_plan(tenant_id, required))


def require_feature(feature_name: str) -> Callable:
    """Dependency: tenant's plan must unlock feature_name."""
    return _gated(lambda gate, tenant_id: gate.check_feature(tenant_id, feature_name))


def require_usage_limit(limit_type: Union[LimitType, str]) -> Callable:
    """
    Dependency for create endpoints: block when the plan limit is reached.

    Returns the LimitCheckResult so handlers can report usage.
    """
    limit_type = LimitType(limit_type)

    def dependency(
        request: Request,
        storage: SubscriptionStorage = Depends(get_subscription_storage),
    ) -> LimitCheckResult:
        tenant_id = get_tenant_id(request)
        try:
            result = UsageLimitChecker(storage).check_limit(tenant_id, limit_type)
        except SubscriptionStorageError as e:
            raise _unavailable(tenant_id, e) from e
        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": PLAN_LIMIT_REACHED,
                    "message": f"Your plan allows {result.limit} {limit_type.value}. Upgrade to add more.",
                    "limit_type": limit_type.value,
                    "current": result.current,
                    "limit": result.limit,
                },
            )
        return result

    return dependency

