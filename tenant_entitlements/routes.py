"""
Read-only subscription endpoints for the current tenant.

For UX only (plan badges, renewal banners, usage meters). Route-level
enforcement is done by the dependencies in tenant_entitlements.dependencies.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from .dependencies import get_subscription_storage, get_tenant_id
from .errors import SubscriptionStorageError
from .gates import EntitlementGate
from .limits import UsageLimitChecker
from .modules import effective_plan, modules_for
from .plans import LimitType
from .schemas import LimitResponse, SubscriptionSummaryResponse, VerdictResponse
from .storage import SubscriptionStorage

router = APIRouter(prefix="/entitlements", tags=["entitlements"])


@router.get(
    "/subscription",
    response_model=SubscriptionSummaryResponse,
    responses={404: {"model": VerdictResponse}},
)
def get_subscription_summary(
    request: Request,
    storage: SubscriptionStorage = Depends(get_subscription_storage),
) -> SubscriptionSummaryResponse:
    """
    Return the current tenant's subscription with its access verdict.

    The subscription is reconciled first, so the status shown matches what
    the gates will enforce.
    """
    tenant_id = get_tenant_id(request)
    gate = EntitlementGate(storage)
    try:
        verdict = gate.check_access(tenant_id)
    except SubscriptionStorageError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict()) from e

    subscription = verdict.subscription
    if subscription is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=verdict.to_dict())

    plan_features = gate.catalog.features_for(subscription.plan)
    effective = effective_plan(subscription)
    return SubscriptionSummaryResponse(
        id=subscription.id,
        plan=subscription.plan.value,
        status=subscription.status.value,
        effective_plan=effective.value,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        canceled_at=subscription.canceled_at,
        access_allowed=verdict.allowed,
        reason_code=verdict.reason_code.value if verdict.reason_code else None,
        days_remaining=verdict.days_remaining,
        storage=plan_features.storage_label,
        features=list(plan_features.feature_list),
        modules=modules_for(effective, gate.catalog),
    )


@router.get("/limits/{limit_type}", response_model=LimitResponse)
def get_limit_usage(
    limit_type: LimitType,
    request: Request,
    storage: SubscriptionStorage = Depends(get_subscription_storage),
) -> LimitResponse:
    """Current usage against the plan limit for limit_type."""
    tenant_id = get_tenant_id(request)
    try:
        result = UsageLimitChecker(storage).check_limit(tenant_id, limit_type)
    except SubscriptionStorageError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict()) from e
    return LimitResponse(
        limit_type=limit_type.value,
        allowed=result.allowed,
        current=result.current,
        limit=result.limit,
    )
