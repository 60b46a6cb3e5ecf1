"""
Entitlement error hierarchy.

Provides:
- EntitlementError: base for all engine failures
- SubscriptionStorageError: storage read/write failed (callers fail closed)
- PlanConfigError: plan catalog document is invalid
- UnknownPlanError: plan value outside the known tiers

Policy denials are never raised; they are returned as AuthorizationVerdict.
"""

from typing import Optional


class EntitlementError(Exception):
    """Base exception for entitlement-related failures."""

    error_code = "ENTITLEMENT_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class SubscriptionStorageError(EntitlementError):
    """
    Raised when the storage collaborator fails to read or write.

    Carries the tenant and operation so the transport layer can report an
    "unable to authorize" response without leaking internals.
    """

    error_code = "SUBSCRIPTION_STORAGE_UNAVAILABLE"

    def __init__(
        self,
        tenant_id: Optional[str],
        operation: str,
        cause: Optional[Exception] = None,
    ):
        self.tenant_id = tenant_id
        self.operation = operation
        self.cause = cause
        super().__init__(f"Subscription storage {operation} failed for {tenant_id}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": "Unable to verify subscription. Please try again.",
            "tenant_id": self.tenant_id,
        }


class PlanConfigError(EntitlementError):
    """Raised when the plans document fails validation."""

    error_code = "PLAN_CONFIG_INVALID"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        d: dict = {"error": self.error_code, "message": self.message}
        if self.field is not None:
            d["field"] = self.field
        return d


class UnknownPlanError(EntitlementError, ValueError):
    """Raised when a plan value is not one of the known tiers."""

    error_code = "UNKNOWN_PLAN"

    def __init__(self, plan: object):
        self.plan = plan
        super().__init__(f"Unknown plan: {plan!r}")
