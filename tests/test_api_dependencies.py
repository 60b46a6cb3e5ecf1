"""
FastAPI integration tests for the subscription dependencies and routes.

Maps gate verdicts to HTTP:
- allowed -> handler runs
- denied -> 403 with the verdict's reason code
- storage unavailable -> 503
- no tenant context -> 401
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from conftest import make_subscription
from tenant_entitlements.dependencies import (
    get_subscription_storage,
    require_active_subscription,
    require_feature,
    require_plan,
    require_usage_limit,
)
from tenant_entitlements.routes import router


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def current_time():
    return datetime.now(timezone.utc)


@pytest.fixture
def app(storage):
    app = FastAPI()

    @app.middleware("http")
    async def tenant_context(request: Request, call_next):
        tenant_id = request.headers.get("X-Tenant-ID")
        if tenant_id:
            request.state.tenant_id = tenant_id
        return await call_next(request)

    @app.get("/dashboard")
    def dashboard(verdict=Depends(require_active_subscription())):
        return {"plan": verdict.subscription.plan.value}

    @app.get("/reports/export")
    def export_reports(verdict=Depends(require_plan("professional"))):
        return {"ok": True}

    @app.post("/branding")
    def update_branding(verdict=Depends(require_feature("white_label"))):
        return {"ok": True}

    @app.post("/patients")
    def create_patient(usage=Depends(require_usage_limit("patients"))):
        return {"current": usage.current, "limit": usage.limit}

    app.include_router(router)
    app.dependency_overrides[get_subscription_storage] = lambda: storage
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def _headers(tenant_id="tenant-1"):
    return {"X-Tenant-ID": tenant_id}


# ============================================================================
# TEST SUITE: ROUTE DEPENDENCIES
# ============================================================================

class TestRequireActiveSubscription:

    def test_allowed(self, client, storage):
        storage.add(make_subscription(plan="basic", status="active"))

        response = client.get("/dashboard", headers=_headers())

        assert response.status_code == 200
        assert response.json() == {"plan": "basic"}

    def test_missing_tenant_context_is_401(self, client):
        response = client.get("/dashboard")
        assert response.status_code == 401

    def test_no_subscription_is_403(self, client):
        response = client.get("/dashboard", headers=_headers("nobody"))

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "SUBSCRIPTION_NOT_FOUND"

    def test_grace_period_details_in_body(self, client, storage, current_time):
        storage.add(make_subscription(plan="basic", status="active", end_date=current_time - timedelta(days=10, seconds=1)))

        response = client.get("/dashboard", headers=_headers())

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["error"] == "SUBSCRIPTION_EXPIRED_GRACE_PERIOD"
        assert detail["days_elapsed"] == 10
        assert detail["days_remaining"] == 20
        assert detail["status"] == "past_due"

    def test_storage_failure_is_503(self, client, storage):
        storage.add(make_subscription())
        storage.fail_reads = True

        response = client.get("/dashboard", headers=_headers())

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "SUBSCRIPTION_STORAGE_UNAVAILABLE"


class TestRequirePlanAndFeature:

    def test_insufficient_plan(self, client, storage):
        storage.add(make_subscription(plan="basic", status="active"))

        response = client.get("/reports/export", headers=_headers())

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["error"] == "INSUFFICIENT_PLAN"
        assert detail["required_plan"] == "professional"
        assert detail["current_plan"] == "basic"

    def test_higher_plan_allowed(self, client, storage):
        storage.add(make_subscription(plan="enterprise", status="active"))
        assert client.get("/reports/export", headers=_headers()).status_code == 200

    def test_feature_not_available(self, client, storage):
        storage.add(make_subscription(plan="professional", status="active"))

        response = client.post("/branding", headers=_headers())

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["error"] == "FEATURE_NOT_AVAILABLE"
        assert detail["required_plan"] == "enterprise"
        assert detail["feature"] == "white_label"

    def test_feature_allowed(self, client, storage):
        storage.add(make_subscription(plan="enterprise", status="active"))
        assert client.post("/branding", headers=_headers()).status_code == 200


class TestRequireUsageLimit:

    def test_under_limit(self, client, storage):
        storage.add(make_subscription(plan="free", status="trialing"))
        storage.patients["tenant-1"] = 10

        response = client.post("/patients", headers=_headers())

        assert response.status_code == 200
        assert response.json() == {"current": 10, "limit": 50}

    def test_limit_reached(self, client, storage):
        storage.add(make_subscription(plan="free", status="trialing"))
        storage.patients["tenant-1"] = 50

        response = client.post("/patients", headers=_headers())

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["error"] == "PLAN_LIMIT_REACHED"
        assert detail["limit"] == 50


# ============================================================================
# TEST SUITE: READ-ONLY ROUTES
# ============================================================================

class TestEntitlementRoutes:

    def test_subscription_summary(self, client, storage):
        storage.add(make_subscription(plan="professional", status="active"))

        response = client.get("/entitlements/subscription", headers=_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["plan"] == "professional"
        assert body["effective_plan"] == "professional"
        assert body["access_allowed"] is True
        assert body["storage"] == "100GB"
        assert body["modules"]["prescriptions"] == "full"

    def test_summary_for_lapsed_plan_uses_free_modules(self, client, storage, current_time):
        storage.add(make_subscription(plan="professional", status="active", end_date=current_time - timedelta(days=2, seconds=1)))

        body = client.get("/entitlements/subscription", headers=_headers()).json()

        assert body["status"] == "past_due"
        assert body["effective_plan"] == "free"
        assert body["access_allowed"] is False
        assert body["reason_code"] == "SUBSCRIPTION_EXPIRED_GRACE_PERIOD"
        assert body["days_remaining"] == 28
        assert "prescriptions" not in body["modules"]

    def test_summary_without_subscription_is_404(self, client):
        response = client.get("/entitlements/subscription", headers=_headers("nobody"))
        assert response.status_code == 404

    def test_limit_usage(self, client, storage):
        storage.add(make_subscription(plan="basic", status="active"))
        storage.organizations["tenant-1"] = "org-1"
        storage.users["org-1"] = 2

        response = client.get("/entitlements/limits/users", headers=_headers())

        assert response.status_code == 200
        assert response.json() == {"limit_type": "users", "allowed": True, "current": 2, "limit": 3}

    def test_unknown_limit_type_is_422(self, client, storage):
        storage.add(make_subscription())
        response = client.get("/entitlements/limits/storage", headers=_headers())
        assert response.status_code == 422
