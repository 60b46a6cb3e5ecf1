import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from tenant_entitlements.errors import SubscriptionStorageError
from tenant_entitlements.loader import PlanCatalogLoader
from tenant_entitlements.models import PATCHABLE_FIELDS, Subscription


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class InMemorySubscriptionStorage:
    """Dict-backed SubscriptionStorage with switchable failures."""

    def __init__(self):
        self.subscriptions = {}
        self.patients = {}
        self.organizations = {}
        self.users = {}
        self.appointments = {}
        self.transactions = {}
        self.updates = []
        self.fail_reads = False
        self.fail_writes = False

    def add(self, subscription):
        self.subscriptions[subscription.tenant_id] = subscription
        return subscription

    def get_subscription(self, tenant_id):
        if self.fail_reads:
            raise SubscriptionStorageError(tenant_id, "get_subscription")
        return self.subscriptions.get(tenant_id)

    def update_subscription(self, tenant_id, patch):
        if self.fail_writes:
            raise SubscriptionStorageError(tenant_id, "update_subscription")
        assert set(patch) <= PATCHABLE_FIELDS
        self.updates.append((tenant_id, dict(patch)))
        updated = replace(self.subscriptions[tenant_id], **dict(patch))
        self.subscriptions[tenant_id] = updated
        return updated

    def create_subscription(self, subscription):
        return self.add(subscription)

    def list_expired_subscriptions(self, now):
        return [
            s for _, s in sorted(self.subscriptions.items())
            if s.end_date is not None and s.end_date < now
        ]

    def count_patients(self, tenant_id):
        return self.patients.get(tenant_id, 0)

    def get_organization_id(self, tenant_id):
        return self.organizations.get(tenant_id)

    def count_users(self, organization_id):
        return self.users.get(organization_id, 0)

    def count_appointments(self, tenant_id, start, end):
        return sum(1 for t in self.appointments.get(tenant_id, []) if start <= t < end)

    def count_transactions(self, tenant_id, start, end):
        return sum(1 for t in self.transactions.get(tenant_id, []) if start <= t < end)


def make_subscription(
    tenant_id="tenant-1",
    plan="basic",
    status="active",
    end_date=None,
    start_date=None,
    canceled_at=None,
):
    return Subscription(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        plan=plan,
        status=status,
        start_date=start_date or NOW - timedelta(days=90),
        end_date=end_date,
        canceled_at=canceled_at,
    )


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def storage():
    return InMemorySubscriptionStorage()


@pytest.fixture
def catalog():
    return PlanCatalogLoader().catalog
