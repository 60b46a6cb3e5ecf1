"""
Storage interface consumed by the engine.

Implementations must raise SubscriptionStorageError for any persistence
failure so the lifecycle can tell a failed write from a policy outcome.
Records must be read fresh on every call; the engine never caches them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional, Protocol

from .models import Subscription


class SubscriptionStorage(Protocol):
    def get_subscription(self, tenant_id: str) -> Optional[Subscription]:
        ...

    def update_subscription(self, tenant_id: str, patch: Mapping[str, Any]) -> Subscription:
        ...

    def count_patients(self, tenant_id: str) -> int:
        ...

    def count_users(self, organization_id: str) -> int:
        ...

    def get_organization_id(self, tenant_id: str) -> Optional[str]:
        ...

    def count_appointments(self, tenant_id: str, start: datetime, end: datetime) -> int:
        ...

    def count_transactions(self, tenant_id: str, start: datetime, end: datetime) -> int:
        ...

    def list_expired_subscriptions(self, now: datetime) -> List[Subscription]:
        ...

    def create_subscription(self, subscription: Subscription) -> Subscription:
        ...
