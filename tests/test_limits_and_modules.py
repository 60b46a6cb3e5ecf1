"""
Tests for plan usage limits and module access.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from conftest import NOW, make_subscription
from tenant_entitlements.limits import UsageLimitChecker, month_bounds
from tenant_entitlements.modules import (
    effective_plan,
    has_advanced_module_access,
    has_module_access,
    modules_for,
)
from tenant_entitlements.plans import LimitType, ModuleLevel, Plan


@pytest.fixture
def checker(storage, catalog):
    return UsageLimitChecker(storage, catalog=catalog)


# ============================================================================
# TEST SUITE: USAGE LIMITS
# ============================================================================

class TestCheckLimit:

    def test_under_limit_allowed(self, checker, storage):
        storage.add(make_subscription(plan="free", status="trialing"))
        storage.patients["tenant-1"] = 49

        result = checker.check_limit("tenant-1", LimitType.PATIENTS, now=NOW)

        assert result.allowed is True
        assert (result.current, result.limit) == (49, 50)

    def test_reaching_limit_blocks_next_creation(self, checker, storage):
        storage.add(make_subscription(plan="free", status="trialing"))
        storage.patients["tenant-1"] = 50

        result = checker.check_limit("tenant-1", "patients", now=NOW)

        assert result.allowed is False
        assert result.current == 50

    def test_unlimited_skips_counting(self, catalog):
        mock_storage = MagicMock()
        mock_storage.get_subscription.return_value = make_subscription(plan="professional")

        result = UsageLimitChecker(mock_storage, catalog=catalog).check_limit("tenant-1", LimitType.PATIENTS)

        assert result.allowed is True
        assert result.unlimited is True
        assert result.current == 0
        mock_storage.count_patients.assert_not_called()

    def test_enterprise_users_unlimited(self, catalog):
        mock_storage = MagicMock()
        mock_storage.get_subscription.return_value = make_subscription(plan="enterprise")

        result = UsageLimitChecker(mock_storage, catalog=catalog).check_limit("tenant-1", LimitType.USERS)

        assert result.limit == -1
        mock_storage.get_organization_id.assert_not_called()
        mock_storage.count_users.assert_not_called()

    def test_users_counted_per_organization(self, checker, storage):
        storage.add(make_subscription(plan="basic"))
        storage.organizations["tenant-1"] = "org-1"
        storage.users["org-1"] = 3

        result = checker.check_limit("tenant-1", LimitType.USERS, now=NOW)

        assert result.allowed is False
        assert (result.current, result.limit) == (3, 3)

    def test_users_zero_without_organization(self, checker, storage):
        storage.add(make_subscription(plan="free"))

        result = checker.check_limit("tenant-1", LimitType.USERS, now=NOW)

        assert result.allowed is True
        assert result.current == 0

    def test_monthly_appointments_count_only_current_month(self, checker, storage):
        storage.add(make_subscription(plan="free", status="trialing"))
        this_month = [datetime(2024, 6, 1, tzinfo=timezone.utc) + timedelta(hours=i) for i in range(200)]
        last_month = [datetime(2024, 5, 31, 23, tzinfo=timezone.utc)] * 10
        storage.appointments["tenant-1"] = this_month + last_month

        result = checker.check_limit("tenant-1", LimitType.APPOINTMENTS, now=NOW)

        assert result.current == 200
        assert result.limit == 200
        assert result.allowed is False

    def test_monthly_transactions(self, checker, storage):
        storage.add(make_subscription(plan="basic"))
        storage.transactions["tenant-1"] = [NOW - timedelta(days=1)] * 5

        result = checker.check_limit("tenant-1", LimitType.TRANSACTIONS, now=NOW)

        assert result.allowed is True
        assert (result.current, result.limit) == (5, 2000)

    def test_missing_subscription_not_allowed(self, checker):
        result = checker.check_limit("nobody", LimitType.PATIENTS, now=NOW)
        assert result.allowed is False

    def test_limits_do_not_reconcile(self, checker, storage):
        storage.add(make_subscription(plan="basic", status="active", end_date=NOW - timedelta(days=3)))

        checker.check_limit("tenant-1", LimitType.PATIENTS, now=NOW)

        assert storage.updates == []

    def test_unknown_limit_type_rejected(self, checker):
        with pytest.raises(ValueError):
            checker.check_limit("tenant-1", "storage")


class TestMonthBounds:

    def test_mid_month(self):
        start, end = month_bounds(NOW)
        assert start == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 7, 1, tzinfo=timezone.utc)

    def test_december_rolls_year(self):
        start, end = month_bounds(datetime(2024, 12, 31, 23, 59, tzinfo=timezone.utc))
        assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_non_utc_input_uses_utc_month(self):
        local = timezone(timedelta(hours=-3))
        start, _ = month_bounds(datetime(2024, 6, 30, 22, 0, tzinfo=local))
        assert start == datetime(2024, 7, 1, tzinfo=timezone.utc)


# ============================================================================
# TEST SUITE: MODULE ACCESS
# ============================================================================

class TestModules:

    def test_effective_plan_requires_active_status(self):
        assert effective_plan(make_subscription(plan="professional", status="active")) is Plan.PROFESSIONAL
        assert effective_plan(make_subscription(plan="professional", status="past_due")) is Plan.FREE
        assert effective_plan(make_subscription(plan="enterprise", status="trialing")) is Plan.FREE
        assert effective_plan(None) is Plan.FREE

    def test_module_access(self, catalog):
        assert has_module_access("free", "finance", catalog) is True
        assert has_module_access("free", "crm", catalog) is False
        assert has_module_access("basic", "crm", catalog) is True
        assert has_advanced_module_access("basic", "crm", catalog) is False
        assert has_advanced_module_access("professional", "crm", catalog) is True

    def test_unknown_module_has_no_access(self, catalog):
        assert has_module_access(Plan.ENTERPRISE, "time_travel", catalog) is False

    def test_modules_for_lists_unlocked_levels(self, catalog):
        modules = modules_for(Plan.FREE, catalog)
        assert modules["reports"] == ModuleLevel.BASIC.value
        assert "crm" not in modules
        assert "white_label" in modules_for(Plan.ENTERPRISE, catalog)
