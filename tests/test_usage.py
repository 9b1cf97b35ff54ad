"""
Tests for monthly query metering.
"""

from datetime import datetime, timezone

import pytest

from conftest import REFERENCE_NOW, USER_ID
from zenio.models.audit import AuditEventType
from zenio.models.records import SubscriptionPlan, UsageCounter, UserProfile
from zenio.usage import UNLIMITED, QuotaExceededError, UsageMeter, usage_info


@pytest.fixture
def meter(accounts, app_settings, audit):
    return UsageMeter(accounts, app_settings, audit=audit, clock=lambda: REFERENCE_NOW)


@pytest.fixture
def free_user():
    return UserProfile(id=USER_ID, name="Ana")


class TestUsageInfo:

    def test_remaining(self):
        assert usage_info(3, 10).remaining == 7
        assert usage_info(12, 10).remaining == 0

    def test_unlimited(self):
        info = usage_info(40, UNLIMITED)
        assert info.limit == -1
        assert info.remaining == -1


class TestUsageMeter:

    def test_plan_limits(self, meter):
        assert meter.limit_for(SubscriptionPlan.FREE) == 10
        assert meter.limit_for(SubscriptionPlan.PREMIUM) == UNLIMITED
        assert meter.limit_for(SubscriptionPlan.PRO) == UNLIMITED

    @pytest.mark.asyncio
    async def test_new_user_starts_at_zero(self, meter, free_user):
        info = await meter.check(free_user)
        assert (info.used, info.limit, info.remaining) == (0, 10, 10)

    @pytest.mark.asyncio
    async def test_increment_persists(self, meter, accounts, free_user, audit_storage):
        await meter.increment(free_user)
        info = await meter.increment(free_user)
        assert info.used == 2
        assert info.remaining == 8
        assert (await accounts.get_usage(USER_ID)).used == 2
        assert audit_storage.events[-1].event_type == AuditEventType.USAGE_INCREMENTED

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, meter, accounts, free_user, audit_storage):
        await accounts.save_usage(UsageCounter(user_id=USER_ID, used=10, reset_at=REFERENCE_NOW))
        with pytest.raises(QuotaExceededError) as exc_info:
            await meter.check(free_user)
        assert str(exc_info.value) == "Has alcanzado el límite de 10 consultas de Zenio este mes"
        assert exc_info.value.limit == 10
        assert audit_storage.events[-1].event_type == AuditEventType.QUOTA_EXCEEDED

    @pytest.mark.asyncio
    async def test_unlimited_plan_never_blocks(self, meter, accounts):
        user = UserProfile(id=USER_ID, plan=SubscriptionPlan.PREMIUM)
        await accounts.save_usage(UsageCounter(user_id=USER_ID, used=500, reset_at=REFERENCE_NOW))
        info = await meter.check(user)
        assert info.remaining == UNLIMITED
        assert (await meter.increment(user)).used == 501

    @pytest.mark.asyncio
    async def test_new_month_resets(self, meter, accounts, free_user):
        june = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)
        await accounts.save_usage(UsageCounter(user_id=USER_ID, used=10, reset_at=june))

        info = await meter.check(free_user)

        assert info.used == 0
        stored = await accounts.get_usage(USER_ID)
        assert stored.used == 0
        assert stored.reset_at == REFERENCE_NOW


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
