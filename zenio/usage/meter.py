"""
Usage Meter

DESIGN DECISION: One conversational turn that reaches the assistant is
one query, however many tool calls it triggers.

The engine checks the quota before it talks to the assistant and counts
the turn once the run has been created. The counter belongs to the
calendar month: the first access in a new month starts again from zero.

Plan limits:
    FREE     -> AppSettings.free_plan_monthly_queries (10 by default)
    PREMIUM  -> unlimited
    PRO      -> unlimited

Unlimited is the sentinel -1, for both `limit` and `remaining`.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

import structlog

from zenio.audit import AuditLogger
from zenio.config import AppSettings, get_settings
from zenio.models.conversation import UsageInfo
from zenio.models.records import SubscriptionPlan, UsageCounter, UserProfile
from zenio.services.storage.interface import AccountStorageInterface


logger = structlog.get_logger(__name__)

UNLIMITED = -1


class QuotaExceededError(Exception):
    """The user has used every query of the month."""

    def __init__(self, used: int, limit: int):
        self.used = used
        self.limit = limit
        super().__init__(f"Has alcanzado el límite de {limit} consultas de Zenio este mes")


def usage_info(used: int, limit: int) -> UsageInfo:
    remaining = UNLIMITED if limit == UNLIMITED else max(0, limit - used)
    return UsageInfo(used=used, limit=limit, remaining=remaining)


def _same_month(a: datetime, b: datetime) -> bool:
    return (a.year, a.month) == (b.year, b.month)


class UsageMeter:
    """
    Per-user monthly query counter.

    Args:
        accounts: Where counters are stored.
        settings: App settings, for the free plan limit.
        clock: Returns the current aware datetime. Tests inject a fixed one.
    """

    def __init__(
        self,
        accounts: AccountStorageInterface,
        settings: Optional[AppSettings] = None,
        audit: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._accounts = accounts
        self._settings = settings or get_settings().app
        self._audit = audit or AuditLogger()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def limit_for(self, plan: SubscriptionPlan) -> int:
        if plan == SubscriptionPlan.FREE:
            return self._settings.free_plan_monthly_queries
        return UNLIMITED

    async def counter(self, user_id: str) -> UsageCounter:
        """The user's counter for the current month, reset if the month changed."""
        now = self._clock()
        counter = await self._accounts.get_usage(user_id)
        if counter is None:
            return UsageCounter(user_id=user_id, used=0, reset_at=now)
        if not _same_month(counter.reset_at, now):
            logger.info("usage_period_reset", user_id=user_id, previous_used=counter.used)
            counter = UsageCounter(user_id=user_id, used=0, reset_at=now)
            await self._accounts.save_usage(counter)
        return counter

    async def info(self, user: UserProfile) -> UsageInfo:
        counter = await self.counter(user.id)
        return usage_info(counter.used, self.limit_for(user.plan))

    async def check(self, user: UserProfile, correlation_id: Optional[UUID] = None) -> UsageInfo:
        """
        Current usage, or QuotaExceededError when no query is left.

        Unlimited plans always pass.
        """
        info = await self.info(user)
        if info.limit != UNLIMITED and info.used >= info.limit:
            logger.warning("quota_exceeded", user_id=user.id, used=info.used, limit=info.limit)
            await self._audit.log_quota_exceeded(user.id, info.used, info.limit, correlation_id)
            raise QuotaExceededError(info.used, info.limit)
        return info

    async def increment(self, user: UserProfile, correlation_id: Optional[UUID] = None) -> UsageInfo:
        """Count one turn. Unlimited plans are counted too, for reporting."""
        counter = await self.counter(user.id)
        updated = counter.model_copy(update={"used": counter.used + 1})
        await self._accounts.save_usage(updated)
        limit = self.limit_for(user.plan)
        await self._audit.log_usage_incremented(user.id, updated.used, limit, correlation_id)
        return usage_info(updated.used, limit)
