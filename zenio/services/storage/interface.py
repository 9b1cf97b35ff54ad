"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the engine decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Queries take a small filter model and every backend applies it with the
filter's own `matches()`, so all backends agree on what matches.

Every record query is scoped to one user. There is no call that reads
another user's records.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from zenio.models.audit import AuditEvent
from zenio.models.records import (
    Budget,
    BudgetPeriod,
    Category,
    Goal,
    OnboardingProfile,
    Transaction,
    TransactionType,
    UsageCounter,
    UserProfile,
)


# =============================================================================
# FILTERS
# =============================================================================

def _contains(haystack: Optional[str], needle: Optional[str]) -> bool:
    return needle is None or (haystack is not None and needle.casefold() in haystack.casefold())


def _in_range(value: Optional[date], start: Optional[date], end: Optional[date]) -> bool:
    if start is None and end is None:
        return True
    if value is None:
        return False
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


class TransactionFilter(BaseModel):
    """All fields are ANDed. Date bounds are inclusive calendar days."""

    id: Optional[str] = None
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    amount: Optional[Decimal] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    description_contains: Optional[str] = None

    def matches(self, tx: Transaction) -> bool:
        return (
            (self.id is None or tx.id == self.id)
            and (self.type is None or tx.type == self.type)
            and (self.category_id is None or tx.category_id == self.category_id)
            and (self.amount is None or tx.amount == self.amount)
            and _in_range(tx.date, self.date_from, self.date_to)
            and _contains(tx.description, self.description_contains)
        )


class BudgetFilter(BaseModel):
    id: Optional[str] = None
    category_id: Optional[str] = None
    amount: Optional[Decimal] = None
    period: Optional[BudgetPeriod] = None
    name_contains: Optional[str] = None

    def matches(self, budget: Budget) -> bool:
        return (
            (self.id is None or budget.id == self.id)
            and (self.category_id is None or budget.category_id == self.category_id)
            and (self.amount is None or budget.amount == self.amount)
            and (self.period is None or budget.period == self.period)
            and _contains(budget.name, self.name_contains)
        )


class GoalFilter(BaseModel):
    id: Optional[str] = None
    category_id: Optional[str] = None
    target_amount: Optional[Decimal] = None
    due_date: Optional[date] = None
    name_contains: Optional[str] = None

    def matches(self, goal: Goal) -> bool:
        return (
            (self.id is None or goal.id == self.id)
            and (self.category_id is None or goal.category_id == self.category_id)
            and (self.target_amount is None or goal.target_amount == self.target_amount)
            and (self.due_date is None or goal.due_date == self.due_date)
            and _contains(goal.name, self.name_contains)
        )


# =============================================================================
# INTERFACES
# =============================================================================

class RecordStorageInterface(ABC):
    """
    Abstract interface for the category catalogue and the user's
    financial records.

    `find_*` methods return newest-first by creation time.
    """

    # Categories

    @abstractmethod
    async def list_categories(
        self,
        category_type: Optional[TransactionType] = None,
    ) -> list[Category]:
        """List the catalogue, optionally only one type."""
        pass

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def get_category_by_name(
        self,
        name: str,
        category_type: Optional[TransactionType] = None,
    ) -> Optional[Category]:
        """
        Case-insensitive exact name lookup.

        Accent differences are NOT folded here; the resolver scans for those.
        """
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> bool:
        pass

    # Transactions

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> bool:
        """
        Raises:
            DuplicateError: If the id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> bool:
        """
        Raises:
            NotFoundError: If the transaction does not exist for that user
        """
        pass

    @abstractmethod
    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        """Returns False if nothing was deleted."""
        pass

    @abstractmethod
    async def find_transactions(
        self,
        user_id: str,
        criteria: TransactionFilter,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        pass

    # Budgets

    @abstractmethod
    async def add_budget(self, budget: Budget) -> bool:
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> bool:
        pass

    @abstractmethod
    async def delete_budget(self, user_id: str, budget_id: str) -> bool:
        pass

    @abstractmethod
    async def find_budgets(
        self,
        user_id: str,
        criteria: BudgetFilter,
        limit: Optional[int] = None,
    ) -> list[Budget]:
        pass

    # Goals

    @abstractmethod
    async def add_goal(self, goal: Goal) -> bool:
        pass

    @abstractmethod
    async def update_goal(self, goal: Goal) -> bool:
        pass

    @abstractmethod
    async def delete_goal(self, user_id: str, goal_id: str) -> bool:
        pass

    @abstractmethod
    async def find_goals(
        self,
        user_id: str,
        criteria: GoalFilter,
        limit: Optional[int] = None,
    ) -> list[Goal]:
        pass


class AccountStorageInterface(ABC):
    """User profile, onboarding answers and usage counters."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def save_user(self, profile: UserProfile) -> bool:
        pass

    @abstractmethod
    async def mark_onboarding_completed(self, user_id: str) -> bool:
        """Flags the user as onboarded, creating a bare profile if none exists yet."""
        pass

    @abstractmethod
    async def get_onboarding(self, user_id: str) -> Optional[OnboardingProfile]:
        pass

    @abstractmethod
    async def upsert_onboarding(self, profile: OnboardingProfile) -> bool:
        pass

    @abstractmethod
    async def get_usage(self, user_id: str) -> Optional[UsageCounter]:
        pass

    @abstractmethod
    async def save_usage(self, counter: UsageCounter) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one chat turn in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
