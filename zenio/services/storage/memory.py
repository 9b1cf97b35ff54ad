"""
In-Memory Storage Implementation

Used by the test-suite and by the app when Google Sheets is not
configured. Records are deep-copied on the way in and out so callers can
never mutate stored state by accident.
"""

from typing import Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from zenio.models.audit import AuditEvent
from zenio.models.records import (
    Budget,
    Category,
    Goal,
    OnboardingProfile,
    Transaction,
    TransactionType,
    UsageCounter,
    UserProfile,
)
from zenio.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetFilter,
    DuplicateError,
    GoalFilter,
    NotFoundError,
    RecordStorageInterface,
    TransactionFilter,
)


RecordT = TypeVar("RecordT", bound=BaseModel)


# Catalogue used when nothing else is configured
DEFAULT_CATEGORIES: list[tuple[str, TransactionType, str]] = [
    ("Comida y restaurantes", TransactionType.EXPENSE, "🍽️"),
    ("Supermercado", TransactionType.EXPENSE, "🛒"),
    ("Transporte", TransactionType.EXPENSE, "🚗"),
    ("Vivienda", TransactionType.EXPENSE, "🏠"),
    ("Servicios", TransactionType.EXPENSE, "💡"),
    ("Salud", TransactionType.EXPENSE, "🏥"),
    ("Educación", TransactionType.EXPENSE, "🎓"),
    ("Entretenimiento", TransactionType.EXPENSE, "🎬"),
    ("Ropa", TransactionType.EXPENSE, "👕"),
    ("Ahorro", TransactionType.EXPENSE, "💰"),
    ("Otros gastos", TransactionType.EXPENSE, "📦"),
    ("Salario", TransactionType.INCOME, "💼"),
    ("Freelance", TransactionType.INCOME, "💻"),
    ("Inversiones", TransactionType.INCOME, "📈"),
    ("Otros ingresos", TransactionType.INCOME, "💵"),
]


def default_categories() -> list[Category]:
    return [Category(name=name, type=kind, icon=icon) for name, kind, icon in DEFAULT_CATEGORIES]


def _newest_first(records: list[RecordT]) -> list[RecordT]:
    # Reverse insertion order first so equal timestamps keep the latest insert on top
    return sorted(reversed(records), key=lambda r: r.created_at, reverse=True)


class _UserTable:
    """Records of one kind keyed by id, each owned by a user."""

    def __init__(self, kind: str):
        self._kind = kind
        self._rows: dict[str, BaseModel] = {}

    def add(self, record) -> None:
        if record.id in self._rows:
            raise DuplicateError(f"{self._kind} already exists: {record.id}")
        self._rows[record.id] = record.model_copy(deep=True)

    def replace(self, record) -> None:
        current = self._rows.get(record.id)
        if current is None or current.user_id != record.user_id:
            raise NotFoundError(f"{self._kind} not found: {record.id}")
        self._rows[record.id] = record.model_copy(deep=True)

    def remove(self, user_id: str, record_id: str) -> bool:
        current = self._rows.get(record_id)
        if current is None or current.user_id != user_id:
            return False
        del self._rows[record_id]
        return True

    def find(self, user_id: str, criteria, limit: Optional[int]) -> list:
        owned = [r for r in self._rows.values() if r.user_id == user_id and criteria.matches(r)]
        ordered = _newest_first(owned)
        if limit is not None:
            ordered = ordered[:limit]
        return [r.model_copy(deep=True) for r in ordered]


class InMemoryRecordStorage(RecordStorageInterface):
    """Dict-backed categories, transactions, budgets and goals."""

    def __init__(self, categories: Optional[list[Category]] = None):
        self._categories: dict[str, Category] = {}
        for category in categories or []:
            self._categories[category.id] = category.model_copy()
        self._transactions = _UserTable("transaction")
        self._budgets = _UserTable("budget")
        self._goals = _UserTable("goal")

    # Categories

    async def list_categories(
        self,
        category_type: Optional[TransactionType] = None,
    ) -> list[Category]:
        return [
            c.model_copy()
            for c in self._categories.values()
            if category_type is None or c.type == category_type
        ]

    async def get_category(self, category_id: str) -> Optional[Category]:
        category = self._categories.get(category_id)
        return category.model_copy() if category else None

    async def get_category_by_name(
        self,
        name: str,
        category_type: Optional[TransactionType] = None,
    ) -> Optional[Category]:
        wanted = name.strip().lower()
        for category in self._categories.values():
            if category.name.lower() == wanted and (category_type is None or category.type == category_type):
                return category.model_copy()
        return None

    async def save_category(self, category: Category) -> bool:
        self._categories[category.id] = category.model_copy()
        return True

    # Transactions

    async def add_transaction(self, transaction: Transaction) -> bool:
        self._transactions.add(transaction)
        return True

    async def update_transaction(self, transaction: Transaction) -> bool:
        self._transactions.replace(transaction)
        return True

    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        return self._transactions.remove(user_id, transaction_id)

    async def find_transactions(
        self,
        user_id: str,
        criteria: TransactionFilter,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        return self._transactions.find(user_id, criteria, limit)

    # Budgets

    async def add_budget(self, budget: Budget) -> bool:
        self._budgets.add(budget)
        return True

    async def update_budget(self, budget: Budget) -> bool:
        self._budgets.replace(budget)
        return True

    async def delete_budget(self, user_id: str, budget_id: str) -> bool:
        return self._budgets.remove(user_id, budget_id)

    async def find_budgets(
        self,
        user_id: str,
        criteria: BudgetFilter,
        limit: Optional[int] = None,
    ) -> list[Budget]:
        return self._budgets.find(user_id, criteria, limit)

    # Goals

    async def add_goal(self, goal: Goal) -> bool:
        self._goals.add(goal)
        return True

    async def update_goal(self, goal: Goal) -> bool:
        self._goals.replace(goal)
        return True

    async def delete_goal(self, user_id: str, goal_id: str) -> bool:
        return self._goals.remove(user_id, goal_id)

    async def find_goals(
        self,
        user_id: str,
        criteria: GoalFilter,
        limit: Optional[int] = None,
    ) -> list[Goal]:
        return self._goals.find(user_id, criteria, limit)


class InMemoryAccountStorage(AccountStorageInterface):

    def __init__(self, users: Optional[list[UserProfile]] = None):
        self._users: dict[str, UserProfile] = {u.id: u.model_copy() for u in users or []}
        self._onboarding: dict[str, OnboardingProfile] = {}
        self._usage: dict[str, UsageCounter] = {}

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def save_user(self, profile: UserProfile) -> bool:
        self._users[profile.id] = profile.model_copy()
        return True

    async def mark_onboarding_completed(self, user_id: str) -> bool:
        user = self._users.get(user_id) or UserProfile(id=user_id)
        self._users[user_id] = user.model_copy(update={"onboarding_completed": True})
        return True

    async def get_onboarding(self, user_id: str) -> Optional[OnboardingProfile]:
        profile = self._onboarding.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    async def upsert_onboarding(self, profile: OnboardingProfile) -> bool:
        self._onboarding[profile.user_id] = profile.model_copy(deep=True)
        return True

    async def get_usage(self, user_id: str) -> Optional[UsageCounter]:
        counter = self._usage.get(user_id)
        return counter.model_copy() if counter else None

    async def save_usage(self, counter: UsageCounter) -> bool:
        self._usage[counter.user_id] = counter.model_copy()
        return True


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return sorted(
            (e for e in self.events if e.correlation_id == correlation_id),
            key=lambda e: e.timestamp,
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]
