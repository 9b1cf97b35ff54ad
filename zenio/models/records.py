"""
Financial Record Models for Zenio

These models define the strict schemas for the records the engine mutates:
categories, transactions, budgets and goals, plus the per-user account
data it reads (profile, onboarding answers, usage counter).

DESIGN DECISION: The assistant speaks Spanish, so every enum accepts the
Spanish spelling it uses ("gasto", "mensual", "porcentaje") as well as
the English one. Aliases are resolved by the enum itself, so any code
path that calls TransactionType("gasto") gets the same answer.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_money(amount: Decimal) -> str:
    """RD$1,500 or RD$1,500.50; whole amounts drop the decimals."""
    value = Decimal(amount)
    if value == value.to_integral_value():
        return f"RD${value:,.0f}"
    return f"RD${value:,.2f}"


class AliasedEnum(str, Enum):
    """String enum that also accepts case-insensitive aliases."""

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {}

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        for member in cls:
            if member.value.lower() == key or member.name.lower() == key:
                return member
        target = cls._aliases().get(key)
        if target is not None:
            return cls(target)
        return None


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(AliasedEnum):
    """Direction of money. Categories carry the same type."""
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"gasto": "EXPENSE", "gastos": "EXPENSE", "ingreso": "INCOME", "ingresos": "INCOME"}

    @property
    def label(self) -> str:
        return "Gasto" if self == TransactionType.EXPENSE else "Ingreso"


class BudgetPeriod(AliasedEnum):
    """Budget recurrence."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"semanal": "weekly", "mensual": "monthly", "anual": "yearly"}

    @property
    def label(self) -> str:
        return {"weekly": "Semanal", "monthly": "Mensual", "yearly": "Anual"}[self.value]


class MonthlyTargetMode(AliasedEnum):
    """How a goal's monthly contribution target is expressed."""
    PERCENTAGE = "percentage"  # share of monthly income, 0-100
    FIXED = "fixed"            # fixed amount per month

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"porcentaje": "percentage", "fijo": "fixed", "monto_fijo": "fixed"}


class GoalPriority(AliasedEnum):
    HIGH = "Alta"
    MEDIUM = "Media"
    LOW = "Baja"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"high": "Alta", "medium": "Media", "low": "Baja"}


class EntityModule(AliasedEnum):
    """Record family a tool call targets."""
    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"
    GOALS = "goals"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"transacciones": "transactions", "presupuestos": "budgets", "metas": "goals"}


class SubscriptionPlan(AliasedEnum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"
    PRO = "PRO"


# =============================================================================
# CATALOGUE
# =============================================================================

class Category(BaseModel):
    """A spending or income category from the shared catalogue."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    icon: Optional[str] = Field(default=None, max_length=16)

    @property
    def label(self) -> str:
        """Name prefixed with the icon, as shown to the user."""
        return f"{self.icon} {self.name}" if self.icon else self.name


# =============================================================================
# RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense.

    `date` is the calendar day the user means. `occurred_at` is the
    absolute instant of local midnight in the user's timezone; it is
    only set when the record is created.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    category_id: str = Field(..., min_length=1)
    date: date
    occurred_at: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Budget(BaseModel):
    """A spending limit for one expense category over a period."""
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    category_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    period: BudgetPeriod
    start_date: date
    end_date: date
    alert_percentage: int = Field(default=80, ge=1, le=100)
    spent: Decimal = Field(default=Decimal("0"), ge=0)
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def validate_period_bounds(self) -> "Budget":
        if self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before its start date")
        return self


class Goal(BaseModel):
    """A savings goal."""
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: str = Field(default_factory=_new_id)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    category_id: str = Field(..., min_length=1)
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    monthly_target_type: Optional[MonthlyTargetMode] = None
    monthly_value: Optional[Decimal] = Field(default=None, gt=0)
    due_date: Optional[date] = None
    priority: GoalPriority = GoalPriority.MEDIUM
    description: Optional[str] = Field(default=None, max_length=500)
    is_completed: bool = False
    is_active: bool = True
    contributions_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def validate_monthly_target(self) -> "Goal":
        if (
            self.monthly_target_type == MonthlyTargetMode.PERCENTAGE
            and self.monthly_value is not None
            and self.monthly_value > 100
        ):
            raise ValueError("A percentage monthly target cannot exceed 100")
        return self


# =============================================================================
# ACCOUNT
# =============================================================================

class UserProfile(BaseModel):
    """What the engine needs to know about the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    onboarding_completed: bool = False
    plan: SubscriptionPlan = SubscriptionPlan.FREE


class OnboardingProfile(BaseModel):
    """Answers captured by the financial onboarding conversation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    main_goals: list[str] = Field(default_factory=list)
    main_challenges: list[str] = Field(default_factory=list)
    main_challenge_other: Optional[str] = None
    saving_habit: Optional[str] = None
    emergency_fund: Optional[str] = None
    financial_feeling: Optional[str] = None
    income_range: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)


class UsageCounter(BaseModel):
    """Assistant turns used in the current monthly period."""

    user_id: str = Field(..., min_length=1)
    used: int = Field(default=0, ge=0)
    reset_at: datetime = Field(default_factory=_utcnow)
