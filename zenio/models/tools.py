"""
Tool-Call Schemas

DESIGN DECISION: The reasoning service sends arguments as free-form JSON.
Each tool gets one pydantic schema and arguments are validated against it
before any handler runs, so handlers only ever see typed values.

Schemas are permissive about extra keys (the assistant's function
definitions evolve) and strict about the values they do use.

Every handler answers with a ToolResult. A failed ToolResult is still a
normal return value: whether it becomes a conversational reply or a hard
error is decided by the caller, never by the handler.
"""

import json
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from zenio.models.records import (
    AliasedEnum,
    BudgetPeriod,
    EntityModule,
    GoalPriority,
    MonthlyTargetMode,
    TransactionType,
)


class ToolName(str, Enum):
    """The fixed set of functions the assistant may call."""
    ONBOARDING = "onboarding_financiero"
    MANAGE_TRANSACTION = "manage_transaction_record"
    MANAGE_BUDGET = "manage_budget_record"
    MANAGE_GOAL = "manage_goal_record"
    LIST_CATEGORIES = "list_categories"
    ANALYZE_ANT_EXPENSES = "analyze_ant_expenses"


class RecordOperation(AliasedEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"


def _coerce_enum(enum_cls: type[Enum], value: Any, message: str) -> Any:
    if value is None or isinstance(value, enum_cls):
        return value
    if isinstance(value, str) and not value.strip():
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValueError(message)


class ToolArgs(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore",
        populate_by_name=True,
    )


# =============================================================================
# SHARED PIECES
# =============================================================================

class ListFilters(ToolArgs):
    """Filters for list operations. Every field is optional."""

    type: Optional[TransactionType] = None
    category: Optional[str] = None
    date_from: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("date_from", "start_date", "fecha_inicio"),
    )
    date_to: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("date_to", "end_date", "fecha_fin"),
    )
    amount: Optional[Decimal] = None
    name: Optional[str] = None
    period: Optional[BudgetPeriod] = None
    limit: Optional[int] = None

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        return _coerce_enum(TransactionType, v, 'Type debe ser "gasto" o "ingreso"')

    @field_validator("period", mode="before")
    @classmethod
    def parse_period(cls, v):
        return _coerce_enum(BudgetPeriod, v, "La recurrencia debe ser: semanal, mensual o anual")


Criteria = dict[str, Any]

_CRITERIA_ALIAS = AliasChoices("criterios_identificacion", "criteria")


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionData(ToolArgs):
    amount: Optional[Decimal] = None
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        return _coerce_enum(TransactionType, v, 'Type debe ser "gasto" o "ingreso"')

    @field_validator("date", mode="before")
    @classmethod
    def stringify_date(cls, v):
        # The assistant occasionally sends 20250719 as a number
        return str(v) if isinstance(v, int) else v


class TransactionRecordArgs(ToolArgs):
    operation: RecordOperation
    module: Optional[str] = None
    transaction_data: Optional[TransactionData] = None
    criteria: Optional[Criteria] = Field(default=None, validation_alias=_CRITERIA_ALIAS)
    filters: Optional[ListFilters] = None

    @field_validator("operation", mode="before")
    @classmethod
    def parse_operation(cls, v):
        return _coerce_enum(RecordOperation, v, "Operación inválida: debe ser insert, update, delete o list")

    def list_filters(self) -> ListFilters:
        """Filters for a list call, accepting the older transaction_data shape."""
        if self.filters is not None:
            return self.filters
        data = self.transaction_data
        if data is None:
            return ListFilters()
        return ListFilters(
            type=data.type,
            category=data.category,
            date_from=data.date,
            date_to=data.date,
            amount=data.amount,
        )


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetRecordArgs(ToolArgs):
    """
    Budgets arrive flat: `category` plus `amount`, and for update/delete
    `previous_amount` to pick the budget. A structured `criteria` map is
    accepted as well.
    """

    operation: RecordOperation
    module: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[Decimal] = None
    previous_amount: Optional[Decimal] = None
    recurrence: Optional[BudgetPeriod] = None
    name: Optional[str] = None
    alert_percentage: Optional[int] = Field(default=None, ge=1, le=100)
    criteria: Optional[Criteria] = Field(default=None, validation_alias=_CRITERIA_ALIAS)
    filters: Optional[ListFilters] = None

    @field_validator("operation", mode="before")
    @classmethod
    def parse_operation(cls, v):
        return _coerce_enum(RecordOperation, v, "Operación inválida: debe ser insert, update, delete o list")

    @field_validator("recurrence", mode="before")
    @classmethod
    def parse_recurrence(cls, v):
        return _coerce_enum(BudgetPeriod, v, "La recurrencia debe ser: semanal, mensual o anual")

    def identification(self) -> Criteria:
        """Criteria that pick the budget for update/delete."""
        if self.criteria:
            return dict(self.criteria)
        criteria: Criteria = {}
        if self.category:
            criteria["category"] = self.category
        if self.previous_amount is not None:
            criteria["amount"] = self.previous_amount
        return criteria

    def list_filters(self) -> ListFilters:
        if self.filters is not None:
            return self.filters
        return ListFilters(category=self.category, period=self.recurrence)


# =============================================================================
# GOALS
# =============================================================================

class GoalData(ToolArgs):
    name: Optional[str] = None
    target_amount: Optional[Decimal] = None
    category: Optional[str] = None
    monthly_type: Optional[MonthlyTargetMode] = None
    monthly_value: Optional[Decimal] = None
    due_date: Optional[str] = None
    priority: Optional[GoalPriority] = None
    description: Optional[str] = None

    @field_validator("monthly_type", mode="before")
    @classmethod
    def parse_monthly_type(cls, v):
        return _coerce_enum(MonthlyTargetMode, v, 'El tipo mensual debe ser "porcentaje" o "fijo"')

    @field_validator("priority", mode="before")
    @classmethod
    def parse_priority(cls, v):
        return _coerce_enum(GoalPriority, v, "La prioridad debe ser Alta, Media o Baja")


class GoalRecordArgs(ToolArgs):
    operation: RecordOperation
    module: Optional[str] = None
    goal_data: Optional[GoalData] = None
    criteria: Optional[Criteria] = Field(default=None, validation_alias=_CRITERIA_ALIAS)
    filters: Optional[ListFilters] = None

    @field_validator("operation", mode="before")
    @classmethod
    def parse_operation(cls, v):
        return _coerce_enum(RecordOperation, v, "Operación inválida: debe ser insert, update, delete o list")

    def list_filters(self) -> ListFilters:
        if self.filters is not None:
            return self.filters
        if self.goal_data is None:
            return ListFilters()
        return ListFilters(category=self.goal_data.category, name=self.goal_data.name)


# =============================================================================
# OTHER TOOLS
# =============================================================================

class OnboardingArgs(ToolArgs):
    meta_financiera: list[str] = Field(default_factory=list)
    desafio_financiero: list[str] = Field(default_factory=list)
    habito_ahorro: Optional[str] = None
    fondo_emergencia: Optional[str] = None
    sentir_financiero: Optional[str] = None
    rango_ingresos: Optional[str] = None

    @field_validator("meta_financiera", "desafio_financiero", mode="before")
    @classmethod
    def listify(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


class ListCategoriesArgs(ToolArgs):
    module: EntityModule = EntityModule.TRANSACTIONS

    @field_validator("module", mode="before")
    @classmethod
    def parse_module(cls, v):
        parsed = _coerce_enum(
            EntityModule, v,
            f"Módulo no válido: {v}. Módulos válidos: presupuestos, transacciones, metas",
        )
        return parsed or EntityModule.TRANSACTIONS


class AntExpenseAnalysisArgs(ToolArgs):
    ant_threshold: Decimal = Field(
        default=Decimal("500"),
        ge=50,
        le=5000,
        validation_alias=AliasChoices("ant_threshold", "antThreshold"),
    )
    min_frequency: int = Field(
        default=3,
        ge=2,
        le=20,
        validation_alias=AliasChoices("min_frequency", "minFrequency"),
    )
    months_to_analyze: int = Field(
        default=3,
        ge=1,
        le=12,
        validation_alias=AliasChoices("months_to_analyze", "monthsToAnalyze"),
    )


ToolArgsModel = Union[
    OnboardingArgs,
    TransactionRecordArgs,
    BudgetRecordArgs,
    GoalRecordArgs,
    ListCategoriesArgs,
    AntExpenseAnalysisArgs,
]

ARGS_SCHEMAS: dict[ToolName, type[ToolArgs]] = {
    ToolName.ONBOARDING: OnboardingArgs,
    ToolName.MANAGE_TRANSACTION: TransactionRecordArgs,
    ToolName.MANAGE_BUDGET: BudgetRecordArgs,
    ToolName.MANAGE_GOAL: GoalRecordArgs,
    ToolName.LIST_CATEGORIES: ListCategoriesArgs,
    ToolName.ANALYZE_ANT_EXPENSES: AntExpenseAnalysisArgs,
}


# =============================================================================
# RESULTS
# =============================================================================

class FailureKind(str, Enum):
    VALIDATION = "validation"
    CATEGORY_NOT_FOUND = "category_not_found"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    UNSUPPORTED = "unsupported"
    ERROR = "error"


class ToolResult(BaseModel):
    """Outcome of one tool call, serialized as the ToolOutput payload."""

    success: bool
    action: Optional[str] = None
    message: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    suggestions: Optional[list[str]] = None
    error: Optional[str] = None
    failure: Optional[FailureKind] = None

    @classmethod
    def ok(cls, action: Optional[str], message: str, **data: Any) -> "ToolResult":
        return cls(success=True, action=action, message=message, data=data)

    @classmethod
    def fail(
        cls,
        kind: FailureKind,
        error: str,
        message: Optional[str] = None,
        action: Optional[str] = None,
        suggestions: Optional[list[str]] = None,
    ) -> "ToolResult":
        return cls(
            success=False,
            failure=kind,
            error=error,
            message=message,
            action=action,
            suggestions=suggestions,
        )

    @property
    def is_recordable(self) -> bool:
        """Whether the chat client should hear about this result as an action."""
        return self.action is not None

    def to_output(self) -> str:
        return json.dumps(self.model_dump(mode="json", exclude_none=True), ensure_ascii=False)
