"""
Record Validation

DESIGN DECISION: Every mutation is validated in full before the store is
touched. Validation collects all issues instead of stopping at the first,
so the assistant can ask for everything that is missing in one reply.

Two kinds of checks:

FIELD CHECKS:
- Required field presence (per operation)
- Positive amounts, known enum values
- Date format and lower bound

CRITERIA CHECKS:
- Only known identification fields
- No empty values
- A minimum number of fields per record kind, so a vague request
  cannot silently pick one of many records

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and the mutation does not happen.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from zenio.config import AppSettings, get_settings
from zenio.models.records import MonthlyTargetMode
from zenio.models.tools import BudgetRecordArgs, Criteria, GoalData, TransactionData
from zenio.temporal import TemporalNormalizer


TRANSACTION_CRITERIA_FIELDS = frozenset({"amount", "category", "date", "type", "description", "id"})
BUDGET_CRITERIA_FIELDS = frozenset({"name", "category", "amount", "period", "id"})
GOAL_CRITERIA_FIELDS = frozenset({"name", "category", "target_amount", "due_date", "id"})

MIN_TRANSACTION_CRITERIA = 2
MIN_BUDGET_CRITERIA = 1
MIN_GOAL_CRITERIA = 1


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'insufficient')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue (Spanish)"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def is_insufficient(self) -> bool:
        """Only failure is too few criteria: the request is ambiguous, not wrong."""
        return bool(self.errors) and all(i.issue_type == "insufficient" for i in self.errors)

    def add(self, field: str, issue_type: str, message: str, suggested_fix: Optional[str] = None) -> None:
        self.issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=message,
            suggested_fix=suggested_fix,
        ))

    def summary(self) -> str:
        return "; ".join(issue.message for issue in self.errors)

    def raise_for_errors(self) -> None:
        if not self.is_valid:
            raise RecordValidationError(self.errors)


class RecordValidationError(Exception):
    """Raised when a record payload fails validation. Nothing was written."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class RecordValidator:
    """
    Validates tool payloads for transactions, budgets and goals.

    Dates are checked through the same TemporalNormalizer the mutator uses,
    so anything that validates here also parses there.
    """

    def __init__(
        self,
        normalizer: TemporalNormalizer,
        settings: Optional[AppSettings] = None,
    ):
        self._normalizer = normalizer
        self._settings = settings or get_settings().app

    # Shared checks

    def _check_amount(
        self,
        result: ValidationResult,
        value: Optional[Decimal],
        required: bool,
        field: str = "amount",
        label: str = "Amount",
    ) -> None:
        if value is None:
            if required:
                result.add(field, "missing", f"{label} es requerido")
            return
        if value <= 0:
            result.add(field, "invalid_value", f"{label} debe ser un número positivo")

    def _check_transaction_date(self, result: ValidationResult, value: Optional[str]) -> None:
        if _is_blank(value):
            return
        parsed = self._normalizer.resolve(value)
        if parsed is None:
            result.add(
                "date",
                "invalid_format",
                "Date debe estar en formato YYYY-MM-DD",
                suggested_fix="Usa una fecha como 2025-07-19",
            )
            return
        minimum = self._settings.minimum_transaction_date
        if parsed < minimum:
            result.add("date", "out_of_range", f"Date no puede ser anterior al año {minimum.year}")

    # Transactions

    def validate_transaction(self, data: Optional[TransactionData], for_update: bool = False) -> ValidationResult:
        """
        Insert requires amount, type and category. Update only checks
        the fields that were provided, and requires at least one.
        """
        result = ValidationResult()
        if data is None:
            if for_update:
                result.add("transaction_data", "missing", "No se proporcionaron cambios para la transacción")
            else:
                result.add("transaction_data", "missing", "transaction_data es requerido")
            return result

        self._check_amount(result, data.amount, required=not for_update)
        if data.type is None and not for_update:
            result.add("type", "missing", "Type es requerido")
        if _is_blank(data.category) and not for_update:
            result.add("category", "missing", "Category es requerida")
        self._check_transaction_date(result, data.date)

        if for_update and not data.model_dump(exclude_none=True):
            result.add("transaction_data", "missing", "No se proporcionaron cambios para la transacción")
        return result

    # Criteria

    def validate_criteria(
        self,
        criteria: Optional[Criteria],
        allowed: frozenset[str],
        minimum: int,
    ) -> ValidationResult:
        result = ValidationResult()
        if not criteria:
            result.add(
                "criteria",
                "missing",
                "Se requieren criterios de identificación para esta operación",
            )
            return result

        unknown = sorted(key for key in criteria if key not in allowed)
        if unknown:
            result.add(
                "criteria",
                "invalid_field",
                f"Campos inválidos en criterios: {', '.join(unknown)}",
                suggested_fix=f"Campos válidos: {', '.join(sorted(allowed))}",
            )
        for key, value in criteria.items():
            if key in allowed and _is_blank(value):
                result.add(key, "empty", f"El criterio {key} no puede estar vacío")

        if result.is_valid and len(criteria) < minimum:
            result.add(
                "criteria",
                "insufficient",
                f"Se requieren al menos {minimum} criterios de identificación",
            )
        return result

    def validate_transaction_criteria(self, criteria: Optional[Criteria]) -> ValidationResult:
        return self.validate_criteria(criteria, TRANSACTION_CRITERIA_FIELDS, MIN_TRANSACTION_CRITERIA)

    def validate_budget_criteria(self, criteria: Optional[Criteria]) -> ValidationResult:
        return self.validate_criteria(criteria, BUDGET_CRITERIA_FIELDS, MIN_BUDGET_CRITERIA)

    def validate_goal_criteria(self, criteria: Optional[Criteria]) -> ValidationResult:
        return self.validate_criteria(criteria, GOAL_CRITERIA_FIELDS, MIN_GOAL_CRITERIA)

    # Budgets

    def validate_budget(self, args: BudgetRecordArgs, for_update: bool = False) -> ValidationResult:
        result = ValidationResult()
        if for_update:
            self._check_amount(result, args.amount, required=False)
            if args.amount is None and args.recurrence is None and args.name is None and args.alert_percentage is None:
                result.add("amount", "missing", "No se proporcionaron cambios para el presupuesto")
            return result

        if _is_blank(args.category):
            result.add("category", "missing", "Category es requerida")
        self._check_amount(result, args.amount, required=True)
        if args.recurrence is None:
            result.add(
                "recurrence",
                "missing",
                "La recurrencia es requerida: semanal, mensual o anual",
            )
        return result

    # Goals

    def validate_goal(self, data: Optional[GoalData], for_update: bool = False) -> ValidationResult:
        result = ValidationResult()
        if data is None:
            result.add(
                "goal_data",
                "missing",
                "No se proporcionaron cambios para la meta" if for_update else "goal_data es requerido",
            )
            return result

        if not for_update:
            if _is_blank(data.name):
                result.add("name", "missing", "El nombre de la meta es requerido")
            if _is_blank(data.category):
                result.add("category", "missing", "Category es requerida")
        self._check_amount(
            result, data.target_amount, required=not for_update,
            field="target_amount", label="El monto objetivo",
        )

        if data.monthly_type is not None:
            self._check_monthly_target(result, data.monthly_type, data.monthly_value)

        if not _is_blank(data.due_date):
            due = self._normalizer.resolve(data.due_date)
            if due is None:
                result.add("due_date", "invalid_format", "La fecha objetivo debe estar en formato YYYY-MM-DD")
            elif due < self._normalizer.today():
                result.add("due_date", "out_of_range", "La fecha objetivo no puede estar en el pasado")

        if for_update and not data.model_dump(exclude_none=True):
            result.add("goal_data", "missing", "No se proporcionaron cambios para la meta")
        return result

    def validate_monthly_target(
        self,
        mode: Optional[MonthlyTargetMode],
        value: Optional[Decimal],
    ) -> ValidationResult:
        """Checks a monthly value against the mode it will be stored under."""
        result = ValidationResult()
        if mode is None:
            result.add(
                "monthly_type",
                "missing",
                "Indica si el objetivo mensual es un porcentaje o un monto fijo",
                suggested_fix="Envía monthly_type junto con monthly_value",
            )
            return result
        self._check_monthly_target(result, mode, value)
        return result

    def _check_monthly_target(
        self,
        result: ValidationResult,
        mode: MonthlyTargetMode,
        value: Optional[Decimal],
    ) -> None:
        if value is None:
            result.add("monthly_value", "missing", "Se requiere el valor del objetivo mensual")
        elif value <= 0:
            result.add("monthly_value", "invalid_value", "El objetivo mensual debe ser un número positivo")
        elif mode == MonthlyTargetMode.PERCENTAGE and value > 100:
            result.add("monthly_value", "out_of_range", "El porcentaje mensual no puede ser mayor a 100")


def parse_due_date(normalizer: TemporalNormalizer, value: Optional[str]) -> Optional[date]:
    """Due date for a validated goal payload."""
    return None if _is_blank(value) else normalizer.resolve(value)
