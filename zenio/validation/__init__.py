"""Record validation package."""

from zenio.validation.validator import (
    BUDGET_CRITERIA_FIELDS,
    GOAL_CRITERIA_FIELDS,
    TRANSACTION_CRITERIA_FIELDS,
    RecordValidationError,
    RecordValidator,
    ValidationIssue,
    ValidationResult,
    parse_due_date,
)

__all__ = [
    "BUDGET_CRITERIA_FIELDS",
    "GOAL_CRITERIA_FIELDS",
    "TRANSACTION_CRITERIA_FIELDS",
    "RecordValidationError",
    "RecordValidator",
    "ValidationIssue",
    "ValidationResult",
    "parse_due_date",
]
