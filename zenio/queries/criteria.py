"""
Entity Criteria Matcher

DESIGN DECISION: Update and delete never guess.

The assistant identifies an existing record by a handful of fields the
user mentioned ("the 500 peso transport expense from yesterday"). Those
fields become one store filter scoped to the user, and:

- zero matches  -> NOT_FOUND
- two or more   -> AMBIGUOUS (ask for more detail, never pick the newest)
- exactly one   -> FOUND, the caller mutates that record by id

A category in the criteria that cannot be resolved means no record can
match, so it is reported as NOT_FOUND with the requested label attached.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from zenio.categories import CategoryResolution, CategoryResolver
from zenio.models.conversation import CategoryRef
from zenio.models.records import BudgetPeriod, TransactionType
from zenio.models.tools import Criteria
from zenio.services.storage.interface import (
    BudgetFilter,
    GoalFilter,
    RecordStorageInterface,
    TransactionFilter,
)
from zenio.temporal import TemporalNormalizer
from zenio.validation import RecordValidationError, ValidationIssue


logger = structlog.get_logger(__name__)


class MatchStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


class MatchResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: MatchStatus
    record: Optional[Any] = None
    count: int = 0
    category: Optional[CategoryResolution] = None

    @property
    def found(self) -> bool:
        return self.status == MatchStatus.FOUND


def _invalid(field: str, message: str) -> RecordValidationError:
    return RecordValidationError([
        ValidationIssue(field=field, issue_type="invalid_value", message=message)
    ])


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        raise _invalid(field, f"El criterio {field} debe ser un número")
    if not amount.is_finite():
        raise _invalid(field, f"El criterio {field} debe ser un número")
    return amount


class CriteriaMatcher:
    """Turns identification criteria into a single-record lookup."""

    def __init__(
        self,
        storage: RecordStorageInterface,
        resolver: CategoryResolver,
        normalizer: TemporalNormalizer,
    ):
        self._storage = storage
        self._resolver = resolver
        self._normalizer = normalizer

    @staticmethod
    def _decide(records: list, kind: str, criteria: Criteria) -> MatchResult:
        if not records:
            logger.info("criteria_not_found", kind=kind, fields=sorted(criteria))
            return MatchResult(status=MatchStatus.NOT_FOUND)
        if len(records) > 1:
            logger.info("criteria_ambiguous", kind=kind, fields=sorted(criteria), matches=len(records))
            return MatchResult(status=MatchStatus.AMBIGUOUS, count=len(records))
        return MatchResult(status=MatchStatus.FOUND, record=records[0], count=1)

    def _parse_day(self, value: Any, field: str):
        day = self._normalizer.resolve(str(value))
        if day is None:
            raise _invalid(field, f"El criterio {field} debe estar en formato YYYY-MM-DD")
        return day

    async def _resolve_category(
        self,
        label: Any,
        category_type: Optional[TransactionType],
        candidates: Optional[list[CategoryRef]],
    ) -> CategoryResolution:
        return await self._resolver.resolve(str(label), category_type, candidates)

    # Transactions

    async def transaction_filter(
        self,
        criteria: Criteria,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> tuple[Optional[TransactionFilter], Optional[CategoryResolution]]:
        """
        Build the store filter. Returns (None, resolution) when the
        category cannot be resolved.
        """
        wanted = TransactionFilter()
        if "type" in criteria:
            try:
                wanted.type = TransactionType(str(criteria["type"]))
            except ValueError:
                raise _invalid("type", 'Type debe ser "gasto" o "ingreso"')
        if "amount" in criteria:
            wanted.amount = parse_amount(criteria["amount"])
        if "date" in criteria:
            day = self._parse_day(criteria["date"], "date")
            wanted.date_from = day
            wanted.date_to = day
        if "description" in criteria:
            wanted.description_contains = str(criteria["description"]).strip()
        if "id" in criteria:
            wanted.id = str(criteria["id"]).strip()
        if "category" in criteria:
            resolution = await self._resolve_category(criteria["category"], wanted.type, candidates)
            if not resolution.found:
                return None, resolution
            wanted.category_id = resolution.category.id
        return wanted, None

    async def match_transaction(
        self,
        user_id: str,
        criteria: Criteria,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> MatchResult:
        wanted, unresolved = await self.transaction_filter(criteria, candidates)
        if wanted is None:
            return MatchResult(status=MatchStatus.NOT_FOUND, category=unresolved)
        records = await self._storage.find_transactions(user_id, wanted)
        return self._decide(records, "transaction", criteria)

    # Budgets

    async def match_budget(
        self,
        user_id: str,
        criteria: Criteria,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> MatchResult:
        wanted = BudgetFilter()
        if "amount" in criteria:
            wanted.amount = parse_amount(criteria["amount"])
        if "period" in criteria:
            try:
                wanted.period = BudgetPeriod(str(criteria["period"]))
            except ValueError:
                raise _invalid("period", "La recurrencia debe ser: semanal, mensual o anual")
        if "name" in criteria:
            wanted.name_contains = str(criteria["name"]).strip()
        if "id" in criteria:
            wanted.id = str(criteria["id"]).strip()
        if "category" in criteria:
            resolution = await self._resolve_category(criteria["category"], TransactionType.EXPENSE, candidates)
            if not resolution.found:
                return MatchResult(status=MatchStatus.NOT_FOUND, category=resolution)
            wanted.category_id = resolution.category.id

        records = await self._storage.find_budgets(user_id, wanted)
        return self._decide(records, "budget", criteria)

    # Goals

    async def match_goal(
        self,
        user_id: str,
        criteria: Criteria,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> MatchResult:
        wanted = GoalFilter()
        if "target_amount" in criteria:
            wanted.target_amount = parse_amount(criteria["target_amount"], "target_amount")
        if "due_date" in criteria:
            wanted.due_date = self._parse_day(criteria["due_date"], "due_date")
        if "name" in criteria:
            wanted.name_contains = str(criteria["name"]).strip()
        if "id" in criteria:
            wanted.id = str(criteria["id"]).strip()
        if "category" in criteria:
            resolution = await self._resolve_category(criteria["category"], None, candidates)
            if not resolution.found:
                return MatchResult(status=MatchStatus.NOT_FOUND, category=resolution)
            wanted.category_id = resolution.category.id

        records = await self._storage.find_goals(user_id, wanted)
        return self._decide(records, "goal", criteria)
