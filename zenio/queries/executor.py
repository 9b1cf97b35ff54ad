"""
Query Execution Engine

DESIGN DECISION: Query execution is DETERMINISTIC.
The assistant turns "what did I spend on food this month?" into a list
call with filters. This engine runs those filters against the user's
stored records and returns them with a plain description of what was
searched. The assistant then phrases the answer.

At no point does the assistant see data that did not come from here.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from zenio.categories import CategoryResolution, CategoryResolver
from zenio.config import AppSettings, get_settings
from zenio.models.conversation import CategoryRef
from zenio.models.records import EntityModule, TransactionType, format_money
from zenio.models.tools import ListFilters
from zenio.services.storage.interface import (
    BudgetFilter,
    GoalFilter,
    RecordStorageInterface,
    TransactionFilter,
)
from zenio.temporal import TemporalNormalizer


logger = structlog.get_logger(__name__)

MIN_LIST_LIMIT = 1
MAX_LIST_LIMIT = 100


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class QueryResult(BaseModel):
    """Outcome of one list query."""

    module: EntityModule
    data_found: bool = False
    result_count: int = 0
    results: list[dict[str, Any]] = Field(default_factory=list)
    totals: dict[str, float] = Field(default_factory=dict)
    query_description: str = ""
    summary: str = ""
    unresolved_category: Optional[CategoryResolution] = None


def record_payload(record: BaseModel, category_name: Optional[str]) -> dict[str, Any]:
    """JSON-safe view of a record for tool outputs, with the category by name."""
    data = record.model_dump(mode="json", exclude={"user_id"})
    data["category"] = category_name
    return data


def clamp_limit(limit: Optional[int], default: int) -> int:
    if limit is None:
        return default
    return max(MIN_LIST_LIMIT, min(MAX_LIST_LIMIT, limit))


def _date_range_str(date_from: Optional[date], date_to: Optional[date]) -> str:
    if date_from and date_to:
        if date_from == date_to:
            return f"el {date_from.isoformat()}"
        return f"del {date_from.isoformat()} al {date_to.isoformat()}"
    if date_from:
        return f"desde {date_from.isoformat()}"
    if date_to:
        return f"hasta {date_to.isoformat()}"
    return ""


class QueryExecutor:
    """
    Executes list queries against the record store.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    - Result count is bounded to 1-100
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        resolver: CategoryResolver,
        normalizer: TemporalNormalizer,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._resolver = resolver
        self._normalizer = normalizer
        self._settings = settings or get_settings().app

    def _limit(self, filters: ListFilters) -> int:
        return clamp_limit(filters.limit, self._settings.default_list_limit)

    def _day(self, value: Optional[str]) -> Optional[date]:
        if not value:
            return None
        day = self._normalizer.resolve(value)
        if day is None:
            raise QueryExecutionError(f"Fecha inválida en filtros: {value}")
        return day

    async def category_names(self, category_ids: set[str]) -> dict[str, str]:
        names = {}
        for category_id in category_ids:
            category = await self._storage.get_category(category_id)
            if category is not None:
                names[category_id] = category.name
        return names

    async def _payloads(self, records: list) -> list[dict[str, Any]]:
        names = await self.category_names({r.category_id for r in records})
        return [record_payload(r, names.get(r.category_id)) for r in records]

    async def list_transactions(
        self,
        user_id: str,
        filters: ListFilters,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> QueryResult:
        wanted = TransactionFilter(
            type=filters.type,
            amount=filters.amount,
            date_from=self._day(filters.date_from),
            date_to=self._day(filters.date_to),
        )
        desc_parts = ["Transacciones"]
        if filters.type:
            desc_parts.append(f"tipo: {filters.type.label}")
        if filters.category:
            resolution = await self._resolver.resolve(filters.category, filters.type, candidates)
            if not resolution.found:
                return QueryResult(module=EntityModule.TRANSACTIONS, unresolved_category=resolution)
            wanted.category_id = resolution.category.id
            desc_parts.append(f"categoría: {resolution.category.name}")
        if filters.amount is not None:
            desc_parts.append(f"monto: {format_money(filters.amount)}")
        if wanted.date_from or wanted.date_to:
            desc_parts.append(_date_range_str(wanted.date_from, wanted.date_to))

        records = await self._storage.find_transactions(user_id, wanted, limit=self._limit(filters))
        totals = {
            "income": float(sum((r.amount for r in records if r.type == TransactionType.INCOME), Decimal("0"))),
            "expense": float(sum((r.amount for r in records if r.type == TransactionType.EXPENSE), Decimal("0"))),
        }
        logger.info("transactions_listed", user_id=user_id, count=len(records))
        return QueryResult(
            module=EntityModule.TRANSACTIONS,
            data_found=bool(records),
            result_count=len(records),
            results=await self._payloads(records),
            totals=totals,
            query_description=" | ".join(desc_parts),
            summary=f"Se encontraron {len(records)} transacciones",
        )

    async def list_budgets(
        self,
        user_id: str,
        filters: ListFilters,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> QueryResult:
        wanted = BudgetFilter(period=filters.period, amount=filters.amount, name_contains=filters.name)
        desc_parts = ["Presupuestos"]
        scope = None
        if filters.category:
            resolution = await self._resolver.resolve(filters.category, TransactionType.EXPENSE, candidates)
            if not resolution.found:
                return QueryResult(module=EntityModule.BUDGETS, unresolved_category=resolution)
            wanted.category_id = resolution.category.id
            scope = resolution.category.name
            desc_parts.append(f"categoría: {scope}")
        if filters.period:
            desc_parts.append(f"período: {filters.period.label}")

        records = await self._storage.find_budgets(user_id, wanted, limit=self._limit(filters))
        summary = (
            f"Se encontraron {len(records)} presupuestos para {scope}"
            if scope
            else f"Se encontraron {len(records)} presupuestos en total"
        )
        logger.info("budgets_listed", user_id=user_id, count=len(records))
        return QueryResult(
            module=EntityModule.BUDGETS,
            data_found=bool(records),
            result_count=len(records),
            results=await self._payloads(records),
            totals={"amount": float(sum((r.amount for r in records), Decimal("0")))},
            query_description=" | ".join(desc_parts),
            summary=summary,
        )

    async def list_goals(
        self,
        user_id: str,
        filters: ListFilters,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> QueryResult:
        wanted = GoalFilter(name_contains=filters.name)
        desc_parts = ["Metas"]
        if filters.category:
            resolution = await self._resolver.resolve(filters.category, None, candidates)
            if not resolution.found:
                return QueryResult(module=EntityModule.GOALS, unresolved_category=resolution)
            wanted.category_id = resolution.category.id
            desc_parts.append(f"categoría: {resolution.category.name}")
        if filters.name:
            desc_parts.append(f"nombre: {filters.name}")

        records = await self._storage.find_goals(user_id, wanted, limit=self._limit(filters))
        logger.info("goals_listed", user_id=user_id, count=len(records))
        return QueryResult(
            module=EntityModule.GOALS,
            data_found=bool(records),
            result_count=len(records),
            results=await self._payloads(records),
            totals={
                "target_amount": float(sum((r.target_amount for r in records), Decimal("0"))),
                "current_amount": float(sum((r.current_amount for r in records), Decimal("0"))),
            },
            query_description=" | ".join(desc_parts),
            summary=f"Se encontraron {len(records)} metas",
        )
