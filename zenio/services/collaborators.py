"""
External Collaborators

Services the engine calls into but does not own:

- Gamification: told about events such as a new transaction. Strictly
  best-effort; a failing dispatcher must never fail the mutation that
  triggered it.
- Ant-expense analysis: small, frequent discretionary charges found in
  already stored transactions. The local analyzer below works on the
  record store; a hosted analysis service can replace it through the
  same interface.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog

from zenio.models.records import TransactionType, format_money
from zenio.models.tools import AntExpenseAnalysisArgs
from zenio.services.storage.interface import RecordStorageInterface, TransactionFilter
from zenio.temporal import TemporalNormalizer


logger = structlog.get_logger(__name__)


# =============================================================================
# GAMIFICATION
# =============================================================================

class GamificationDispatcher(ABC):
    """Receives engine events for streaks, badges and points."""

    @abstractmethod
    async def dispatch(self, user_id: str, event_type: str, data: dict[str, Any]) -> None:
        pass


class LoggingGamificationDispatcher(GamificationDispatcher):
    """Default dispatcher when no gamification service is wired: log only."""

    async def dispatch(self, user_id: str, event_type: str, data: dict[str, Any]) -> None:
        logger.info("gamification_event", user_id=user_id, event_type=event_type, data=data)


async def dispatch_best_effort(
    dispatcher: Optional[GamificationDispatcher],
    user_id: str,
    event_type: str,
    data: dict[str, Any],
) -> None:
    """Send a gamification event; failures are logged and dropped."""
    if dispatcher is None:
        return
    try:
        await dispatcher.dispatch(user_id, event_type, data)
    except Exception as e:
        logger.warning(
            "gamification_dispatch_failed",
            user_id=user_id,
            event_type=event_type,
            error=str(e),
        )


# =============================================================================
# ANT EXPENSE ANALYSIS
# =============================================================================

class AntExpenseAnalyzer(ABC):

    @abstractmethod
    async def analyze(self, user_id: str, config: AntExpenseAnalysisArgs) -> dict[str, Any]:
        """Analysis payload handed back to the assistant as the tool output data."""
        pass


def _months_back(day: date, months: int) -> date:
    """First day of the month `months` calendar months before `day`'s month."""
    index = day.year * 12 + (day.month - 1) - months
    return date(index // 12, index % 12 + 1, 1)


class LocalAntExpenseAnalyzer(AntExpenseAnalyzer):
    """
    Finds categories where the user makes many small expenses.

    An expense is "ant" when its amount is at or below the threshold.
    A category is flagged when it has at least `min_frequency` ant
    expenses in the analyzed window (the current month plus the
    `months_to_analyze - 1` before it).
    """

    def __init__(self, storage: RecordStorageInterface, normalizer: TemporalNormalizer):
        self._storage = storage
        self._normalizer = normalizer

    async def analyze(self, user_id: str, config: AntExpenseAnalysisArgs) -> dict[str, Any]:
        today = self._normalizer.today()
        period_start = _months_back(today, config.months_to_analyze - 1)
        expenses = await self._storage.find_transactions(
            user_id,
            TransactionFilter(type=TransactionType.EXPENSE, date_from=period_start, date_to=today),
        )

        ant = [tx for tx in expenses if tx.amount <= config.ant_threshold]
        by_category: dict[str, list] = defaultdict(list)
        for tx in ant:
            by_category[tx.category_id].append(tx)

        flagged = {cid: txs for cid, txs in by_category.items() if len(txs) >= config.min_frequency}
        ant_total = sum((tx.amount for txs in flagged.values() for tx in txs), Decimal("0"))
        expense_total = sum((tx.amount for tx in expenses), Decimal("0"))

        stats = []
        for category_id, txs in flagged.items():
            category = await self._storage.get_category(category_id)
            total = sum((tx.amount for tx in txs), Decimal("0"))
            stats.append({
                "category": category.name if category else category_id,
                "icon": category.icon if category else None,
                "total": float(total),
                "count": len(txs),
                "average": float(total / len(txs)),
                "frequency_per_month": round(len(txs) / config.months_to_analyze, 1),
                "percentage_of_ant_total": round(float(total / ant_total * 100), 1) if ant_total else 0.0,
            })
        stats.sort(key=lambda s: s["total"], reverse=True)

        monthly: dict[str, float] = defaultdict(float)
        for txs in flagged.values():
            for tx in txs:
                monthly[tx.date.strftime("%Y-%m")] += float(tx.amount)

        logger.info(
            "ant_expenses_analyzed",
            user_id=user_id,
            expenses=len(expenses),
            flagged_categories=len(stats),
        )
        return {
            "config_used": config.model_dump(mode="json"),
            "period_start": period_start.isoformat(),
            "period_end": today.isoformat(),
            "total_ant_expenses": float(ant_total),
            "ant_transactions_count": sum(len(txs) for txs in flagged.values()),
            "ant_percentage_of_expenses": round(float(ant_total / expense_total * 100), 1) if expense_total else 0.0,
            "categories": stats,
            "monthly": dict(sorted(monthly.items())),
            "has_enough_data": len(expenses) >= config.min_frequency,
        }


def ant_expense_message(analysis: dict[str, Any]) -> str:
    categories = analysis.get("categories") or []
    if not categories:
        return "🐜 No encontré gastos hormiga en el período analizado. ¡Buen control de tus gastos pequeños!"
    top = categories[0]
    return (
        f"🐜 Encontré gastos hormiga en {len(categories)} categorías por un total de "
        f"{format_money(Decimal(str(analysis['total_ant_expenses'])))}. "
        f"La principal es {top['category']} con {top['count']} gastos."
    )
