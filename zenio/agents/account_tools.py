"""
Account Tools

The tool handlers that do not mutate financial records: financial
onboarding capture, category listing and the ant-expense analysis
hand-off.
"""

from typing import Optional

import structlog

from zenio.audit import AuditLogger
from zenio.models.conversation import CategoryRef, TurnContext
from zenio.models.records import EntityModule, OnboardingProfile, TransactionType
from zenio.models.tools import (
    AntExpenseAnalysisArgs,
    ListCategoriesArgs,
    OnboardingArgs,
    ToolResult,
)
from zenio.agents import messages
from zenio.services.collaborators import AntExpenseAnalyzer, ant_expense_message
from zenio.services.storage.interface import AccountStorageInterface, RecordStorageInterface


logger = structlog.get_logger(__name__)

OTHER_CHALLENGE_MARKER = "otro"


class AccountTools:
    """Handlers for onboarding, category listing and ant-expense analysis."""

    def __init__(
        self,
        records: RecordStorageInterface,
        accounts: AccountStorageInterface,
        analyzer: AntExpenseAnalyzer,
        audit: Optional[AuditLogger] = None,
    ):
        self._records = records
        self._accounts = accounts
        self._analyzer = analyzer
        self._audit = audit or AuditLogger()

    async def capture_onboarding(self, ctx: TurnContext, args: OnboardingArgs) -> ToolResult:
        """
        Store the onboarding answers and mark the user as onboarded.

        A challenge mentioning "otro" is the user's own wording, so it is
        also kept verbatim as the free-text challenge.
        """
        other = next(
            (c for c in args.desafio_financiero if OTHER_CHALLENGE_MARKER in c.lower()),
            None,
        )
        profile = OnboardingProfile(
            user_id=ctx.user_id,
            main_goals=args.meta_financiera,
            main_challenges=args.desafio_financiero,
            main_challenge_other=other,
            saving_habit=args.habito_ahorro,
            emergency_fund=args.fondo_emergencia,
            financial_feeling=args.sentir_financiero,
            income_range=args.rango_ingresos,
        )
        await self._accounts.upsert_onboarding(profile)
        await self._accounts.mark_onboarding_completed(ctx.user_id)
        await self._audit.log_record_changed(
            ctx.user_id, "onboarding", ctx.user_id, "updated",
            {"goals": len(profile.main_goals), "challenges": len(profile.main_challenges)},
            ctx.correlation_id,
        )
        logger.info("onboarding_completed", user_id=ctx.user_id)
        return ToolResult(
            success=True,
            message=messages.onboarding_completed(ctx.user_name),
            data={"onboarding_completed": True},
        )

    async def list_categories(self, ctx: TurnContext, args: ListCategoriesArgs) -> ToolResult:
        """
        Categories available for a module. Budgets only take expense
        categories; transactions and goals take both.

        The caller's list wins when it sent one; otherwise the catalogue is read.
        """
        refs: list[CategoryRef] = list(ctx.categories)
        if not refs:
            refs = [
                CategoryRef(id=c.id, name=c.name, type=c.type, icon=c.icon)
                for c in await self._records.list_categories()
            ]

        if args.module == EntityModule.BUDGETS:
            refs = [r for r in refs if r.type in (None, TransactionType.EXPENSE)]

        labels = [r.label for r in refs]
        return ToolResult(
            success=True,
            message=f"Categorías disponibles para {args.module.value}: {len(labels)}",
            data={"categories": labels, "count": len(labels), "module": args.module.value},
        )

    async def analyze_ant_expenses(self, ctx: TurnContext, args: AntExpenseAnalysisArgs) -> ToolResult:
        analysis = await self._analyzer.analyze(ctx.user_id, args)
        return ToolResult.ok(
            "ant_expense_analysis",
            ant_expense_message(analysis),
            analysis=analysis,
        )
