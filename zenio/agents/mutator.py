"""
Record Mutator

DESIGN DECISION: Every operation validates its whole payload before the
store is touched, and every outcome is a ToolResult.

- Validation problems raise RecordValidationError before any write.
  The dispatcher turns that into a failed tool output for this call only.
- Category mismatches, zero matches and multiple matches are not errors.
  They come back as failed ToolResults with a conversational message the
  assistant can relay ("¿Podrías elegir una de estas categorías?").
- Update and delete only ever act on the single record the criteria
  matcher found. With two candidates nothing is touched.

Side effects after a successful write (audit event, gamification event)
are best-effort and never turn a saved record into a failure.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog

from zenio.agents import messages
from zenio.audit import AuditLogger
from zenio.categories import CategoryResolution, CategoryResolver, category_not_found_message
from zenio.models.conversation import TurnContext
from zenio.models.records import (
    Budget,
    BudgetPeriod,
    EntityModule,
    Goal,
    GoalPriority,
    Transaction,
    TransactionType,
)
from zenio.models.tools import (
    BudgetRecordArgs,
    Criteria,
    FailureKind,
    GoalData,
    GoalRecordArgs,
    ListFilters,
    RecordOperation,
    ToolResult,
    TransactionData,
    TransactionRecordArgs,
)
from zenio.queries import CriteriaMatcher, MatchResult, MatchStatus, QueryExecutor, QueryResult, record_payload
from zenio.services.collaborators import GamificationDispatcher, dispatch_best_effort
from zenio.services.storage.interface import RecordStorageInterface
from zenio.temporal import TemporalNormalizer
from zenio.validation import RecordValidator, ValidationResult, parse_due_date


logger = structlog.get_logger(__name__)

DEFAULT_ALERT_PERCENTAGE = 80


def period_bounds(period: BudgetPeriod, today: date) -> tuple[date, date]:
    """
    Calendar period containing `today`.

    weekly: Monday to Sunday. monthly: first to last day. yearly: Jan 1 to Dec 31.
    """
    if period == BudgetPeriod.WEEKLY:
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == BudgetPeriod.MONTHLY:
        start = today.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)
    return date(today.year, 1, 1), date(today.year, 12, 31)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RecordMutator:
    """
    Insert, update, delete and list for transactions, budgets and goals.

    Each public `manage_*` method is one tool; the operation inside the
    arguments picks the branch from a fixed table.
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        resolver: CategoryResolver,
        matcher: CriteriaMatcher,
        executor: QueryExecutor,
        validator: RecordValidator,
        normalizer: TemporalNormalizer,
        audit: Optional[AuditLogger] = None,
        gamification: Optional[GamificationDispatcher] = None,
    ):
        self._storage = storage
        self._resolver = resolver
        self._matcher = matcher
        self._executor = executor
        self._validator = validator
        self._normalizer = normalizer
        self._audit = audit or AuditLogger()
        self._gamification = gamification

    # =========================================================================
    # SHARED
    # =========================================================================

    async def _category_name(self, ctx: TurnContext, category_id: str) -> str:
        category = await self._storage.get_category(category_id)
        if category is not None:
            return category.name
        for ref in ctx.categories:
            if ref.id == category_id:
                return ref.name
        return category_id

    async def _category_not_found(
        self,
        ctx: TurnContext,
        resolution: CategoryResolution,
        module: EntityModule,
        function_name: str,
    ) -> ToolResult:
        await self._audit.log_resolution_failed(
            ctx.user_id, function_name, False, resolution.requested, ctx.correlation_id
        )
        return ToolResult.fail(
            FailureKind.CATEGORY_NOT_FOUND,
            error=f'Categoría "{resolution.requested}" no encontrada',
            message=category_not_found_message(resolution.requested, resolution.suggestions, module),
            action="category_not_found",
            suggestions=resolution.suggestions,
        )

    @staticmethod
    def _insufficient_criteria(check: ValidationResult, ambiguous_message: str) -> Optional[ToolResult]:
        """None when the criteria are usable; raises on malformed criteria."""
        if check.is_valid:
            return None
        if check.is_insufficient:
            return ToolResult.fail(FailureKind.AMBIGUOUS, error=check.summary(), message=ambiguous_message)
        check.raise_for_errors()
        return None

    async def _match_failure(
        self,
        ctx: TurnContext,
        match: MatchResult,
        function_name: str,
        not_found_message: str,
        ambiguous_message: str,
    ) -> ToolResult:
        if match.status == MatchStatus.AMBIGUOUS:
            await self._audit.log_resolution_failed(
                ctx.user_id, function_name, True, None, ctx.correlation_id
            )
            return ToolResult(
                success=False,
                failure=FailureKind.AMBIGUOUS,
                error=ambiguous_message,
                message=ambiguous_message,
                data={"matches": match.count},
            )
        return ToolResult.fail(
            FailureKind.NOT_FOUND,
            error=not_found_message,
            message=not_found_message,
            suggestions=match.category.suggestions if match.category else None,
        )

    async def _record_changed(
        self,
        ctx: TurnContext,
        entity_type: str,
        entity_id: str,
        change: str,
        summary: dict[str, Any],
    ) -> None:
        await self._audit.log_record_changed(
            ctx.user_id, entity_type, entity_id, change, summary, ctx.correlation_id
        )

    async def _list_result(
        self,
        ctx: TurnContext,
        result: QueryResult,
        action: str,
        key: str,
        function_name: str,
    ) -> ToolResult:
        if result.unresolved_category is not None:
            return await self._category_not_found(ctx, result.unresolved_category, result.module, function_name)
        return ToolResult.ok(
            action,
            result.summary,
            **{key: result.results},
            count=result.result_count,
            totals=result.totals,
            description=result.query_description,
        )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def manage_transaction(self, ctx: TurnContext, args: TransactionRecordArgs) -> ToolResult:
        branches: dict[RecordOperation, Callable[[], Awaitable[ToolResult]]] = {
            RecordOperation.INSERT: lambda: self.insert_transaction(ctx, args.transaction_data),
            RecordOperation.UPDATE: lambda: self.update_transaction(ctx, args.transaction_data, args.criteria),
            RecordOperation.DELETE: lambda: self.delete_transaction(ctx, args.criteria),
            RecordOperation.LIST: lambda: self.list_transactions(ctx, args.list_filters()),
        }
        return await branches[args.operation]()

    async def insert_transaction(self, ctx: TurnContext, data: Optional[TransactionData]) -> ToolResult:
        self._validator.validate_transaction(data).raise_for_errors()

        resolution = await self._resolver.resolve(data.category, data.type, ctx.categories)
        if not resolution.found:
            return await self._category_not_found(
                ctx, resolution, EntityModule.TRANSACTIONS, "manage_transaction_record"
            )

        day = self._normalizer.resolve(data.date) if data.date else None
        defaulted = day is None
        day = day or self._normalizer.today()

        tx = Transaction(
            user_id=ctx.user_id,
            amount=data.amount,
            type=data.type,
            category_id=resolution.category.id,
            date=day,
            occurred_at=self._normalizer.project(day, ctx.timezone),
            description=data.description,
        )
        await self._storage.add_transaction(tx)
        logger.info("transaction_created", user_id=ctx.user_id, transaction_id=tx.id)

        category_name = resolution.category.name
        await self._record_changed(
            ctx, "transaction", tx.id, "created",
            {"amount": str(tx.amount), "type": tx.type.value, "category": category_name},
        )
        await dispatch_best_effort(
            self._gamification,
            ctx.user_id,
            "add_tx",
            {"transaction_id": tx.id, "amount": float(tx.amount), "type": tx.type.value, "category": category_name},
        )
        return ToolResult.ok(
            "transaction_created",
            messages.transaction_created(tx, category_name, defaulted),
            transaction=record_payload(tx, category_name),
        )

    async def update_transaction(
        self,
        ctx: TurnContext,
        data: Optional[TransactionData],
        criteria: Optional[Criteria],
    ) -> ToolResult:
        insufficient = self._insufficient_criteria(
            self._validator.validate_transaction_criteria(criteria), messages.TRANSACTION_AMBIGUOUS
        )
        if insufficient:
            return insufficient
        self._validator.validate_transaction(data, for_update=True).raise_for_errors()

        match = await self._matcher.match_transaction(ctx.user_id, criteria, ctx.categories)
        if not match.found:
            return await self._match_failure(
                ctx, match, "manage_transaction_record",
                messages.TRANSACTION_NOT_FOUND, messages.TRANSACTION_AMBIGUOUS,
            )
        current: Transaction = match.record

        updates: dict[str, Any] = {}
        if data.amount is not None:
            updates["amount"] = data.amount
        if data.type is not None:
            updates["type"] = data.type
        category_label = data.category
        if not category_label and data.type is not None and data.type != current.type:
            # The kept category must exist under the new type too
            category_label = await self._category_name(ctx, current.category_id)
        if category_label:
            resolution = await self._resolver.resolve(category_label, data.type or current.type, ctx.categories)
            if not resolution.found:
                return await self._category_not_found(
                    ctx, resolution, EntityModule.TRANSACTIONS, "manage_transaction_record"
                )
            updates["category_id"] = resolution.category.id
        if data.date:
            updates["date"] = self._normalizer.resolve(data.date)
            # The local-midnight instant is only computed at creation
            updates["occurred_at"] = None
        if data.description is not None:
            updates["description"] = data.description
        updates["updated_at"] = _now()

        updated = Transaction.model_validate({**current.model_dump(), **updates})
        await self._storage.update_transaction(updated)

        category_name = await self._category_name(ctx, updated.category_id)
        await self._record_changed(
            ctx, "transaction", updated.id, "updated",
            {"fields": sorted(k for k in updates if k != "updated_at")},
        )
        return ToolResult.ok(
            "transaction_updated",
            messages.TRANSACTION_UPDATED,
            transaction=record_payload(updated, category_name),
            previous=record_payload(current, await self._category_name(ctx, current.category_id)),
        )

    async def delete_transaction(self, ctx: TurnContext, criteria: Optional[Criteria]) -> ToolResult:
        insufficient = self._insufficient_criteria(
            self._validator.validate_transaction_criteria(criteria), messages.TRANSACTION_AMBIGUOUS
        )
        if insufficient:
            return insufficient

        match = await self._matcher.match_transaction(ctx.user_id, criteria, ctx.categories)
        if not match.found:
            return await self._match_failure(
                ctx, match, "manage_transaction_record",
                messages.TRANSACTION_NOT_FOUND, messages.TRANSACTION_AMBIGUOUS,
            )
        tx: Transaction = match.record

        await self._storage.delete_transaction(ctx.user_id, tx.id)
        category_name = await self._category_name(ctx, tx.category_id)
        await self._record_changed(
            ctx, "transaction", tx.id, "deleted",
            {"amount": str(tx.amount), "category": category_name},
        )
        return ToolResult.ok(
            "transaction_deleted",
            messages.TRANSACTION_DELETED,
            transaction=record_payload(tx, category_name),
        )

    async def list_transactions(self, ctx: TurnContext, filters: ListFilters) -> ToolResult:
        result = await self._executor.list_transactions(ctx.user_id, filters, ctx.categories)
        return await self._list_result(ctx, result, "transaction_list", "transactions", "manage_transaction_record")

    # =========================================================================
    # BUDGETS
    # =========================================================================

    async def manage_budget(self, ctx: TurnContext, args: BudgetRecordArgs) -> ToolResult:
        branches: dict[RecordOperation, Callable[[], Awaitable[ToolResult]]] = {
            RecordOperation.INSERT: lambda: self.insert_budget(ctx, args),
            RecordOperation.UPDATE: lambda: self.update_budget(ctx, args),
            RecordOperation.DELETE: lambda: self.delete_budget(ctx, args),
            RecordOperation.LIST: lambda: self.list_budgets(ctx, args.list_filters()),
        }
        return await branches[args.operation]()

    async def insert_budget(self, ctx: TurnContext, args: BudgetRecordArgs) -> ToolResult:
        self._validator.validate_budget(args).raise_for_errors()

        resolution = await self._resolver.resolve(args.category, TransactionType.EXPENSE, ctx.categories)
        if not resolution.found:
            return await self._category_not_found(ctx, resolution, EntityModule.BUDGETS, "manage_budget_record")

        start, end = period_bounds(args.recurrence, self._normalizer.today())
        category_name = resolution.category.name
        budget = Budget(
            user_id=ctx.user_id,
            name=args.name or category_name,
            category_id=resolution.category.id,
            amount=args.amount,
            period=args.recurrence,
            start_date=start,
            end_date=end,
            alert_percentage=args.alert_percentage or DEFAULT_ALERT_PERCENTAGE,
        )
        await self._storage.add_budget(budget)
        logger.info("budget_created", user_id=ctx.user_id, budget_id=budget.id)

        await self._record_changed(
            ctx, "budget", budget.id, "created",
            {"amount": str(budget.amount), "period": budget.period.value, "category": category_name},
        )
        await dispatch_best_effort(
            self._gamification,
            ctx.user_id,
            "create_budget",
            {"budget_id": budget.id, "amount": float(budget.amount), "category": category_name},
        )
        return ToolResult.ok(
            "budget_created",
            messages.budget_created(budget, category_name),
            budget=record_payload(budget, category_name),
        )

    async def _find_budget(self, ctx: TurnContext, args: BudgetRecordArgs) -> tuple[Optional[Budget], Optional[ToolResult]]:
        criteria = args.identification()
        insufficient = self._insufficient_criteria(
            self._validator.validate_budget_criteria(criteria), messages.BUDGET_AMBIGUOUS
        )
        if insufficient:
            return None, insufficient

        match = await self._matcher.match_budget(ctx.user_id, criteria, ctx.categories)
        if not match.found:
            amount = criteria.get("amount")
            not_found = messages.budget_not_found(
                criteria.get("category"),
                str(amount) if amount is not None else None,
            )
            return None, await self._match_failure(
                ctx, match, "manage_budget_record", not_found, messages.BUDGET_AMBIGUOUS
            )
        return match.record, None

    async def update_budget(self, ctx: TurnContext, args: BudgetRecordArgs) -> ToolResult:
        self._validator.validate_budget(args, for_update=True).raise_for_errors()
        current, failure = await self._find_budget(ctx, args)
        if failure:
            return failure

        updates: dict[str, Any] = {"updated_at": _now()}
        if args.amount is not None:
            updates["amount"] = args.amount
        if args.recurrence is not None and args.recurrence != current.period:
            start, end = period_bounds(args.recurrence, self._normalizer.today())
            updates.update(period=args.recurrence, start_date=start, end_date=end)
        if args.name:
            updates["name"] = args.name
        if args.alert_percentage is not None:
            updates["alert_percentage"] = args.alert_percentage

        updated = Budget.model_validate({**current.model_dump(), **updates})
        await self._storage.update_budget(updated)

        category_name = await self._category_name(ctx, updated.category_id)
        await self._record_changed(
            ctx, "budget", updated.id, "updated",
            {"previous_amount": str(current.amount), "amount": str(updated.amount)},
        )
        return ToolResult.ok(
            "budget_updated",
            messages.budget_updated(category_name, current, updated),
            budget=record_payload(updated, category_name),
        )

    async def delete_budget(self, ctx: TurnContext, args: BudgetRecordArgs) -> ToolResult:
        budget, failure = await self._find_budget(ctx, args)
        if failure:
            return failure

        await self._storage.delete_budget(ctx.user_id, budget.id)
        category_name = await self._category_name(ctx, budget.category_id)
        await self._record_changed(
            ctx, "budget", budget.id, "deleted",
            {"amount": str(budget.amount), "category": category_name},
        )
        return ToolResult.ok(
            "budget_deleted",
            messages.budget_deleted(category_name),
            budget=record_payload(budget, category_name),
        )

    async def list_budgets(self, ctx: TurnContext, filters: ListFilters) -> ToolResult:
        result = await self._executor.list_budgets(ctx.user_id, filters, ctx.categories)
        return await self._list_result(ctx, result, "budget_list", "budgets", "manage_budget_record")

    # =========================================================================
    # GOALS
    # =========================================================================

    async def manage_goal(self, ctx: TurnContext, args: GoalRecordArgs) -> ToolResult:
        branches: dict[RecordOperation, Callable[[], Awaitable[ToolResult]]] = {
            RecordOperation.INSERT: lambda: self.insert_goal(ctx, args.goal_data),
            RecordOperation.UPDATE: lambda: self.update_goal(ctx, args.goal_data, args.criteria),
            RecordOperation.DELETE: lambda: self.delete_goal(ctx, args.criteria),
            RecordOperation.LIST: lambda: self.list_goals(ctx, args.list_filters()),
        }
        return await branches[args.operation]()

    async def insert_goal(self, ctx: TurnContext, data: Optional[GoalData]) -> ToolResult:
        self._validator.validate_goal(data).raise_for_errors()

        # Goals may use income or expense categories
        resolution = await self._resolver.resolve(data.category, None, ctx.categories)
        if not resolution.found:
            return await self._category_not_found(ctx, resolution, EntityModule.GOALS, "manage_goal_record")

        category_name = resolution.category.name
        goal = Goal(
            user_id=ctx.user_id,
            name=data.name,
            category_id=resolution.category.id,
            target_amount=data.target_amount,
            monthly_target_type=data.monthly_type,
            monthly_value=data.monthly_value if data.monthly_type else None,
            due_date=parse_due_date(self._normalizer, data.due_date),
            priority=data.priority or GoalPriority.MEDIUM,
            description=data.description,
        )
        await self._storage.add_goal(goal)
        logger.info("goal_created", user_id=ctx.user_id, goal_id=goal.id)

        await self._record_changed(
            ctx, "goal", goal.id, "created",
            {"name": goal.name, "target_amount": str(goal.target_amount), "category": category_name},
        )
        await dispatch_best_effort(
            self._gamification,
            ctx.user_id,
            "create_goal",
            {"goal_id": goal.id, "target_amount": float(goal.target_amount), "category": category_name},
        )
        return ToolResult.ok(
            "goal_created",
            messages.goal_created(goal, category_name),
            goal=record_payload(goal, category_name),
        )

    async def _find_goal(self, ctx: TurnContext, criteria: Optional[Criteria]) -> tuple[Optional[Goal], Optional[ToolResult]]:
        insufficient = self._insufficient_criteria(
            self._validator.validate_goal_criteria(criteria), messages.GOAL_AMBIGUOUS
        )
        if insufficient:
            return None, insufficient
        match = await self._matcher.match_goal(ctx.user_id, criteria, ctx.categories)
        if not match.found:
            return None, await self._match_failure(
                ctx, match, "manage_goal_record", messages.GOAL_NOT_FOUND, messages.GOAL_AMBIGUOUS
            )
        return match.record, None

    async def update_goal(
        self,
        ctx: TurnContext,
        data: Optional[GoalData],
        criteria: Optional[Criteria],
    ) -> ToolResult:
        self._validator.validate_goal(data, for_update=True).raise_for_errors()
        current, failure = await self._find_goal(ctx, criteria)
        if failure:
            return failure

        updates: dict[str, Any] = {"updated_at": _now()}
        if data.name:
            updates["name"] = data.name
        if data.target_amount is not None:
            updates["target_amount"] = data.target_amount
        if data.category:
            resolution = await self._resolver.resolve(data.category, None, ctx.categories)
            if not resolution.found:
                return await self._category_not_found(ctx, resolution, EntityModule.GOALS, "manage_goal_record")
            updates["category_id"] = resolution.category.id
        if data.monthly_type is not None:
            updates["monthly_target_type"] = data.monthly_type
            updates["monthly_value"] = data.monthly_value
        elif data.monthly_value is not None:
            # A bare value keeps the goal's current mode
            self._validator.validate_monthly_target(
                current.monthly_target_type, data.monthly_value
            ).raise_for_errors()
            updates["monthly_value"] = data.monthly_value
        if data.due_date:
            updates["due_date"] = parse_due_date(self._normalizer, data.due_date)
        if data.priority is not None:
            updates["priority"] = data.priority
        if data.description is not None:
            updates["description"] = data.description

        updated = Goal.model_validate({**current.model_dump(), **updates})
        await self._storage.update_goal(updated)

        category_name = await self._category_name(ctx, updated.category_id)
        await self._record_changed(
            ctx, "goal", updated.id, "updated",
            {"fields": sorted(k for k in updates if k != "updated_at")},
        )
        return ToolResult.ok(
            "goal_updated",
            messages.goal_updated(updated, category_name),
            goal=record_payload(updated, category_name),
        )

    async def delete_goal(self, ctx: TurnContext, criteria: Optional[Criteria]) -> ToolResult:
        goal, failure = await self._find_goal(ctx, criteria)
        if failure:
            return failure

        await self._storage.delete_goal(ctx.user_id, goal.id)
        category_name = await self._category_name(ctx, goal.category_id)
        await self._record_changed(
            ctx, "goal", goal.id, "deleted",
            {"name": goal.name, "category": category_name},
        )
        return ToolResult.ok(
            "goal_deleted",
            messages.goal_deleted(goal, category_name),
            goal=record_payload(goal, category_name),
        )

    async def list_goals(self, ctx: TurnContext, filters: ListFilters) -> ToolResult:
        result = await self._executor.list_goals(ctx.user_id, filters, ctx.categories)
        return await self._list_result(ctx, result, "goal_list", "goals", "manage_goal_record")
