"""
Tool-Call Dispatcher

DESIGN DECISION: A closed registry, one schema per tool.

Every ToolName maps to exactly one handler, and the registry is checked
for completeness when the dispatcher is built, so adding a tool without
a handler fails at start-up instead of mid-conversation. Arguments are
validated against the tool's pydantic schema before the handler runs.

Failure isolation: each tool call in a batch gets its own output. A
handler that raises produces `{"success": false, "error": ...}` for that
call only; its siblings still run and the whole batch is submitted.

Loop bound: after submitting outputs the run is polled again; if it asks
for more tools the cycle repeats, at most `max_tool_iterations` times.
Hitting the bound is a warning on the response, not a failure.
"""

from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from zenio.agents.account_tools import AccountTools
from zenio.agents.mutator import RecordMutator
from zenio.agents.poller import RunPoller
from zenio.audit import AuditLogger
from zenio.models.conversation import ExecutedAction, Run, RunStatus, ToolCall, ToolOutput, TurnContext
from zenio.models.tools import ARGS_SCHEMAS, FailureKind, ToolArgs, ToolName, ToolResult
from zenio.queries import QueryExecutionError
from zenio.services.assistant import ReasoningServiceInterface
from zenio.validation import RecordValidationError


logger = structlog.get_logger(__name__)

Handler = Callable[[TurnContext, Any], Awaitable[ToolResult]]


def describe_validation_error(error: ValidationError) -> str:
    """Readable one-line summary of a pydantic error for the assistant."""
    parts = []
    for item in error.errors():
        message = str(item.get("msg", "")).removeprefix("Value error, ")
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or str(error)


class DispatchOutcome(BaseModel):
    """Where the run stands after the tool loop."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    run: Run
    executed_actions: list[ExecutedAction] = Field(default_factory=list)
    iterations: int = 0
    limit_reached: bool = False


class ToolCallDispatcher:
    """
    Routes tool calls to handlers and drives a run until it stops asking.

    Args:
        service: Reasoning service used to submit outputs.
        poller: Waits for the run after each submission.
        mutator: Transaction, budget and goal handlers.
        account_tools: Onboarding, category listing and analysis handlers.
        max_iterations: Tool rounds allowed per turn. Defaults to the poller's policy.
    """

    def __init__(
        self,
        service: ReasoningServiceInterface,
        poller: RunPoller,
        mutator: RecordMutator,
        account_tools: AccountTools,
        audit: Optional[AuditLogger] = None,
        max_iterations: Optional[int] = None,
    ):
        self._service = service
        self._poller = poller
        self._audit = audit or AuditLogger()
        self._max_iterations = max_iterations or poller.policy.max_tool_iterations
        self._handlers: dict[ToolName, Handler] = {
            ToolName.ONBOARDING: account_tools.capture_onboarding,
            ToolName.MANAGE_TRANSACTION: mutator.manage_transaction,
            ToolName.MANAGE_BUDGET: mutator.manage_budget,
            ToolName.MANAGE_GOAL: mutator.manage_goal,
            ToolName.LIST_CATEGORIES: account_tools.list_categories,
            ToolName.ANALYZE_ANT_EXPENSES: account_tools.analyze_ant_expenses,
        }
        missing = set(ToolName) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler registered for: {sorted(m.value for m in missing)}")

    def _parse(self, name: ToolName, call: ToolCall) -> ToolArgs:
        """Raises ValueError (including pydantic ValidationError) on bad arguments."""
        return ARGS_SCHEMAS[name].model_validate(call.parsed_arguments())

    async def execute(self, ctx: TurnContext, call: ToolCall) -> ToolResult:
        """Run one tool call. Never raises."""
        try:
            name = ToolName(call.function_name)
        except ValueError:
            logger.warning("tool_call_unsupported", function=call.function_name, tool_call_id=call.id)
            return ToolResult.fail(FailureKind.UNSUPPORTED, f"Función no soportada: {call.function_name}")

        try:
            args = self._parse(name, call)
        except ValidationError as e:
            return ToolResult.fail(FailureKind.VALIDATION, describe_validation_error(e))
        except ValueError as e:
            return ToolResult.fail(FailureKind.VALIDATION, str(e))

        try:
            result = await self._handlers[name](ctx, args)
        except (RecordValidationError, QueryExecutionError) as e:
            result = ToolResult.fail(FailureKind.VALIDATION, str(e))
        except ValidationError as e:
            result = ToolResult.fail(FailureKind.VALIDATION, describe_validation_error(e))
        except Exception as e:
            logger.exception("tool_call_failed", function=name.value, tool_call_id=call.id)
            await self._audit.log_tool_call_failed(
                ctx.user_id, name.value, call.id, str(e), ctx.correlation_id
            )
            return ToolResult.fail(FailureKind.ERROR, str(e) or "Error desconocido")

        await self._audit.log_tool_call(
            ctx.user_id, name.value, call.id, result.success, result.action, ctx.correlation_id
        )
        return result

    async def dispatch_batch(
        self,
        ctx: TurnContext,
        run: Run,
    ) -> tuple[list[ToolOutput], list[ExecutedAction]]:
        """One output per tool call, in order; actions only for recordable results."""
        outputs: list[ToolOutput] = []
        actions: list[ExecutedAction] = []
        for call in run.tool_calls:
            result = await self.execute(ctx, call)
            outputs.append(ToolOutput(tool_call_id=call.id, output=result.to_output()))
            if result.is_recordable:
                actions.append(ExecutedAction(
                    action=result.action,
                    data=result.model_dump(mode="json", exclude_none=True),
                ))
        return outputs, actions

    async def drive(self, ctx: TurnContext, thread_id: str, run_id: str) -> DispatchOutcome:
        """
        Poll the run, answer its tool calls and repeat until it stops
        requiring action or the iteration bound is reached.
        """
        run = await self._poller.wait(thread_id, run_id)
        executed: list[ExecutedAction] = []
        iterations = 0

        while run.status == RunStatus.REQUIRES_ACTION:
            if iterations >= self._max_iterations:
                logger.warning("tool_iteration_limit", run_id=run.id, limit=self._max_iterations)
                await self._audit.log_dispatch_limit_reached(
                    ctx.user_id, run.id, self._max_iterations, ctx.correlation_id
                )
                return DispatchOutcome(
                    run=run,
                    executed_actions=executed,
                    iterations=iterations,
                    limit_reached=True,
                )

            outputs, actions = await self.dispatch_batch(ctx, run)
            executed.extend(actions)
            logger.info(
                "tool_outputs_submitted",
                run_id=run.id,
                iteration=iterations + 1,
                outputs=len(outputs),
            )
            await self._service.submit_tool_outputs(thread_id, run.id, outputs)
            iterations += 1
            run = await self._poller.wait(thread_id, run.id)

        await self._audit.log_run_completed(
            ctx.user_id, run.id, iterations, len(executed), ctx.correlation_id
        )
        return DispatchOutcome(run=run, executed_actions=executed, iterations=iterations)
