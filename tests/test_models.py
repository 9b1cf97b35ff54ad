"""
Tests for Zenio models

Test strategy:
1. Record models enforce their constraints on construction
2. Protocol models are built from raw service payloads
3. Wire shapes (tool outputs, chat responses) keep their field names
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from zenio.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from zenio.models.conversation import (
    CategoryRef,
    ChatRequest,
    ChatResponse,
    ExecutedAction,
    Run,
    RunStatus,
    ThreadMessage,
    ToolCall,
    UsageInfo,
)
from zenio.models.records import (
    Budget,
    BudgetPeriod,
    Category,
    Goal,
    GoalPriority,
    MonthlyTargetMode,
    Transaction,
    TransactionType,
    format_money,
)
from zenio.models.tools import (
    BudgetRecordArgs,
    FailureKind,
    OnboardingArgs,
    RecordOperation,
    ToolResult,
    TransactionRecordArgs,
)


class TestRecordModels:
    """Tests for financial record models."""

    def test_transaction_type_accepts_spanish_aliases(self):
        """'gasto' and 'ingreso' map onto the canonical members."""
        assert TransactionType("gasto") == TransactionType.EXPENSE
        assert TransactionType("Ingreso") == TransactionType.INCOME
        assert TransactionType("expense") == TransactionType.EXPENSE

    def test_period_and_mode_aliases(self):
        assert BudgetPeriod("mensual") == BudgetPeriod.MONTHLY
        assert BudgetPeriod("SEMANAL") == BudgetPeriod.WEEKLY
        assert MonthlyTargetMode("porcentaje") == MonthlyTargetMode.PERCENTAGE
        assert GoalPriority("high") == GoalPriority.HIGH

    def test_unknown_alias_is_rejected(self):
        with pytest.raises(ValueError):
            TransactionType("transferencia")

    def test_category_label_includes_icon(self):
        category = Category(name="  Transporte ", type=TransactionType.EXPENSE, icon="🚗")
        assert category.name == "Transporte"
        assert category.label == "🚗 Transporte"

    def test_transaction_rejects_non_positive_amount(self):
        """Amounts must be strictly positive."""
        with pytest.raises(ValidationError):
            Transaction(
                user_id="u1",
                amount=Decimal("0"),
                type=TransactionType.EXPENSE,
                category_id="c1",
                date=date(2025, 7, 19),
            )

    def test_budget_end_before_start(self):
        with pytest.raises(ValidationError, match="Budget end date cannot be before its start date"):
            Budget(
                user_id="u1",
                name="Comida",
                category_id="c1",
                amount=Decimal("5000"),
                period=BudgetPeriod.MONTHLY,
                start_date=date(2025, 7, 31),
                end_date=date(2025, 7, 1),
            )

    def test_goal_percentage_over_100(self):
        """A percentage monthly target is capped at 100."""
        with pytest.raises(ValidationError, match="cannot exceed 100"):
            Goal(
                user_id="u1",
                name="Viaje",
                category_id="c1",
                target_amount=Decimal("50000"),
                monthly_target_type=MonthlyTargetMode.PERCENTAGE,
                monthly_value=Decimal("150"),
            )

    def test_goal_defaults(self):
        goal = Goal(user_id="u1", name="Viaje", category_id="c1", target_amount=Decimal("50000"))
        assert goal.current_amount == Decimal("0")
        assert goal.priority == GoalPriority.MEDIUM
        assert goal.is_active is True
        assert goal.is_completed is False

    def test_format_money(self):
        assert format_money(Decimal("1500")) == "RD$1,500"
        assert format_money(Decimal("1500.5")) == "RD$1,500.50"
        assert format_money(Decimal("250.00")) == "RD$250"


class TestConversationModels:
    """Tests for the reasoning-service protocol and chat call models."""

    def test_run_from_api_with_tool_calls(self):
        payload = {
            "id": "run_9",
            "thread_id": "thread_x",
            "status": "requires_action",
            "required_action": {
                "type": "submit_tool_outputs",
                "submit_tool_outputs": {
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "list_categories", "arguments": '{"module": "metas"}'},
                        }
                    ]
                },
            },
        }
        run = Run.from_api(payload)
        assert run.status == RunStatus.REQUIRES_ACTION
        assert run.tool_calls[0].function_name == "list_categories"
        assert run.tool_calls[0].parsed_arguments() == {"module": "metas"}

    def test_rate_limited_run(self):
        run = Run.from_api({
            "id": "run_1",
            "thread_id": "t",
            "status": "failed",
            "last_error": {"code": "rate_limit_exceeded", "message": "Rate limit reached"},
        })
        assert run.is_rate_limited is True
        assert run.status.is_active is False

    def test_run_status_flags(self):
        assert RunStatus.QUEUED.is_pending
        assert RunStatus.REQUIRES_ACTION.is_active
        assert not RunStatus.REQUIRES_ACTION.is_pending
        assert not RunStatus.COMPLETED.is_active

    def test_tool_call_malformed_arguments(self):
        """Malformed JSON surfaces as ValueError with a Spanish message."""
        call = ToolCall(id="c", function_name="x", arguments="{not json")
        with pytest.raises(ValueError, match="Argumentos JSON inválidos"):
            call.parsed_arguments()

    def test_tool_call_arguments_must_be_object(self):
        call = ToolCall(id="c", function_name="x", arguments="[1, 2]")
        with pytest.raises(ValueError, match="objeto JSON"):
            call.parsed_arguments()

    def test_thread_message_joins_text_blocks(self):
        message = ThreadMessage.from_api({
            "id": "msg_1",
            "role": "assistant",
            "content": [
                {"type": "text", "text": {"value": "Hola"}},
                {"type": "image_file", "image_file": {"file_id": "f"}},
                {"type": "text", "text": {"value": "Ana"}},
            ],
        })
        assert message.text == "Hola\nAna"

    def test_chat_request_accepts_camel_case(self):
        request = ChatRequest.model_validate({
            "message": "Gasté 500 en comida",
            "threadId": "thread_abc",
            "isOnboarding": True,
        })
        assert request.thread_id == "thread_abc"
        assert request.is_onboarding is True

    def test_chat_request_mixed_categories(self):
        """Plain names and objects may be mixed; blanks are dropped."""
        request = ChatRequest(
            message="hola",
            categories=["Transporte", {"name": "Salario", "type": "ingreso"}, "  "],
        )
        refs = request.category_refs
        assert [r.name for r in refs] == ["Transporte", "Salario"]
        assert refs[1].type == TransactionType.INCOME

    def test_chat_request_rejects_empty_message(self):
        with pytest.raises(ValidationError):
            ChatRequest(message="")

    def test_chat_response_wire_names(self):
        response = ChatResponse(
            message="¡Listo!",
            thread_id="thread_abc",
            action="transaction_created",
            executed_actions=[ExecutedAction(action="transaction_created", data={"success": True})],
            usage=UsageInfo(used=3, limit=10, remaining=7),
        )
        wire = response.to_wire()
        assert wire["threadId"] == "thread_abc"
        assert wire["executedActions"][0]["action"] == "transaction_created"
        assert wire["usage"] == {"used": 3, "limit": 10, "remaining": 7}
        assert "warning" not in wire

    def test_category_ref_label(self):
        assert CategoryRef(name="Salario", icon="💼").label == "💼 Salario"
        assert CategoryRef(name="Salario").label == "Salario"


class TestToolModels:
    """Tests for tool argument schemas and results."""

    def test_operation_alias_and_criteria_alias(self):
        args = TransactionRecordArgs.model_validate({
            "operation": "UPDATE",
            "criterios_identificacion": {"amount": 500, "date": "2025-07-19"},
            "transaction_data": {"amount": 600},
        })
        assert args.operation == RecordOperation.UPDATE
        assert args.criteria == {"amount": 500, "date": "2025-07-19"}

    def test_invalid_type_message(self):
        with pytest.raises(ValidationError, match='Type debe ser "gasto" o "ingreso"'):
            TransactionRecordArgs.model_validate({
                "operation": "insert",
                "transaction_data": {"type": "transferencia"},
            })

    def test_numeric_date_is_stringified(self):
        args = TransactionRecordArgs.model_validate({
            "operation": "insert",
            "transaction_data": {"date": 20250719},
        })
        assert args.transaction_data.date == "20250719"

    def test_list_filters_from_transaction_data(self):
        args = TransactionRecordArgs.model_validate({
            "operation": "list",
            "transaction_data": {"type": "gasto", "date": "2025-07-19"},
        })
        filters = args.list_filters()
        assert filters.type == TransactionType.EXPENSE
        assert filters.date_from == "2025-07-19"
        assert filters.date_to == "2025-07-19"

    def test_budget_identification_from_flat_fields(self):
        args = BudgetRecordArgs.model_validate({
            "operation": "update",
            "category": "Transporte",
            "previous_amount": 3000,
            "amount": 4000,
        })
        assert args.identification() == {"category": "Transporte", "amount": Decimal("3000")}

    def test_onboarding_lists_from_comma_string(self):
        args = OnboardingArgs.model_validate({"meta_financiera": "Ahorrar, Invertir"})
        assert args.meta_financiera == ["Ahorrar", "Invertir"]
        assert args.desafio_financiero == []

    def test_tool_result_output_drops_empty_fields(self):
        result = ToolResult.ok("transaction_created", "Registrado", transaction={"amount": "500"})
        output = json.loads(result.to_output())
        assert output == {
            "success": True,
            "action": "transaction_created",
            "message": "Registrado",
            "data": {"transaction": {"amount": "500"}},
        }
        assert result.is_recordable

    def test_failed_result_without_action_is_not_recordable(self):
        result = ToolResult.fail(FailureKind.VALIDATION, "Amount es requerido")
        assert result.success is False
        assert result.is_recordable is False
        assert json.loads(result.to_output())["failure"] == "validation"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(event_type=AuditEventType.THREAD_CREATED, description="Thread created")
        assert event.severity == AuditSeverity.INFO
        assert event.details == {}

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            description="Transaction created",
            details={"amount": "500"},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "record_created"
        assert log_dict["details"]["amount"] == "500"
        assert log_dict["correlation_id"] is None

    def test_audit_event_to_sheets_row(self):
        """Eleven columns, details serialized as JSON."""
        event = AuditEvent(
            event_type=AuditEventType.TOOL_CALL_FAILED,
            description="Tool failed",
            details={"function": "manage_budget_record"},
            error_message="boom",
        )
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "tool_call_failed"
        assert json.loads(row[9]) == {"function": "manage_budget_record"}
        assert row[10] == "boom"

    def test_builder_run_cancelled_severity(self):
        correlation_id = uuid4()
        ok = AuditEventBuilder.run_cancelled("u1", "thread_a", "run_1", True, correlation_id)
        failed = AuditEventBuilder.run_cancelled("u1", "thread_a", "run_1", False, correlation_id)
        assert ok.severity == AuditSeverity.INFO
        assert failed.severity == AuditSeverity.WARNING
        assert ok.correlation_id == correlation_id

    def test_builder_record_changed_maps_change(self):
        event = AuditEventBuilder.record_changed("u1", "budget", "b1", "deleted", {"amount": "10"}, None)
        assert event.event_type == AuditEventType.RECORD_DELETED
        assert event.description == "Budget deleted"

    def test_builder_usage_unlimited(self):
        event = AuditEventBuilder.usage_incremented("u1", 4, -1, None)
        assert "∞" in event.description

    def test_builder_resolution_failed(self):
        ambiguous = AuditEventBuilder.resolution_failed("u1", "manage_transaction_record", True, None, None)
        missing = AuditEventBuilder.resolution_failed("u1", "manage_transaction_record", False, "Viajes", None)
        assert ambiguous.event_type == AuditEventType.RESOLUTION_AMBIGUOUS
        assert missing.event_type == AuditEventType.CATEGORY_NOT_FOUND
        assert missing.details["requested"] == "Viajes"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
