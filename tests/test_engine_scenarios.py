"""
End-to-end chat turns through ChatEngine.

The reasoning service is scripted; everything else is the real engine
on in-memory stores, so these tests cover the full path from a user
message to the ChatResponse, including failures the caller sees.
"""

import json
from datetime import date, datetime, timezone

import pytest

from conftest import REFERENCE_NOW, USER_ID, FakeReasoningService, make_run, make_tool_call
from zenio.agents import messages
from zenio.config import PollingSettings
from zenio.models.audit import AuditEventType
from zenio.models.conversation import CategoryRef, ChatRequest, RunStatus
from zenio.models.records import TransactionType, UsageCounter, UserProfile
from zenio.orchestrator import (
    GENERIC_ERROR_MESSAGE,
    RATE_LIMITED_MESSAGE,
    SERVICE_UNAVAILABLE_MESSAGE,
    THREAD_BUSY_MESSAGE,
    ChatEngine,
    ChatEngineError,
    build_run_instructions,
    map_assistant_error,
)
from zenio.services.assistant import (
    AssistantAuthError,
    AssistantError,
    AssistantRateLimitError,
    AssistantRequestError,
    AssistantTransportError,
    RunFailedError,
    RunTimeoutError,
    ThreadBusyError,
)
from zenio.services.storage import InMemoryAccountStorage, StorageError, TransactionFilter
from zenio.usage import UsageMeter


RATE_LIMITED = "Rate limit reached for requests"


@pytest.fixture
def meter(accounts, app_settings, audit):
    return UsageMeter(accounts, app_settings, audit=audit, clock=lambda: REFERENCE_NOW)


@pytest.fixture
def build_engine(records, accounts, audit, app_settings, polling_settings, normalizer, meter, sleeper):
    def build(service, polling=None):
        return ChatEngine(
            service,
            records,
            accounts,
            audit_logger=audit,
            settings=app_settings,
            polling=polling or polling_settings,
            normalizer=normalizer,
            usage=meter,
            sleep=sleeper,
        )
    return build


def request(message="Hola", **kwargs):
    kwargs.setdefault("timezone", "America/Santo_Domingo")
    return ChatRequest(message=message, **kwargs)


class TestChatTurns:

    @pytest.mark.asyncio
    async def test_expense_yesterday_is_recorded(self, build_engine, records):
        """A relative date in the message reaches the tool as an ISO date."""
        service = FakeReasoningService([
            make_run(RunStatus.QUEUED),
            make_run(RunStatus.REQUIRES_ACTION, tool_calls=[
                make_tool_call("call_1", "manage_transaction_record", {
                    "operation": "insert",
                    "transaction_data": {
                        "amount": 500,
                        "type": "gasto",
                        "category": "Comida y restaurantes",
                        "date": "2025-07-19",
                        "description": "Almuerzo",
                    },
                }),
            ]),
            make_run(RunStatus.COMPLETED),
        ], reply="¡Listo, Ana! Registré tu gasto de RD$500.")

        response = await build_engine(service).chat(USER_ID, request("Gasté 500 en comida ayer"))

        assert service.posted[-1][2] == "Gasté 500 en comida 2025-07-19"
        [tx] = await records.find_transactions(USER_ID, TransactionFilter())
        assert tx.date == date(2025, 7, 19)
        assert tx.occurred_at == datetime(2025, 7, 19, 4, 0, tzinfo=timezone.utc)

        assert response.message == "¡Listo, Ana! Registré tu gasto de RD$500."
        assert response.thread_id == "thread_fake1"
        assert response.action == "transaction_created"
        assert [a.action for a in response.executed_actions] == ["transaction_created"]
        assert (response.usage.used, response.usage.limit, response.usage.remaining) == (1, 10, 9)
        assert response.warning is None

    @pytest.mark.asyncio
    async def test_new_thread_is_seeded_and_run_gets_context(self, build_engine):
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])
        response = await build_engine(service).chat(USER_ID, request("Hola"))

        assert [content for _, _, content in service.posted] == [messages.greeting_seed("Ana"), "Hola"]
        [(thread_id, instructions)] = service.runs_created
        assert thread_id == response.thread_id
        assert "Fecha de hoy: 2025-07-20" in instructions
        assert "America/Santo_Domingo" in instructions
        assert "🚗 Transporte" in instructions
        assert response.action is None
        assert response.to_wire()["threadId"] == "thread_fake1"

    @pytest.mark.asyncio
    async def test_onboarding_turn(self, build_engine):
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])
        await build_engine(service).chat(USER_ID, request("Empecemos", isOnboarding=True))
        assert service.posted[-1][2] == messages.onboarding_seed("Ana")

    @pytest.mark.asyncio
    async def test_onboarding_flag_ignored_once_completed(self, build_engine, accounts):
        await accounts.save_user(UserProfile(id=USER_ID, name="Ana", onboarding_completed=True))
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])
        await build_engine(service).chat(USER_ID, request("Empecemos", isOnboarding=True))
        assert service.posted[-1][2] == "Empecemos"

    @pytest.mark.asyncio
    async def test_first_onboarding_turn_creates_the_profile(self, build_engine, accounts):
        """A user the store has never seen finishes onboarding in one turn."""
        service = FakeReasoningService([
            make_run(RunStatus.REQUIRES_ACTION, tool_calls=[
                make_tool_call("call_1", "onboarding_financiero", {
                    "meta_financiera": ["Ahorrar para emergencias"],
                    "habito_ahorro": "A veces",
                }),
            ]),
            make_run(RunStatus.COMPLETED),
        ])

        await build_engine(service).chat("user-new", request("Empecemos", isOnboarding=True))

        assert service.posted[-1][2] == messages.onboarding_seed("Usuario")
        [[output]] = service.submitted
        assert json.loads(output.output)["success"] is True
        user = await accounts.get_user("user-new")
        assert user.onboarding_completed is True
        assert (await accounts.get_onboarding("user-new")).saving_habit == "A veces"

    @pytest.mark.asyncio
    async def test_expense_with_icon_label_is_recorded(self, build_engine, records):
        """The assistant may echo the '🚗 Transporte' label from its instructions."""
        service = FakeReasoningService([
            make_run(RunStatus.REQUIRES_ACTION, tool_calls=[
                make_tool_call("call_1", "manage_transaction_record", {
                    "operation": "insert",
                    "transaction_data": {"amount": 300, "type": "gasto", "category": "🚗 Transporte"},
                }),
            ]),
            make_run(RunStatus.COMPLETED),
        ])

        response = await build_engine(service).chat(USER_ID, request("Pagué 300 de Uber"))

        assert response.action == "transaction_created"
        [tx] = await records.find_transactions(USER_ID, TransactionFilter())
        assert tx.category_id == (await records.get_category_by_name("Transporte")).id

    @pytest.mark.asyncio
    async def test_existing_thread_is_reused(self, build_engine):
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])
        response = await build_engine(service).chat(USER_ID, request("Hola", threadId="thread_abc"))
        assert response.thread_id == "thread_abc"
        assert service.threads == []
        assert service.posted == [("thread_abc", "user", "Hola")]

    @pytest.mark.asyncio
    async def test_unknown_user_gets_default_name(self, build_engine):
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])
        await build_engine(service).chat("user-9", request("Hola"))
        assert service.posted[0][2] == messages.greeting_seed("Usuario")

    @pytest.mark.asyncio
    async def test_no_reply(self, build_engine):
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)], reply=None)
        response = await build_engine(service).chat(USER_ID, request("Hola"))
        assert response.message == messages.NO_REPLY

    @pytest.mark.asyncio
    async def test_iteration_limit_still_answers(self, build_engine, audit_storage):
        service = FakeReasoningService([
            make_run(RunStatus.REQUIRES_ACTION, tool_calls=[make_tool_call("c1", "list_categories", {})]),
        ])
        service.active_runs = [make_run(RunStatus.REQUIRES_ACTION, run_id="run_1")]
        polling = PollingSettings(max_tool_iterations=2)

        response = await build_engine(service, polling=polling).chat(USER_ID, request("Hola"))

        assert response.warning == messages.DISPATCH_LIMIT_WARNING
        assert response.message == messages.NO_REPLY
        assert len(service.submitted) == 2
        assert service.cancelled == ["run_1"]
        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.DISPATCH_LIMIT_REACHED in types

    @pytest.mark.asyncio
    async def test_turn_events_share_correlation_id(self, build_engine, audit_storage):
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])
        await build_engine(service).chat(USER_ID, request("Hola"))
        correlation_ids = {e.correlation_id for e in audit_storage.events}
        assert len(correlation_ids) == 1
        assert None not in correlation_ids


class TestChatFailures:

    @pytest.mark.asyncio
    async def test_quota_exceeded_before_any_service_call(self, build_engine, accounts):
        await accounts.save_usage(UsageCounter(user_id=USER_ID, used=10, reset_at=REFERENCE_NOW))
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])

        with pytest.raises(ChatEngineError) as exc_info:
            await build_engine(service).chat(USER_ID, request("Hola", threadId="thread_abc"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Has alcanzado el límite de 10 consultas de Zenio este mes"
        assert exc_info.value.thread_id == "thread_abc"
        assert service.posted == []
        assert service.runs_created == []

    @pytest.mark.asyncio
    async def test_unreachable_service(self, build_engine, accounts, audit_storage):
        service = FakeReasoningService()
        service.errors["create_run"] = AssistantTransportError("connection refused")

        with pytest.raises(ChatEngineError) as exc_info:
            await build_engine(service).chat(USER_ID, request("Hola"))

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == SERVICE_UNAVAILABLE_MESSAGE
        assert exc_info.value.thread_id == "thread_fake1"
        assert await accounts.get_usage(USER_ID) is None
        assert audit_storage.events[-1].event_type == AuditEventType.EXTERNAL_SERVICE_ERROR

    @pytest.mark.asyncio
    async def test_thread_busy(self, build_engine):
        service = FakeReasoningService()
        service.errors["post_message"] = ThreadBusyError("Can't add messages while a run is active")

        with pytest.raises(ChatEngineError) as exc_info:
            await build_engine(service).chat(USER_ID, request("Hola", threadId="thread_abc"))

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == THREAD_BUSY_MESSAGE

    @pytest.mark.asyncio
    async def test_run_rate_limited_past_retries(self, build_engine, accounts):
        service = FakeReasoningService([make_run(RunStatus.FAILED, error=RATE_LIMITED)])

        with pytest.raises(ChatEngineError) as exc_info:
            await build_engine(service).chat(USER_ID, request("Hola"))

        assert exc_info.value.status_code == 429
        assert exc_info.value.message == RATE_LIMITED_MESSAGE
        # The run was created, so the turn was counted
        assert (await accounts.get_usage(USER_ID)).used == 1

    @pytest.mark.asyncio
    async def test_failed_run(self, build_engine, audit_storage):
        service = FakeReasoningService([make_run(RunStatus.FAILED, error="server_error")])

        with pytest.raises(ChatEngineError) as exc_info:
            await build_engine(service).chat(USER_ID, request("Hola"))

        assert exc_info.value.status_code == 502
        assert exc_info.value.message == GENERIC_ERROR_MESSAGE
        assert audit_storage.events[-1].event_type == AuditEventType.RUN_FAILED

    @pytest.mark.asyncio
    async def test_store_failure_mid_turn(self, records, audit, audit_storage, app_settings, polling_settings, normalizer, sleeper):
        class FailingAccounts(InMemoryAccountStorage):
            async def save_usage(self, counter):
                raise StorageError("Failed to save usage: quota exceeded for sheet")

        accounts = FailingAccounts([UserProfile(id=USER_ID, name="Ana")])
        engine = ChatEngine(
            FakeReasoningService([make_run(RunStatus.COMPLETED)]),
            records,
            accounts,
            audit_logger=audit,
            settings=app_settings,
            polling=polling_settings,
            normalizer=normalizer,
            sleep=sleeper,
        )

        with pytest.raises(ChatEngineError) as exc_info:
            await engine.chat(USER_ID, request("Hola"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == GENERIC_ERROR_MESSAGE
        assert audit_storage.events[-1].event_type == AuditEventType.SYSTEM_ERROR


class TestErrorMapping:

    @pytest.mark.parametrize("error,status", [
        (AssistantTransportError("reset"), 503),
        (ThreadBusyError("busy"), 429),
        (AssistantRateLimitError("slow down"), 429),
        (AssistantAuthError("bad key"), 502),
        (AssistantRequestError("bad request", status_code=400), 502),
        (RunFailedError("server_error", status="failed", run_id="run_1"), 502),
        (RunTimeoutError("still running", run_id="run_1", attempts=15), 502),
        (AssistantError("unknown"), 500),
    ])
    def test_status_codes(self, error, status):
        mapped = map_assistant_error(error, "thread_abc")
        assert mapped.status_code == status
        assert mapped.thread_id == "thread_abc"


class TestRunInstructions:

    def test_categories_split_by_type(self):
        text = build_run_instructions(date(2025, 7, 20), "UTC", [
            CategoryRef(name="Transporte", type=TransactionType.EXPENSE, icon="🚗"),
            CategoryRef(name="Salario", type="ingreso"),
            CategoryRef(name="Varios"),
        ])
        lines = text.splitlines()
        assert lines[0].startswith("Fecha de hoy: 2025-07-20.")
        assert "Categorías de gastos disponibles: 🚗 Transporte, Varios." in lines
        assert "Categorías de ingresos disponibles: Salario, Varios." in lines

    def test_no_categories(self):
        text = build_run_instructions(date(2025, 7, 20), "UTC", [])
        assert len(text.splitlines()) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
