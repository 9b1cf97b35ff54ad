"""
Shared fixtures for the Zenio test-suite.

No network and no real sleeps: the reasoning service is a scripted fake,
storage is in memory and the clock is pinned to 2025-07-20 in UTC-4.
"""

import json
from datetime import datetime, timezone
from typing import Optional, Union

import pytest

from zenio.agents import RecordMutator
from zenio.audit import AuditLogger
from zenio.categories import CategoryResolver
from zenio.config import AppSettings, PollingSettings
from zenio.models.conversation import (
    Run,
    RunError,
    RunStatus,
    ThreadMessage,
    ToolCall,
    ToolOutput,
    TurnContext,
)
from zenio.models.records import UserProfile
from zenio.queries import CriteriaMatcher, QueryExecutor
from zenio.services.assistant import ReasoningServiceInterface
from zenio.services.storage import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    default_categories,
)
from zenio.temporal import TemporalNormalizer
from zenio.validation import RecordValidator


# 16:00 UTC is 12:00 in UTC-4, well inside 2025-07-20
REFERENCE_NOW = datetime(2025, 7, 20, 16, 0, tzinfo=timezone.utc)
USER_ID = "user-1"


def make_run(
    status: RunStatus,
    tool_calls: Optional[list[ToolCall]] = None,
    run_id: str = "run_1",
    thread_id: str = "thread_abc",
    error: Optional[str] = None,
) -> Run:
    return Run(
        id=run_id,
        thread_id=thread_id,
        status=status,
        tool_calls=tool_calls or [],
        last_error=RunError(message=error) if error else None,
    )


def make_tool_call(call_id: str, name: str, arguments: Union[dict, str]) -> ToolCall:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments, ensure_ascii=False)
    return ToolCall(id=call_id, function_name=name, arguments=raw)


def build_mutator(records, normalizer, app_settings, audit, gamification=None) -> RecordMutator:
    resolver = CategoryResolver(records)
    return RecordMutator(
        storage=records,
        resolver=resolver,
        matcher=CriteriaMatcher(records, resolver, normalizer),
        executor=QueryExecutor(records, resolver, normalizer, app_settings),
        validator=RecordValidator(normalizer, app_settings),
        normalizer=normalizer,
        audit=audit,
        gamification=gamification,
    )


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers every delay."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeReasoningService(ReasoningServiceInterface):
    """
    Scripted reasoning service.

    `run_script` is consumed one item per get_run call; an exception in
    the script is raised instead of returned. Once the script is down to
    its last item that item is repeated. When a completed run is handed
    out, `reply` is added to the thread as the assistant's message.
    """

    def __init__(self, run_script: Optional[list] = None, reply: Optional[str] = "¡Listo!"):
        self.run_script: list = list(run_script or [])
        self.reply = reply
        self.threads: list[str] = []
        self.posted: list[tuple[str, str, str]] = []
        self.runs_created: list[tuple[str, Optional[str]]] = []
        self.get_run_calls = 0
        self.submitted: list[list[ToolOutput]] = []
        self.active_runs: list[Run] = []
        self.cancelled: list[str] = []
        self.messages: dict[str, list[ThreadMessage]] = {}
        self.errors: dict[str, Exception] = {}

    def _maybe_fail(self, operation: str) -> None:
        error = self.errors.get(operation)
        if error is not None:
            raise error

    async def create_thread(self) -> str:
        self._maybe_fail("create_thread")
        thread_id = f"thread_fake{len(self.threads) + 1}"
        self.threads.append(thread_id)
        self.messages[thread_id] = []
        return thread_id

    async def post_message(self, thread_id: str, content: str, role: str = "user") -> None:
        self._maybe_fail("post_message")
        self.posted.append((thread_id, role, content))
        thread = self.messages.setdefault(thread_id, [])
        thread.insert(0, ThreadMessage(id=f"msg_{len(self.posted)}", role=role, text=content))

    async def create_run(self, thread_id: str, additional_instructions: Optional[str] = None) -> Run:
        self._maybe_fail("create_run")
        self.runs_created.append((thread_id, additional_instructions))
        return make_run(RunStatus.QUEUED, thread_id=thread_id)

    async def get_run(self, thread_id: str, run_id: str) -> Run:
        self.get_run_calls += 1
        if not self.run_script:
            raise AssertionError("get_run called with an empty script")
        item = self.run_script.pop(0) if len(self.run_script) > 1 else self.run_script[0]
        if isinstance(item, Exception):
            raise item
        if item.status == RunStatus.COMPLETED and self.reply:
            thread = self.messages.setdefault(thread_id, [])
            if not thread or thread[0].role != "assistant":
                thread.insert(0, ThreadMessage(id=f"reply_{run_id}", role="assistant", text=self.reply))
        return item

    async def list_runs(self, thread_id: str) -> list[Run]:
        self._maybe_fail("list_runs")
        return list(self.active_runs)

    async def cancel_run(self, thread_id: str, run_id: str) -> Run:
        self._maybe_fail("cancel_run")
        self.cancelled.append(run_id)
        return make_run(RunStatus.CANCELLING, run_id=run_id, thread_id=thread_id)

    async def submit_tool_outputs(self, thread_id: str, run_id: str, outputs: list[ToolOutput]) -> Run:
        self._maybe_fail("submit_tool_outputs")
        self.submitted.append(list(outputs))
        return make_run(RunStatus.QUEUED, run_id=run_id, thread_id=thread_id)

    async def list_messages(self, thread_id: str) -> list[ThreadMessage]:
        self._maybe_fail("list_messages")
        return list(self.messages.get(thread_id, []))


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(reference_utc_offset_hours=-4, free_plan_monthly_queries=10, default_list_limit=20)


@pytest.fixture
def polling_settings() -> PollingSettings:
    return PollingSettings(
        initial_delay=0.5,
        growth_factor=1.2,
        max_delay=3.0,
        max_attempts=15,
        rate_limit_delay=20.0,
        max_rate_limit_retries=2,
        max_tool_iterations=10,
    )


@pytest.fixture
def normalizer() -> TemporalNormalizer:
    return TemporalNormalizer(reference_offset_hours=-4, clock=lambda: REFERENCE_NOW)


@pytest.fixture
def records() -> InMemoryRecordStorage:
    return InMemoryRecordStorage(default_categories())


@pytest.fixture
def accounts() -> InMemoryAccountStorage:
    return InMemoryAccountStorage([UserProfile(id=USER_ID, name="Ana")])


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def ctx() -> TurnContext:
    return TurnContext(user_id=USER_ID, user_name="Ana", timezone="America/Santo_Domingo")


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
