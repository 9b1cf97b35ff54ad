"""
Main Orchestrator for Zenio

This module ties together all the components and defines the end-to-end
flow of one chat turn:

    quota check -> session (thread + message) -> run -> usage increment
    -> poll / dispatch loop -> read reply -> ChatResponse

DESIGN DECISION: The orchestrator is the only place where failures turn
into caller-facing errors.
- Tool handlers never raise to here; their failures are tool outputs.
- Reasoning-service exceptions are mapped to ChatEngineError with an
  HTTP-class status code and a user-safe Spanish message.
- A run that hits the tool iteration bound still answers, with a warning.

Every step of a turn shares one correlation ID in the audit trail.
"""

from datetime import date
from typing import Optional

import structlog

from zenio.agents import (
    AccountTools,
    ConversationSessionManager,
    RecordMutator,
    RunPoller,
    ToolCallDispatcher,
)
from zenio.agents import messages
from zenio.agents.poller import Sleeper
from zenio.audit import AuditLogger, create_correlation_id
from zenio.categories import CategoryResolver
from zenio.config import AppSettings, PollingSettings, get_settings
from zenio.models.conversation import CategoryRef, ChatRequest, ChatResponse, TurnContext
from zenio.models.records import TransactionType, UserProfile
from zenio.queries import CriteriaMatcher, QueryExecutor
from zenio.services.assistant import (
    AssistantAuthError,
    AssistantClient,
    AssistantError,
    AssistantRateLimitError,
    AssistantRequestError,
    AssistantTransportError,
    ReasoningServiceInterface,
    RunFailedError,
    RunTimeoutError,
    ThreadBusyError,
)
from zenio.services.collaborators import (
    AntExpenseAnalyzer,
    GamificationDispatcher,
    LocalAntExpenseAnalyzer,
    LoggingGamificationDispatcher,
)
from zenio.services.storage import (
    AccountStorageInterface,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryAccountStorage,
    InMemoryRecordStorage,
    RecordStorageInterface,
    StorageError,
    default_categories,
)
from zenio.temporal import TemporalNormalizer
from zenio.usage import QuotaExceededError, UsageMeter
from zenio.validation import RecordValidator


logger = structlog.get_logger(__name__)

SERVICE_UNAVAILABLE_MESSAGE = (
    "No se pudo conectar con Zenio (OpenAI). Por favor, intenta de nuevo en unos segundos."
)
RATE_LIMITED_MESSAGE = (
    "Zenio está procesando muchos mensajes. Por favor, espera un momento antes de continuar."
)
THREAD_BUSY_MESSAGE = (
    "Zenio está terminando de procesar tu mensaje anterior. "
    "Por favor, espera un momento antes de continuar."
)
GENERIC_ERROR_MESSAGE = "Error al comunicarse con Zenio."


class ChatEngineError(Exception):
    """A turn that could not produce a reply. `status_code` is HTTP-class."""

    def __init__(self, status_code: int, message: str, thread_id: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.thread_id = thread_id
        super().__init__(message)


def map_assistant_error(error: AssistantError, thread_id: Optional[str] = None) -> ChatEngineError:
    """Translate the assistant exception taxonomy into caller-facing errors."""
    if isinstance(error, AssistantTransportError):
        return ChatEngineError(503, SERVICE_UNAVAILABLE_MESSAGE, thread_id)
    if isinstance(error, ThreadBusyError):
        return ChatEngineError(429, THREAD_BUSY_MESSAGE, thread_id)
    if isinstance(error, AssistantRateLimitError):
        return ChatEngineError(429, RATE_LIMITED_MESSAGE, thread_id)
    if isinstance(error, (AssistantAuthError, AssistantRequestError, RunFailedError, RunTimeoutError)):
        return ChatEngineError(502, GENERIC_ERROR_MESSAGE, thread_id)
    return ChatEngineError(500, GENERIC_ERROR_MESSAGE, thread_id)


def build_run_instructions(today: date, timezone: str, categories: list[CategoryRef]) -> str:
    """Per-run context: the reference date, the user's timezone and their categories."""
    lines = [
        f"Fecha de hoy: {today.isoformat()}. Usa siempre el formato YYYY-MM-DD para las fechas.",
        f"Zona horaria del usuario: {timezone}.",
    ]
    expenses = [c.label for c in categories if c.type in (None, TransactionType.EXPENSE)]
    incomes = [c.label for c in categories if c.type in (None, TransactionType.INCOME)]
    if expenses:
        lines.append(f"Categorías de gastos disponibles: {', '.join(expenses)}.")
    if incomes:
        lines.append(f"Categorías de ingresos disponibles: {', '.join(incomes)}.")
    if categories:
        lines.append("Usa exactamente uno de estos nombres de categoría al registrar datos.")
    return "\n".join(lines)


class ChatEngine:
    """
    Runs one conversational turn per call.

    All collaborators are passed in; nothing is a module-level singleton.
    The sub-components are built here so the engine can be created from
    a service and two stores.

    Args:
        service: The reasoning service.
        records: Category, transaction, budget and goal store.
        accounts: User profile, onboarding and usage store.
        audit_logger: Shared audit logger.
        settings: App settings. Defaults to get_settings().app.
        polling: Poll and dispatch bounds. Defaults to get_settings().polling.
        normalizer: Date handling; tests inject one with a fixed clock.
        sleep: Sleep used by the poller; tests inject a recorder.
    """

    def __init__(
        self,
        service: ReasoningServiceInterface,
        records: RecordStorageInterface,
        accounts: AccountStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        polling: Optional[PollingSettings] = None,
        normalizer: Optional[TemporalNormalizer] = None,
        analyzer: Optional[AntExpenseAnalyzer] = None,
        gamification: Optional[GamificationDispatcher] = None,
        usage: Optional[UsageMeter] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self._settings = settings or get_settings().app
        self._service = service
        self._records = records
        self._accounts = accounts
        self._audit = audit_logger or AuditLogger()
        self._normalizer = normalizer or TemporalNormalizer(settings=self._settings)

        resolver = CategoryResolver(records)
        mutator = RecordMutator(
            storage=records,
            resolver=resolver,
            matcher=CriteriaMatcher(records, resolver, self._normalizer),
            executor=QueryExecutor(records, resolver, self._normalizer, self._settings),
            validator=RecordValidator(self._normalizer, self._settings),
            normalizer=self._normalizer,
            audit=self._audit,
            gamification=gamification or LoggingGamificationDispatcher(),
        )
        account_tools = AccountTools(
            records,
            accounts,
            analyzer or LocalAntExpenseAnalyzer(records, self._normalizer),
            audit=self._audit,
        )
        poller = RunPoller(service, polling, sleep=sleep)

        self._dispatcher = ToolCallDispatcher(service, poller, mutator, account_tools, audit=self._audit)
        self._sessions = ConversationSessionManager(service, audit=self._audit)
        self._usage = usage or UsageMeter(accounts, self._settings, audit=self._audit)

    async def _load_user(self, user_id: str) -> UserProfile:
        user = await self._accounts.get_user(user_id)
        if user is None:
            logger.info("user_profile_missing", user_id=user_id)
            return UserProfile(id=user_id)
        return user

    async def _categories(self, request: ChatRequest) -> list[CategoryRef]:
        refs = request.category_refs
        if refs:
            return refs
        return [
            CategoryRef(id=c.id, name=c.name, type=c.type, icon=c.icon)
            for c in await self._records.list_categories()
        ]

    async def chat(self, user_id: str, request: ChatRequest) -> ChatResponse:
        """
        Answer one user message.

        Raises:
            ChatEngineError: quota exhausted (403), assistant unreachable
                (503), throttled or busy (429), or any other assistant
                failure (502), or a store failure mid-turn (500)
        """
        correlation_id = create_correlation_id()
        log = logger.bind(user_id=user_id, correlation_id=str(correlation_id))

        user = await self._load_user(user_id)
        try:
            await self._usage.check(user, correlation_id)
        except QuotaExceededError as e:
            raise ChatEngineError(403, str(e), request.thread_id) from e

        categories = await self._categories(request)
        timezone = request.timezone or self._settings.default_timezone
        ctx = TurnContext(
            user_id=user_id,
            user_name=user.name or self._settings.default_display_name,
            timezone=timezone,
            categories=request.category_refs,
            correlation_id=correlation_id,
        )
        onboarding_pending = request.is_onboarding and not user.onboarding_completed
        message = self._normalizer.replace_relative_expressions(request.message)

        thread_id = request.thread_id
        run_id = None
        try:
            session = await self._sessions.open(ctx, thread_id, message, onboarding_pending)
            thread_id = session.thread_id

            run = await self._service.create_run(
                thread_id,
                build_run_instructions(self._normalizer.today(), timezone, categories),
            )
            run_id = run.id
            log.info("run_created", thread_id=thread_id, run_id=run_id)
            await self._audit.log_run_created(user_id, thread_id, run_id, correlation_id)
            usage = await self._usage.increment(user, correlation_id)

            outcome = await self._dispatcher.drive(ctx, thread_id, run_id)
            warning = None
            if outcome.limit_reached:
                warning = messages.DISPATCH_LIMIT_WARNING
                await self._sessions.cancel_active_runs(ctx, thread_id)

            reply = await self._sessions.read_reply(thread_id)
        except AssistantError as e:
            status = getattr(e, "status", None) or type(e).__name__
            log.error("chat_turn_failed", thread_id=thread_id, run_id=run_id, error=str(e), status=status)
            if isinstance(e, (RunFailedError, RunTimeoutError)):
                await self._audit.log_run_failed(user_id, run_id, status, str(e), correlation_id)
            else:
                await self._audit.log_external_service_error("assistant", str(e), correlation_id)
            raise map_assistant_error(e, thread_id) from e
        except StorageError as e:
            log.error("chat_turn_storage_failed", thread_id=thread_id, run_id=run_id, error=str(e))
            await self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"thread_id": thread_id, "run_id": run_id},
                correlation_id=correlation_id,
            )
            raise ChatEngineError(500, GENERIC_ERROR_MESSAGE, thread_id) from e

        executed = outcome.executed_actions
        log.info(
            "chat_turn_completed",
            thread_id=thread_id,
            iterations=outcome.iterations,
            actions=len(executed),
        )
        return ChatResponse(
            message=reply or messages.NO_REPLY,
            thread_id=thread_id,
            action=executed[-1].action if executed else None,
            executed_actions=executed,
            usage=usage,
            warning=warning,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[ChatEngine, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory stores.

    Returns:
        (chat_engine, sheets_client)
    """
    sheets_client = None
    records: RecordStorageInterface
    accounts: AccountStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            records = GoogleSheetsRecordStorage(sheets_client)
            accounts = GoogleSheetsAccountStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            records = InMemoryRecordStorage(default_categories())
            accounts = InMemoryAccountStorage()
            audit_logger = AuditLogger()
    else:
        records = InMemoryRecordStorage(default_categories())
        accounts = InMemoryAccountStorage()
        audit_logger = AuditLogger()

    engine = ChatEngine(
        service=AssistantClient(),
        records=records,
        accounts=accounts,
        audit_logger=audit_logger,
    )
    return engine, sheets_client
