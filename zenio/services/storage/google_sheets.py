"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. The user can look at their own records directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for personal finance)
- No transactions (one row write per mutation)
- Limited query capabilities (we filter in Python with the shared filter models)

Each entity lives in its own worksheet with a header row. Rows are
produced from `model_dump(mode="json")` in column order and read back
with `model_validate`, so the pydantic models stay the single source of
truth for types.
"""

import json
from typing import Generic, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from zenio.config import GoogleSheetsSettings, get_settings
from zenio.models.audit import AuditEvent
from zenio.models.records import (
    Budget,
    Category,
    Goal,
    OnboardingProfile,
    Transaction,
    TransactionType,
    UsageCounter,
    UserProfile,
)
from zenio.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    BudgetFilter,
    ConnectionError,
    DuplicateError,
    GoalFilter,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    TransactionFilter,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

CATEGORY_COLUMNS = ["id", "name", "type", "icon"]
TRANSACTION_COLUMNS = [
    "id", "user_id", "amount", "type", "category_id", "date",
    "occurred_at", "description", "created_at", "updated_at",
]
BUDGET_COLUMNS = [
    "id", "user_id", "name", "category_id", "amount", "period", "start_date",
    "end_date", "alert_percentage", "spent", "is_active", "created_at", "updated_at",
]
GOAL_COLUMNS = [
    "id", "user_id", "name", "category_id", "target_amount", "current_amount",
    "monthly_target_type", "monthly_value", "due_date", "priority", "description",
    "is_completed", "is_active", "contributions_count", "created_at", "updated_at",
]
USER_COLUMNS = ["id", "name", "onboarding_completed", "plan"]
ONBOARDING_COLUMNS = [
    "user_id", "main_goals", "main_challenges", "main_challenge_other", "saving_habit",
    "emergency_fund", "financial_feeling", "income_range", "updated_at",
]
USAGE_COLUMNS = ["user_id", "used", "reset_at"]

# Column order matches AuditEvent.to_sheets_row()
AUDIT_COLUMNS = [
    "event_id", "timestamp", "event_type", "severity", "user_id", "entity_type",
    "entity_id", "correlation_id", "description", "details", "error_message",
]

# Missing and duplicate rows are not retried
_write_retry = retry(
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and creates missing worksheets on first use.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @_write_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=1000, cols=len(columns))
            sheet.append_row(columns)
            return sheet


def _to_cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class SheetTable(Generic[ModelT]):
    """
    One worksheet holding one model type.

    `key` names the column that identifies a row (usually "id").
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        title: str,
        columns: list[str],
        model: type[ModelT],
        key: str = "id",
        json_columns: tuple[str, ...] = (),
    ):
        self._client = client
        self._title = title
        self._columns = columns
        self._model = model
        self._key = key
        self._key_index = columns.index(key)
        self._json_columns = json_columns

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self._columns)

    def to_row(self, record: ModelT) -> list[str]:
        data = record.model_dump(mode="json")
        return [_to_cell(data.get(column)) for column in self._columns]

    def from_row(self, row: list[str]) -> ModelT:
        data = {}
        for index, column in enumerate(self._columns):
            cell = row[index] if index < len(row) else ""
            if cell == "":
                continue
            data[column] = json.loads(cell) if column in self._json_columns else cell
        return self._model.model_validate(data)

    def rows(self) -> list[tuple[int, ModelT]]:
        """(sheet row number, record) for every readable data row."""
        values = self._sheet().get_all_values()
        records = []
        for number, row in enumerate(values[1:], start=2):
            if not row or len(row) <= self._key_index or not row[self._key_index]:
                continue
            try:
                records.append((number, self.from_row(row)))
            except Exception as e:
                logger.warning("sheet_row_skipped", sheet=self._title, row=number, error=str(e))
        return records

    def records(self) -> list[ModelT]:
        return [record for _, record in self.rows()]

    def find_row(self, key_value: str) -> Optional[tuple[int, ModelT]]:
        for number, record in self.rows():
            if str(getattr(record, self._key)) == key_value:
                return number, record
        return None

    def append(self, record: ModelT) -> None:
        self._sheet().append_row(self.to_row(record), value_input_option="RAW")

    def replace(self, number: int, record: ModelT) -> None:
        self._sheet().update(
            range_name=f"A{number}",
            values=[self.to_row(record)],
            value_input_option="RAW",
        )

    def delete(self, number: int) -> None:
        self._sheet().delete_rows(number)


def _newest_first(records: list) -> list:
    return sorted(records, key=lambda r: r.created_at, reverse=True)


class GoogleSheetsRecordStorage(RecordStorageInterface):
    """
    Google Sheets implementation of the record store.

    All users share one worksheet per entity; every read filters by user_id.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        names = self._client.settings
        self._categories = SheetTable(self._client, names.categories_sheet_name, CATEGORY_COLUMNS, Category)
        self._transactions = SheetTable(self._client, names.transactions_sheet_name, TRANSACTION_COLUMNS, Transaction)
        self._budgets = SheetTable(self._client, names.budgets_sheet_name, BUDGET_COLUMNS, Budget)
        self._goals = SheetTable(self._client, names.goals_sheet_name, GOAL_COLUMNS, Goal)

    # Shared helpers

    async def _add(self, table: SheetTable, record, kind: str) -> bool:
        try:
            if table.find_row(record.id) is not None:
                raise DuplicateError(f"{kind} already exists: {record.id}")
            table.append(record)
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {kind}: {e}")

    async def _update(self, table: SheetTable, record, kind: str) -> bool:
        try:
            found = table.find_row(record.id)
            if found is None or found[1].user_id != record.user_id:
                raise NotFoundError(f"{kind} not found: {record.id}")
            table.replace(found[0], record)
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {kind}: {e}")

    async def _delete(self, table: SheetTable, user_id: str, record_id: str, kind: str) -> bool:
        try:
            found = table.find_row(record_id)
            if found is None or found[1].user_id != user_id:
                return False
            table.delete(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete {kind}: {e}")

    async def _find(self, table: SheetTable, user_id: str, criteria, limit: Optional[int], kind: str) -> list:
        try:
            matches = [r for r in table.records() if r.user_id == user_id and criteria.matches(r)]
        except Exception as e:
            raise StorageError(f"Failed to list {kind}: {e}")
        ordered = _newest_first(matches)
        return ordered[:limit] if limit is not None else ordered

    # Categories

    async def list_categories(
        self,
        category_type: Optional[TransactionType] = None,
    ) -> list[Category]:
        try:
            categories = self._categories.records()
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")
        return [c for c in categories if category_type is None or c.type == category_type]

    async def get_category(self, category_id: str) -> Optional[Category]:
        try:
            found = self._categories.find_row(category_id)
        except Exception as e:
            raise StorageError(f"Failed to get category: {e}")
        return found[1] if found else None

    async def get_category_by_name(
        self,
        name: str,
        category_type: Optional[TransactionType] = None,
    ) -> Optional[Category]:
        wanted = name.strip().lower()
        for category in await self.list_categories(category_type):
            if category.name.lower() == wanted:
                return category
        return None

    @_write_retry
    async def save_category(self, category: Category) -> bool:
        try:
            found = self._categories.find_row(category.id)
            if found is None:
                self._categories.append(category)
            else:
                self._categories.replace(found[0], category)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    # Transactions

    @_write_retry
    async def add_transaction(self, transaction: Transaction) -> bool:
        return await self._add(self._transactions, transaction, "transaction")

    @_write_retry
    async def update_transaction(self, transaction: Transaction) -> bool:
        return await self._update(self._transactions, transaction, "transaction")

    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        return await self._delete(self._transactions, user_id, transaction_id, "transaction")

    async def find_transactions(
        self,
        user_id: str,
        criteria: TransactionFilter,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        return await self._find(self._transactions, user_id, criteria, limit, "transactions")

    # Budgets

    @_write_retry
    async def add_budget(self, budget: Budget) -> bool:
        return await self._add(self._budgets, budget, "budget")

    @_write_retry
    async def update_budget(self, budget: Budget) -> bool:
        return await self._update(self._budgets, budget, "budget")

    async def delete_budget(self, user_id: str, budget_id: str) -> bool:
        return await self._delete(self._budgets, user_id, budget_id, "budget")

    async def find_budgets(
        self,
        user_id: str,
        criteria: BudgetFilter,
        limit: Optional[int] = None,
    ) -> list[Budget]:
        return await self._find(self._budgets, user_id, criteria, limit, "budgets")

    # Goals

    @_write_retry
    async def add_goal(self, goal: Goal) -> bool:
        return await self._add(self._goals, goal, "goal")

    @_write_retry
    async def update_goal(self, goal: Goal) -> bool:
        return await self._update(self._goals, goal, "goal")

    async def delete_goal(self, user_id: str, goal_id: str) -> bool:
        return await self._delete(self._goals, user_id, goal_id, "goal")

    async def find_goals(
        self,
        user_id: str,
        criteria: GoalFilter,
        limit: Optional[int] = None,
    ) -> list[Goal]:
        return await self._find(self._goals, user_id, criteria, limit, "goals")


class GoogleSheetsAccountStorage(AccountStorageInterface):
    """Profiles, onboarding answers and usage counters, one row per user."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        names = self._client.settings
        self._users = SheetTable(self._client, names.users_sheet_name, USER_COLUMNS, UserProfile)
        self._onboarding = SheetTable(
            self._client,
            names.onboarding_sheet_name,
            ONBOARDING_COLUMNS,
            OnboardingProfile,
            key="user_id",
            json_columns=("main_goals", "main_challenges"),
        )
        self._usage = SheetTable(
            self._client, names.usage_sheet_name, USAGE_COLUMNS, UsageCounter, key="user_id"
        )

    def _upsert(self, table: SheetTable, key_value: str, record, kind: str) -> bool:
        try:
            found = table.find_row(key_value)
            if found is None:
                table.append(record)
            else:
                table.replace(found[0], record)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save {kind}: {e}")

    def _get(self, table: SheetTable, key_value: str, kind: str):
        try:
            found = table.find_row(key_value)
        except Exception as e:
            raise StorageError(f"Failed to get {kind}: {e}")
        return found[1] if found else None

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        return self._get(self._users, user_id, "user")

    @_write_retry
    async def save_user(self, profile: UserProfile) -> bool:
        return self._upsert(self._users, profile.id, profile, "user")

    async def mark_onboarding_completed(self, user_id: str) -> bool:
        user = await self.get_user(user_id) or UserProfile(id=user_id)
        return await self.save_user(user.model_copy(update={"onboarding_completed": True}))

    async def get_onboarding(self, user_id: str) -> Optional[OnboardingProfile]:
        return self._get(self._onboarding, user_id, "onboarding")

    @_write_retry
    async def upsert_onboarding(self, profile: OnboardingProfile) -> bool:
        return self._upsert(self._onboarding, profile.user_id, profile, "onboarding")

    async def get_usage(self, user_id: str) -> Optional[UsageCounter]:
        return self._get(self._usage, user_id, "usage")

    @_write_retry
    async def save_usage(self, counter: UsageCounter) -> bool:
        return self._upsert(self._usage, counter.user_id, counter, "usage")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._table = SheetTable(
            self._client,
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            AuditEvent,
            key="event_id",
            json_columns=("details",),
        )

    @_write_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_worksheet(self._client.settings.audit_sheet_name, AUDIT_COLUMNS)
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [e for e in self._table.records() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._table.records()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
