"""Services package: storage backends, the reasoning service and external collaborators."""

from zenio.services.assistant import (
    AssistantClient,
    AssistantError,
    ReasoningServiceInterface,
)
from zenio.services.collaborators import (
    AntExpenseAnalyzer,
    GamificationDispatcher,
    LocalAntExpenseAnalyzer,
    LoggingGamificationDispatcher,
)
from zenio.services.storage import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
)

__all__ = [
    # Reasoning service
    "AssistantClient",
    "AssistantError",
    "ReasoningServiceInterface",
    # Collaborators
    "AntExpenseAnalyzer",
    "GamificationDispatcher",
    "LocalAntExpenseAnalyzer",
    "LoggingGamificationDispatcher",
    # Storage services
    "AccountStorageInterface",
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStorage",
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
    "NotFoundError",
    "RecordStorageInterface",
    "StorageError",
]
