"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests
and local runs without credentials.
"""

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
from zenio.services.storage.google_sheets import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
)
from zenio.services.storage.memory import (
    DEFAULT_CATEGORIES,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    default_categories,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "RecordStorageInterface",
    # Filters
    "BudgetFilter",
    "GoalFilter",
    "TransactionFilter",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStorage",
    # In-memory implementation
    "DEFAULT_CATEGORIES",
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
    "default_categories",
]
