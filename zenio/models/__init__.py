"""Data models package."""

from zenio.models.records import (
    Budget,
    BudgetPeriod,
    Category,
    EntityModule,
    Goal,
    GoalPriority,
    MonthlyTargetMode,
    OnboardingProfile,
    SubscriptionPlan,
    Transaction,
    TransactionType,
    UsageCounter,
    UserProfile,
)
from zenio.models.conversation import (
    CategoryRef,
    ChatRequest,
    ChatResponse,
    ExecutedAction,
    Run,
    RunError,
    RunStatus,
    ThreadMessage,
    ToolCall,
    ToolOutput,
    TurnContext,
    UsageInfo,
)
from zenio.models.tools import (
    ARGS_SCHEMAS,
    FailureKind,
    RecordOperation,
    ToolName,
    ToolResult,
)
from zenio.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "Budget",
    "BudgetPeriod",
    "Category",
    "EntityModule",
    "Goal",
    "GoalPriority",
    "MonthlyTargetMode",
    "OnboardingProfile",
    "SubscriptionPlan",
    "Transaction",
    "TransactionType",
    "UsageCounter",
    "UserProfile",
    # Conversation
    "CategoryRef",
    "ChatRequest",
    "ChatResponse",
    "ExecutedAction",
    "Run",
    "RunError",
    "RunStatus",
    "ThreadMessage",
    "ToolCall",
    "ToolOutput",
    "TurnContext",
    "UsageInfo",
    # Tools
    "ARGS_SCHEMAS",
    "FailureKind",
    "RecordOperation",
    "ToolName",
    "ToolResult",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
