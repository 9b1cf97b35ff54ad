"""
Audit Models for Zenio

Every significant step of a chat turn is logged for audit purposes:
thread handling, runs, each executed tool call and each record mutation.
This provides:
1. Complete traceability of what the assistant asked for and what was done
2. Debugging information when a run misbehaves
3. A per-turn trail grouped by correlation ID

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Conversation
    THREAD_CREATED = "thread_created"
    MESSAGE_POSTED = "message_posted"
    RUN_CREATED = "run_created"
    RUN_CANCELLED = "run_cancelled"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"
    DISPATCH_LIMIT_REACHED = "dispatch_limit_reached"

    # Tool calls
    TOOL_CALL_EXECUTED = "tool_call_executed"
    TOOL_CALL_FAILED = "tool_call_failed"

    # Records
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    CATEGORY_NOT_FOUND = "category_not_found"
    RESOLUTION_AMBIGUOUS = "resolution_ambiguous"

    # Usage
    USAGE_INCREMENTED = "usage_incremented"
    QUOTA_EXCEEDED = "quota_exceeded"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - which user and entity is this about?
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'run', 'thread')"
    )
    entity_id: Optional[str] = None

    # Correlation - all events of one chat turn share it
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str, ensure_ascii=False) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.thread_created(user_id, thread_id, correlation_id)
        event = AuditEventBuilder.tool_call_executed(user_id, name, call_id, action, correlation_id)
    """

    @staticmethod
    def thread_created(
        user_id: str,
        thread_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.THREAD_CREATED,
            user_id=user_id,
            entity_type="thread",
            entity_id=thread_id,
            correlation_id=correlation_id,
            description="New conversation thread created",
        )

    @staticmethod
    def message_posted(
        user_id: str,
        thread_id: str,
        kind: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_POSTED,
            user_id=user_id,
            entity_type="thread",
            entity_id=thread_id,
            correlation_id=correlation_id,
            description=f"Message posted to thread ({kind})",
            details={"kind": kind},
        )

    @staticmethod
    def run_created(
        user_id: str,
        thread_id: str,
        run_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_CREATED,
            user_id=user_id,
            entity_type="run",
            entity_id=run_id,
            correlation_id=correlation_id,
            description="Assistant run created",
            details={"thread_id": thread_id},
        )

    @staticmethod
    def run_cancelled(
        user_id: str,
        thread_id: str,
        run_id: str,
        succeeded: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_CANCELLED,
            severity=AuditSeverity.INFO if succeeded else AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="run",
            entity_id=run_id,
            correlation_id=correlation_id,
            description=(
                "Stale run cancelled before posting a new message"
                if succeeded
                else "Could not cancel stale run"
            ),
            details={"thread_id": thread_id, "succeeded": succeeded},
        )

    @staticmethod
    def run_completed(
        user_id: str,
        run_id: str,
        iterations: int,
        action_count: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_COMPLETED,
            user_id=user_id,
            entity_type="run",
            entity_id=run_id,
            correlation_id=correlation_id,
            description=f"Run completed after {iterations} tool round(s)",
            details={"iterations": iterations, "executed_actions": action_count},
        )

    @staticmethod
    def run_failed(
        user_id: str,
        run_id: Optional[str],
        status: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="run",
            entity_id=run_id,
            correlation_id=correlation_id,
            description=f"Run ended as {status}",
            error_message=error_message,
            details={"status": status},
        )

    @staticmethod
    def dispatch_limit_reached(
        user_id: str,
        run_id: str,
        limit: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DISPATCH_LIMIT_REACHED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="run",
            entity_id=run_id,
            correlation_id=correlation_id,
            description=f"Run still requested tools after {limit} rounds",
            details={"limit": limit},
        )

    @staticmethod
    def tool_call_executed(
        user_id: str,
        function_name: str,
        tool_call_id: str,
        success: bool,
        action: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_CALL_EXECUTED,
            severity=AuditSeverity.INFO if success else AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="tool_call",
            entity_id=tool_call_id,
            correlation_id=correlation_id,
            description=f"Tool {function_name} answered ({'ok' if success else 'declined'})",
            details={"function": function_name, "success": success, "action": action},
        )

    @staticmethod
    def tool_call_failed(
        user_id: str,
        function_name: str,
        tool_call_id: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_CALL_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="tool_call",
            entity_id=tool_call_id,
            correlation_id=correlation_id,
            description=f"Tool {function_name} failed",
            error_message=error_message,
            details={"function": function_name},
        )

    @staticmethod
    def record_changed(
        user_id: str,
        entity_type: str,
        entity_id: str,
        change: str,
        summary: dict[str, Any],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        event_type = {
            "created": AuditEventType.RECORD_CREATED,
            "updated": AuditEventType.RECORD_UPDATED,
            "deleted": AuditEventType.RECORD_DELETED,
        }[change]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {change}",
            details=summary,
        )

    @staticmethod
    def usage_incremented(
        user_id: str,
        used: int,
        limit: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USAGE_INCREMENTED,
            user_id=user_id,
            entity_type="usage",
            correlation_id=correlation_id,
            description=f"Assistant usage now {used}/{'∞' if limit == -1 else limit}",
            details={"used": used, "limit": limit},
        )

    @staticmethod
    def quota_exceeded(
        user_id: str,
        used: int,
        limit: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUOTA_EXCEEDED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="usage",
            correlation_id=correlation_id,
            description="Monthly assistant quota exhausted",
            details={"used": used, "limit": limit},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )

    @staticmethod
    def resolution_failed(
        user_id: str,
        function_name: str,
        ambiguous: bool,
        requested: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        """Category that did not match, or criteria that matched several records."""
        return AuditEvent(
            event_type=(
                AuditEventType.RESOLUTION_AMBIGUOUS if ambiguous else AuditEventType.CATEGORY_NOT_FOUND
            ),
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="tool_call",
            correlation_id=correlation_id,
            description=(
                f"Tool {function_name} matched more than one record"
                if ambiguous
                else f"Tool {function_name} could not match category"
            ),
            details={"function": function_name, "requested": requested},
        )
