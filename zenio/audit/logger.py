"""
Audit Logger

DESIGN DECISION: Every significant step of a chat turn is logged.
This provides:
1. Traceability of what the assistant asked for and what was done
2. Debugging capability when a run misbehaves
3. A per-turn trail grouped by correlation ID

The audit logger:
- Gracefully handles failures (a broken audit sink never breaks a chat turn)
- Supports correlation IDs to trace related events
"""

from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from zenio.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from zenio.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (Google Sheets or memory), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("zenio.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # Conversation

    async def log_thread_created(self, user_id: str, thread_id: str, correlation_id: Optional[UUID]) -> None:
        await self.log(AuditEventBuilder.thread_created(user_id, thread_id, correlation_id))

    async def log_message_posted(
        self,
        user_id: str,
        thread_id: str,
        kind: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.message_posted(user_id, thread_id, kind, correlation_id))

    async def log_run_created(
        self,
        user_id: str,
        thread_id: str,
        run_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.run_created(user_id, thread_id, run_id, correlation_id))

    async def log_run_cancelled(
        self,
        user_id: str,
        thread_id: str,
        run_id: str,
        succeeded: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.run_cancelled(user_id, thread_id, run_id, succeeded, correlation_id)
        )

    async def log_run_completed(
        self,
        user_id: str,
        run_id: str,
        iterations: int,
        action_count: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.run_completed(user_id, run_id, iterations, action_count, correlation_id)
        )

    async def log_run_failed(
        self,
        user_id: str,
        run_id: Optional[str],
        status: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.run_failed(user_id, run_id, status, error_message, correlation_id)
        )

    async def log_dispatch_limit_reached(
        self,
        user_id: str,
        run_id: str,
        limit: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.dispatch_limit_reached(user_id, run_id, limit, correlation_id))

    # Tool calls

    async def log_tool_call(
        self,
        user_id: str,
        function_name: str,
        tool_call_id: str,
        success: bool,
        action: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a tool call that produced a result (successful or declined)."""
        await self.log(
            AuditEventBuilder.tool_call_executed(
                user_id, function_name, tool_call_id, success, action, correlation_id
            )
        )

    async def log_tool_call_failed(
        self,
        user_id: str,
        function_name: str,
        tool_call_id: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a tool call whose handler raised."""
        await self.log(
            AuditEventBuilder.tool_call_failed(
                user_id, function_name, tool_call_id, error_message, correlation_id
            )
        )

    async def log_resolution_failed(
        self,
        user_id: str,
        function_name: str,
        ambiguous: bool,
        requested: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.resolution_failed(
                user_id, function_name, ambiguous, requested, correlation_id
            )
        )

    # Records

    async def log_record_changed(
        self,
        user_id: str,
        entity_type: str,
        entity_id: str,
        change: str,
        summary: dict[str, Any],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.record_changed(
                user_id, entity_type, entity_id, change, summary, correlation_id
            )
        )

    # Usage

    async def log_usage_incremented(
        self,
        user_id: str,
        used: int,
        limit: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.usage_incremented(user_id, used, limit, correlation_id))

    async def log_quota_exceeded(
        self,
        user_id: str,
        used: int,
        limit: int,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.quota_exceeded(user_id, used, limit, correlation_id))

    # Errors

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(
            AuditEventBuilder.system_error(
                error_type=error_type,
                error_message=error_message,
                details=details,
                correlation_id=correlation_id,
            )
        )

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log external service error."""
        await self.log(
            AuditEventBuilder.external_service_error(
                service=service,
                error_message=error_message,
                correlation_id=correlation_id,
            )
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a chat turn and pass it through every
    tool call and mutation of that turn.
    """
    return uuid4()
