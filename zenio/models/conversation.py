"""
Conversation Protocol Models

Two families of models live here:

1. The reasoning-service protocol (Run, ToolCall, ToolOutput,
   ThreadMessage). These are built from the service's JSON with
   `from_api()` so the rest of the engine never touches raw payloads.
2. The inbound chat call (ChatRequest -> ChatResponse). Field aliases
   keep the camelCase wire names the chat clients already send.

Runs, tool calls and tool outputs live for one turn only. Nothing here
is persisted by the engine.
"""

import json
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from zenio.models.records import TransactionType


# =============================================================================
# REASONING SERVICE PROTOCOL
# =============================================================================

class RunStatus(str, Enum):
    """States reported by the reasoning service for a run."""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    REQUIRES_ACTION = "requires_action"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    EXPIRED = "expired"

    @property
    def is_active(self) -> bool:
        """A thread with an active run refuses new messages."""
        return self in (
            RunStatus.QUEUED,
            RunStatus.IN_PROGRESS,
            RunStatus.REQUIRES_ACTION,
            RunStatus.CANCELLING,
        )

    @property
    def is_pending(self) -> bool:
        return self in (RunStatus.QUEUED, RunStatus.IN_PROGRESS)


class RunError(BaseModel):
    code: Optional[str] = None
    message: str = ""

    @property
    def is_rate_limit(self) -> bool:
        """Provider throttling shows up as a failed run, not an HTTP 429."""
        text = f"{self.code or ''} {self.message}".lower()
        return "rate_limit" in text or "rate limit" in text


class ToolCall(BaseModel):
    """One function call requested by a run in requires_action."""

    id: str
    function_name: str
    arguments: str = Field(
        default="{}",
        description="Raw JSON argument string, parsed per tool by the dispatcher"
    )

    @classmethod
    def from_api(cls, payload: dict) -> "ToolCall":
        function = payload.get("function") or {}
        return cls(
            id=payload["id"],
            function_name=function.get("name", ""),
            arguments=function.get("arguments") or "{}",
        )

    def parsed_arguments(self) -> dict:
        """Decode the argument string. Raises ValueError on malformed JSON."""
        try:
            value = json.loads(self.arguments)
        except json.JSONDecodeError as e:
            raise ValueError(f"Argumentos JSON inválidos: {e.msg}") from e
        if not isinstance(value, dict):
            raise ValueError("Los argumentos deben ser un objeto JSON")
        return value


class Run(BaseModel):
    """Snapshot of a run as returned by the reasoning service."""

    id: str
    thread_id: str
    status: RunStatus
    tool_calls: list[ToolCall] = Field(default_factory=list)
    last_error: Optional[RunError] = None

    @classmethod
    def from_api(cls, payload: dict) -> "Run":
        required = payload.get("required_action") or {}
        submit = required.get("submit_tool_outputs") or {}
        last_error = payload.get("last_error")
        return cls(
            id=payload["id"],
            thread_id=payload.get("thread_id", ""),
            status=RunStatus(payload["status"]),
            tool_calls=[ToolCall.from_api(tc) for tc in submit.get("tool_calls") or []],
            last_error=RunError(**last_error) if last_error else None,
        )

    @property
    def is_rate_limited(self) -> bool:
        return (
            self.status == RunStatus.FAILED
            and self.last_error is not None
            and self.last_error.is_rate_limit
        )


class ToolOutput(BaseModel):
    """The engine's answer to one ToolCall."""

    tool_call_id: str
    output: str

    def to_api(self) -> dict:
        return {"tool_call_id": self.tool_call_id, "output": self.output}


class ThreadMessage(BaseModel):
    id: str
    role: str
    text: str = ""

    @classmethod
    def from_api(cls, payload: dict) -> "ThreadMessage":
        parts = []
        for block in payload.get("content") or []:
            if block.get("type", "text") == "text":
                value = (block.get("text") or {}).get("value")
                if value:
                    parts.append(value)
        return cls(id=payload["id"], role=payload.get("role", ""), text="\n".join(parts))


# =============================================================================
# INBOUND CHAT CALL
# =============================================================================

class CategoryRef(BaseModel):
    """A category as a chat client may send it."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    type: Optional[TransactionType] = None
    icon: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        return TransactionType(v) if isinstance(v, str) else v

    @property
    def label(self) -> str:
        return f"{self.icon} {self.name}" if self.icon else self.name


class ExecutedAction(BaseModel):
    """A tool call outcome the chat client may react to (refresh lists, toasts)."""

    action: str
    data: dict[str, Any] = Field(default_factory=dict)


class UsageInfo(BaseModel):
    used: int = Field(..., ge=0)
    limit: int = Field(..., description="-1 means unlimited")
    remaining: int = Field(..., description="-1 means unlimited")


class ChatRequest(BaseModel):
    """
    One user turn.

    `categories` may be plain names or {id, name, type, icon} objects;
    mixed lists are accepted too.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    message: str = Field(..., min_length=1, max_length=4000)
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    is_onboarding: bool = Field(default=False, alias="isOnboarding")
    categories: Optional[list[Union[CategoryRef, str]]] = None
    timezone: Optional[str] = None

    @property
    def category_refs(self) -> list[CategoryRef]:
        refs = []
        for item in self.categories or []:
            if isinstance(item, CategoryRef):
                refs.append(item)
            elif isinstance(item, str) and item.strip():
                refs.append(CategoryRef(name=item))
        return refs


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    thread_id: str = Field(..., alias="threadId")
    action: Optional[str] = None
    executed_actions: list[ExecutedAction] = Field(default_factory=list, alias="executedActions")
    usage: UsageInfo
    warning: Optional[str] = None

    def to_wire(self) -> dict:
        """Serialize with the camelCase names chat clients expect."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TurnContext(BaseModel):
    """Per-turn values every tool handler needs."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: str
    user_name: str
    timezone: str = "UTC"
    categories: list[CategoryRef] = Field(default_factory=list)
    correlation_id: Optional[UUID] = None
