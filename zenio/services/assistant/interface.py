"""
Reasoning Service Interface

DESIGN DECISION: The engine talks to the reasoning service only through
this interface. The production implementation speaks the Assistants v2
HTTP protocol; tests use a scripted fake. Nothing outside
`zenio.services.assistant` knows about URLs or status codes.

Protocol summary:
- A thread holds the conversation. It may have at most one active run.
- A run is one reasoning job on a thread. While it works it is queued or
  in_progress; it stops in requires_action when it wants tool outputs,
  and ends as completed, failed, cancelled, incomplete or expired.
- Messages are listed newest first; the newest assistant message is the reply.
"""

from abc import ABC, abstractmethod
from typing import Optional

from zenio.models.conversation import Run, ThreadMessage, ToolOutput


class ReasoningServiceInterface(ABC):
    """Abstract interface for the external reasoning service."""

    @abstractmethod
    async def create_thread(self) -> str:
        """Create a new empty thread and return its id."""
        pass

    @abstractmethod
    async def post_message(self, thread_id: str, content: str, role: str = "user") -> None:
        """
        Append a message to a thread.

        Raises:
            ThreadBusyError: If a run is still active on the thread
        """
        pass

    @abstractmethod
    async def create_run(
        self,
        thread_id: str,
        additional_instructions: Optional[str] = None,
    ) -> Run:
        pass

    @abstractmethod
    async def get_run(self, thread_id: str, run_id: str) -> Run:
        pass

    @abstractmethod
    async def list_runs(self, thread_id: str) -> list[Run]:
        """Recent runs on the thread, newest first."""
        pass

    @abstractmethod
    async def cancel_run(self, thread_id: str, run_id: str) -> Run:
        pass

    @abstractmethod
    async def submit_tool_outputs(
        self,
        thread_id: str,
        run_id: str,
        outputs: list[ToolOutput],
    ) -> Run:
        pass

    @abstractmethod
    async def list_messages(self, thread_id: str) -> list[ThreadMessage]:
        """Messages on the thread, newest first."""
        pass

    async def aclose(self) -> None:
        """Release network resources. Optional."""
        return None


class AssistantError(Exception):
    """Base exception for reasoning service failures."""
    pass


class AssistantTransportError(AssistantError):
    """Connection reset, refused or timed out."""
    pass


class AssistantAuthError(AssistantError):
    """The service rejected our credentials."""
    pass


class AssistantRequestError(AssistantError):
    """The service rejected a request for any other reason."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AssistantRateLimitError(AssistantError):
    """Throttled: HTTP 429, or a run that failed on rate limits past our retries."""
    pass


class ThreadBusyError(AssistantError):
    """The thread still has an active run."""
    pass


class RunFailedError(AssistantError):
    """A run ended as failed, cancelled, incomplete or expired."""

    def __init__(self, message: str, status: Optional[str] = None, run_id: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.run_id = run_id


class RunTimeoutError(AssistantError):
    """The run was still working when the poll bound ran out."""

    def __init__(self, message: str, run_id: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.run_id = run_id
        self.attempts = attempts
