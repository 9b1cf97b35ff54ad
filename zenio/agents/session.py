"""
Conversation Session Manager

Decides which thread a turn runs on and puts the user's message there.

A thread id from the caller is reused only when it looks like a real
thread handle ("thread_..."). Anything else starts a new thread, seeded
with a message carrying the user's display name so greetings stay
personal for the whole conversation.

DESIGN DECISION: A thread accepts one run at a time. Before a message is
appended to an existing thread every still-active run is cancelled.
Cancelling is best-effort: a failure is logged and the turn goes on; if
the thread is really still busy, posting the message reports it.
"""

from typing import Optional

import structlog
from pydantic import BaseModel

from zenio.agents import messages
from zenio.audit import AuditLogger
from zenio.models.conversation import RunStatus, TurnContext
from zenio.services.assistant import AssistantError, ReasoningServiceInterface


logger = structlog.get_logger(__name__)

THREAD_ID_PREFIX = "thread_"


def is_valid_thread_id(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(THREAD_ID_PREFIX) and len(value) > len(THREAD_ID_PREFIX)


class Session(BaseModel):
    thread_id: str
    is_new: bool = False
    onboarding_seeded: bool = False
    cancelled_runs: int = 0


class ConversationSessionManager:
    """
    Opens the thread for a turn and posts the user's message.

    Args:
        service: The reasoning service.
        audit: Audit logger for thread and message events.
    """

    def __init__(self, service: ReasoningServiceInterface, audit: Optional[AuditLogger] = None):
        self._service = service
        self._audit = audit or AuditLogger()

    async def open(
        self,
        ctx: TurnContext,
        thread_id: Optional[str],
        message: str,
        onboarding_pending: bool = False,
    ) -> Session:
        """
        Put `message` on the conversation's thread.

        On a fresh thread with onboarding pending, the onboarding request
        replaces the user's literal text.
        """
        if is_valid_thread_id(thread_id):
            cancelled = await self.cancel_active_runs(ctx, thread_id)
            await self._post(ctx, thread_id, message, "user")
            return Session(thread_id=thread_id, cancelled_runs=cancelled)

        if thread_id:
            logger.info("thread_id_rejected", user_id=ctx.user_id, thread_id=thread_id)

        new_thread = await self._service.create_thread()
        logger.info("thread_created", user_id=ctx.user_id, thread_id=new_thread)
        await self._audit.log_thread_created(ctx.user_id, new_thread, ctx.correlation_id)

        await self._post(ctx, new_thread, messages.greeting_seed(ctx.user_name), "greeting_seed")
        if onboarding_pending:
            await self._post(ctx, new_thread, messages.onboarding_seed(ctx.user_name), "onboarding_seed")
        else:
            await self._post(ctx, new_thread, message, "user")

        return Session(thread_id=new_thread, is_new=True, onboarding_seeded=onboarding_pending)

    async def _post(self, ctx: TurnContext, thread_id: str, content: str, kind: str) -> None:
        await self._service.post_message(thread_id, content)
        await self._audit.log_message_posted(ctx.user_id, thread_id, kind, ctx.correlation_id)

    async def cancel_active_runs(self, ctx: TurnContext, thread_id: str) -> int:
        """Cancel every active run on the thread. Returns how many were cancelled."""
        try:
            runs = await self._service.list_runs(thread_id)
        except AssistantError as e:
            logger.warning("list_runs_failed", thread_id=thread_id, error=str(e))
            return 0

        cancelled = 0
        for run in runs:
            # cancelling runs are already on their way out
            if not run.status.is_active or run.status == RunStatus.CANCELLING:
                continue
            try:
                await self._service.cancel_run(thread_id, run.id)
                cancelled += 1
                succeeded = True
            except AssistantError as e:
                logger.warning("run_cancel_failed", thread_id=thread_id, run_id=run.id, error=str(e))
                succeeded = False
            await self._audit.log_run_cancelled(
                ctx.user_id, thread_id, run.id, succeeded, ctx.correlation_id
            )
        return cancelled

    async def read_reply(self, thread_id: str) -> Optional[str]:
        """
        The assistant's reply to the latest user message.

        Messages come newest first; the reply is the newest assistant
        message that is newer than the last user message. If the newest
        message is the user's own, the run produced no reply.
        """
        for message in await self._service.list_messages(thread_id):
            if message.role == "user":
                return None
            if message.role == "assistant" and message.text:
                return message.text
        return None
