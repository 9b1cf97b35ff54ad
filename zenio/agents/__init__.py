"""Conversation agents: mutation, polling, dispatch and session handling."""

from zenio.agents.account_tools import AccountTools
from zenio.agents.dispatcher import DispatchOutcome, ToolCallDispatcher, describe_validation_error
from zenio.agents.mutator import RecordMutator, period_bounds
from zenio.agents.poller import BackoffState, PollDecision, PollStep, RunPoller, next_step, throttled_step
from zenio.agents.session import ConversationSessionManager, Session, is_valid_thread_id

__all__ = [
    "AccountTools",
    "BackoffState",
    "ConversationSessionManager",
    "DispatchOutcome",
    "PollDecision",
    "PollStep",
    "RecordMutator",
    "RunPoller",
    "Session",
    "ToolCallDispatcher",
    "describe_validation_error",
    "is_valid_thread_id",
    "next_step",
    "period_bounds",
    "throttled_step",
]
