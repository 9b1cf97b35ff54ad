"""
Run Poller

DESIGN DECISION: The backoff logic is a pure function.

`next_step(state, run, policy)` looks at one polled run and the current
backoff state and decides what happens next: return the run, sleep and
poll again, or give up. It never sleeps and never talks to the network,
so every transition is testable on its own. `RunPoller` is the thin loop
that fetches runs, applies the step and performs the sleeps.

State machine:
    queued / in_progress  -> sleep(delay), delay = min(delay * growth, cap)
    requires_action       -> return (the dispatcher takes over)
    completed             -> return (the reply can be read)
    failed (rate limit)   -> sleep(rate_limit_delay), bounded retries
    failed / expired / cancelled / incomplete -> RunFailedError
    attempts exhausted    -> RunTimeoutError

An HTTP 429 while polling counts as an attempt and doubles the wait,
capped at twice the normal cap.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from zenio.config import PollingSettings, get_settings
from zenio.models.conversation import Run, RunStatus
from zenio.services.assistant import (
    AssistantRateLimitError,
    ReasoningServiceInterface,
    RunFailedError,
    RunTimeoutError,
)


logger = structlog.get_logger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class BackoffState(BaseModel):
    """Where the poll loop stands. Immutable; every step returns a new one."""
    model_config = ConfigDict(frozen=True)

    attempt: int = 0
    delay: float
    rate_limit_retries: int = 0

    @classmethod
    def initial(cls, policy: PollingSettings) -> "BackoffState":
        return cls(delay=policy.initial_delay)


class PollDecision(str, Enum):
    RETURN = "return"
    SLEEP = "sleep"
    FAIL = "fail"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"


class PollStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    decision: PollDecision
    state: BackoffState
    delay: float = 0.0


def _grow(delay: float, policy: PollingSettings) -> float:
    return min(delay * policy.growth_factor, policy.max_delay)


def next_step(state: BackoffState, run: Run, policy: PollingSettings) -> PollStep:
    """Decide what to do after polling `run`. Pure."""
    polled = state.model_copy(update={"attempt": state.attempt + 1})

    if run.status in (RunStatus.COMPLETED, RunStatus.REQUIRES_ACTION):
        return PollStep(decision=PollDecision.RETURN, state=polled)

    if run.is_rate_limited:
        if state.rate_limit_retries >= policy.max_rate_limit_retries:
            return PollStep(decision=PollDecision.RATE_LIMITED, state=polled)
        return PollStep(
            decision=PollDecision.SLEEP,
            state=polled.model_copy(update={"rate_limit_retries": state.rate_limit_retries + 1}),
            delay=policy.rate_limit_delay,
        )

    if not run.status.is_active:
        return PollStep(decision=PollDecision.FAIL, state=polled)

    # queued, in_progress, cancelling
    if polled.attempt >= policy.max_attempts:
        return PollStep(decision=PollDecision.TIMEOUT, state=polled)
    return PollStep(
        decision=PollDecision.SLEEP,
        state=polled.model_copy(update={"delay": _grow(state.delay, policy)}),
        delay=state.delay,
    )


def throttled_step(state: BackoffState, policy: PollingSettings) -> PollStep:
    """Decide what to do after the poll request itself got HTTP 429. Pure."""
    polled = state.model_copy(update={"attempt": state.attempt + 1})
    if polled.attempt >= policy.max_attempts:
        return PollStep(decision=PollDecision.RATE_LIMITED, state=polled)
    wait = min(state.delay * 2, policy.max_delay * 2)
    return PollStep(
        decision=PollDecision.SLEEP,
        state=polled.model_copy(update={"delay": _grow(state.delay, policy)}),
        delay=wait,
    )


class RunPoller:
    """
    Waits for a run to reach a state the engine can act on.

    Args:
        service: The reasoning service.
        policy: Backoff bounds. Defaults to the configured PollingSettings.
        sleep: Awaitable sleep. Tests inject a recorder instead of asyncio.sleep.
    """

    def __init__(
        self,
        service: ReasoningServiceInterface,
        policy: Optional[PollingSettings] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self._service = service
        self._policy = policy or get_settings().polling
        self._sleep = sleep or asyncio.sleep

    @property
    def policy(self) -> PollingSettings:
        return self._policy

    async def wait(self, thread_id: str, run_id: str) -> Run:
        """
        Poll until the run is completed or requires action.

        Raises:
            RunFailedError: The run failed, expired or was cancelled
            AssistantRateLimitError: Throttling outlasted the retries
            RunTimeoutError: Still working after max_attempts polls
        """
        state = BackoffState.initial(self._policy)

        while True:
            try:
                run = await self._service.get_run(thread_id, run_id)
                step = next_step(state, run, self._policy)
            except AssistantRateLimitError:
                run = None
                step = throttled_step(state, self._policy)

            state = step.state
            logger.debug(
                "run_polled",
                run_id=run_id,
                status=run.status.value if run else "throttled",
                attempt=state.attempt,
                decision=step.decision.value,
                delay=step.delay,
            )

            if step.decision == PollDecision.RETURN:
                return run

            if step.decision == PollDecision.SLEEP:
                await self._sleep(step.delay)
                continue

            if step.decision == PollDecision.RATE_LIMITED:
                logger.warning("run_rate_limited", run_id=run_id, attempts=state.attempt)
                raise AssistantRateLimitError(
                    f"Run {run_id} still throttled after {state.attempt} polls"
                )

            if step.decision == PollDecision.TIMEOUT:
                logger.warning("run_poll_timeout", run_id=run_id, attempts=state.attempt)
                raise RunTimeoutError(
                    f"Run {run_id} did not finish after {state.attempt} polls",
                    run_id=run_id,
                    attempts=state.attempt,
                )

            detail = run.last_error.message if run and run.last_error else ""
            logger.error("run_failed", run_id=run_id, status=run.status.value, error=detail)
            raise RunFailedError(
                f"Run {run_id} ended as {run.status.value}: {detail}".rstrip(": "),
                status=run.status.value,
                run_id=run_id,
            )
