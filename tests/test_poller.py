"""
Tests for run polling.

The step function is pure, so most of the state machine is tested
without a service at all; RunPoller is then driven with a scripted fake
and a sleep recorder.
"""

import pytest

from conftest import FakeReasoningService, make_run
from zenio.agents import BackoffState, PollDecision, RunPoller, next_step, throttled_step
from zenio.config import PollingSettings
from zenio.models.conversation import RunStatus
from zenio.services.assistant import AssistantRateLimitError, RunFailedError, RunTimeoutError


RATE_LIMITED = "Rate limit reached for requests"


class TestNextStep:
    """Tests for the pure step function."""

    def test_pending_run_sleeps_with_growing_delay(self, polling_settings):
        state = BackoffState.initial(polling_settings)
        step = next_step(state, make_run(RunStatus.QUEUED), polling_settings)
        assert step.decision == PollDecision.SLEEP
        assert step.delay == 0.5
        assert step.state.attempt == 1
        assert step.state.delay == pytest.approx(0.6)

    def test_state_is_not_mutated(self, polling_settings):
        state = BackoffState.initial(polling_settings)
        next_step(state, make_run(RunStatus.IN_PROGRESS), polling_settings)
        assert state.attempt == 0
        assert state.delay == 0.5

    @pytest.mark.parametrize("status", [RunStatus.COMPLETED, RunStatus.REQUIRES_ACTION])
    def test_actionable_runs_return(self, polling_settings, status):
        step = next_step(BackoffState.initial(polling_settings), make_run(status), polling_settings)
        assert step.decision == PollDecision.RETURN

    @pytest.mark.parametrize("status", [
        RunStatus.FAILED,
        RunStatus.CANCELLED,
        RunStatus.EXPIRED,
        RunStatus.INCOMPLETE,
    ])
    def test_terminal_runs_fail(self, polling_settings, status):
        step = next_step(BackoffState.initial(polling_settings), make_run(status), polling_settings)
        assert step.decision == PollDecision.FAIL

    def test_backoff_is_non_decreasing_and_capped(self, polling_settings):
        state = BackoffState.initial(polling_settings)
        delays = []
        for _ in range(polling_settings.max_attempts - 1):
            step = next_step(state, make_run(RunStatus.IN_PROGRESS), polling_settings)
            assert step.decision == PollDecision.SLEEP
            delays.append(step.delay)
            state = step.state
        assert delays == sorted(delays)
        assert max(delays) == polling_settings.max_delay

    def test_timeout_after_max_attempts(self):
        policy = PollingSettings(max_attempts=3)
        state = BackoffState.initial(policy)
        decisions = []
        for _ in range(3):
            step = next_step(state, make_run(RunStatus.QUEUED), policy)
            decisions.append(step.decision)
            state = step.state
        assert decisions == [PollDecision.SLEEP, PollDecision.SLEEP, PollDecision.TIMEOUT]

    def test_rate_limited_run_waits_then_gives_up(self, polling_settings):
        run = make_run(RunStatus.FAILED, error=RATE_LIMITED)
        state = BackoffState.initial(polling_settings)

        first = next_step(state, run, polling_settings)
        assert first.decision == PollDecision.SLEEP
        assert first.delay == 20.0
        second = next_step(first.state, run, polling_settings)
        assert second.decision == PollDecision.SLEEP
        third = next_step(second.state, run, polling_settings)
        assert third.decision == PollDecision.RATE_LIMITED

    def test_throttled_poll_doubles_wait(self, polling_settings):
        state = BackoffState(delay=2.5)
        step = throttled_step(state, polling_settings)
        assert step.decision == PollDecision.SLEEP
        assert step.delay == 5.0
        assert throttled_step(BackoffState(delay=3.0), polling_settings).delay == 6.0


class TestRunPoller:
    """Tests for the polling loop."""

    @pytest.mark.asyncio
    async def test_queued_queued_requires_action(self, polling_settings, sleeper):
        """Returns on the third poll after exactly two sleeps."""
        service = FakeReasoningService([
            make_run(RunStatus.QUEUED),
            make_run(RunStatus.QUEUED),
            make_run(RunStatus.REQUIRES_ACTION),
        ])
        run = await RunPoller(service, polling_settings, sleep=sleeper).wait("thread_abc", "run_1")

        assert run.status == RunStatus.REQUIRES_ACTION
        assert service.get_run_calls == 3
        assert sleeper.delays == [0.5, pytest.approx(0.6)]

    @pytest.mark.asyncio
    async def test_completed_immediately(self, polling_settings, sleeper):
        service = FakeReasoningService([make_run(RunStatus.COMPLETED)])
        run = await RunPoller(service, polling_settings, sleep=sleeper).wait("thread_abc", "run_1")
        assert run.status == RunStatus.COMPLETED
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_failed_run_raises(self, polling_settings, sleeper):
        service = FakeReasoningService([make_run(RunStatus.FAILED, error="server_error")])
        with pytest.raises(RunFailedError) as exc_info:
            await RunPoller(service, polling_settings, sleep=sleeper).wait("thread_abc", "run_1")
        assert exc_info.value.status == "failed"
        assert "server_error" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self, sleeper):
        policy = PollingSettings(max_attempts=4)
        service = FakeReasoningService([make_run(RunStatus.IN_PROGRESS)])
        with pytest.raises(RunTimeoutError) as exc_info:
            await RunPoller(service, policy, sleep=sleeper).wait("thread_abc", "run_1")
        assert exc_info.value.attempts == 4
        assert service.get_run_calls == 4
        assert len(sleeper.delays) == 3

    @pytest.mark.asyncio
    async def test_rate_limited_run_recovers(self, polling_settings, sleeper):
        service = FakeReasoningService([
            make_run(RunStatus.FAILED, error=RATE_LIMITED),
            make_run(RunStatus.COMPLETED),
        ])
        run = await RunPoller(service, polling_settings, sleep=sleeper).wait("thread_abc", "run_1")
        assert run.status == RunStatus.COMPLETED
        assert sleeper.delays == [20.0]

    @pytest.mark.asyncio
    async def test_rate_limited_run_gives_up(self, polling_settings, sleeper):
        service = FakeReasoningService([make_run(RunStatus.FAILED, error=RATE_LIMITED)])
        with pytest.raises(AssistantRateLimitError):
            await RunPoller(service, polling_settings, sleep=sleeper).wait("thread_abc", "run_1")
        assert sleeper.delays == [20.0, 20.0]

    @pytest.mark.asyncio
    async def test_http_429_while_polling(self, polling_settings, sleeper):
        service = FakeReasoningService([
            AssistantRateLimitError("Too Many Requests"),
            make_run(RunStatus.COMPLETED),
        ])
        run = await RunPoller(service, polling_settings, sleep=sleeper).wait("thread_abc", "run_1")
        assert run.status == RunStatus.COMPLETED
        assert sleeper.delays == [1.0]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
