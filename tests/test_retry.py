"""Tests for retry classification, backoff and cancellation."""

import asyncio

import pytest

from swarmflow import (
    AuthenticationError, Choice, CompletionResponse, MaxRetriesExceededError,
    ProviderTimeoutError, RateLimitError, RateLimitStrategy, RetryPolicy,
    RunCancelledError, RunContext, SwarmConfig, TransientProviderError,
    TurnExecutor, ErrorKind, classify_error,
)
from fakes import AlwaysFails, ScriptedClient, assistant, user


class TestClassification:
    def test_typed_errors(self):
        assert classify_error(RateLimitError()) == ErrorKind.RATE_LIMITED
        assert classify_error(AuthenticationError("bad key", "openai", 401)) == ErrorKind.FATAL
        assert classify_error(TransientProviderError("502", "openai", 502)) == ErrorKind.TRANSIENT
        assert classify_error(asyncio.TimeoutError()) == ErrorKind.TRANSIENT

    def test_foreign_errors_fall_back_to_text(self):
        assert classify_error(RuntimeError("HTTP 429 Too Many Requests")) == ErrorKind.RATE_LIMITED
        assert classify_error(RuntimeError("invalid model: gpt-9")) == ErrorKind.FATAL
        assert classify_error(RuntimeError("connection reset")) == ErrorKind.TRANSIENT

    def test_typed_error_beats_its_text(self):
        # the message mentions a rate limit but the type says transient
        error = TransientProviderError("upstream rate limit proxy failed", "openai", 502)
        assert classify_error(error) == ErrorKind.TRANSIENT


class TestBackoff:
    def test_rate_limit_is_exponential(self):
        policy = RetryPolicy(max_retries=3, backoff=1.0)
        delays = [policy.delay_for(ErrorKind.RATE_LIMITED, n, RateLimitError()) for n in range(3)]
        assert delays == [1.0, 2.0, 4.0]

    def test_transient_is_linear(self):
        policy = RetryPolicy(max_retries=3, backoff=0.5)
        delays = [policy.delay_for(ErrorKind.TRANSIENT, n, RuntimeError()) for n in range(3)]
        assert delays == [0.5, 1.0, 1.5]

    def test_queue_honours_retry_after(self):
        policy = RetryPolicy(backoff=1.0, rate_limit_strategy=RateLimitStrategy.QUEUE)
        assert policy.delay_for(ErrorKind.RATE_LIMITED, 0, RateLimitError(retry_after=7)) == 7.0


class TestRetryTermination:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 1, 3])
    async def test_transient_errors_make_exactly_max_retries_plus_one_attempts(self, agent, max_retries):
        client = AlwaysFails(TransientProviderError("service unavailable", "scripted", 503))
        executor = TurnExecutor(client, SwarmConfig(max_retries=max_retries, retry_backoff=0.0))

        with pytest.raises(MaxRetriesExceededError) as excinfo:
            await executor.run(agent, [user("hi")])

        assert client.attempts == max_retries + 1
        assert excinfo.value.attempts == max_retries + 1
        assert isinstance(excinfo.value.last_error, TransientProviderError)

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self, make_executor, agent):
        client = AlwaysFails(AuthenticationError("invalid api key", "scripted", 401))
        with pytest.raises(AuthenticationError):
            await make_executor(client).run(agent, [user("hi")])
        assert client.attempts == 1

    @pytest.mark.asyncio
    async def test_fail_strategy_surfaces_rate_limit(self, agent):
        client = AlwaysFails(RateLimitError())
        config = SwarmConfig(retry_backoff=0.0, rate_limit_strategy=RateLimitStrategy.FAIL)
        with pytest.raises(RateLimitError):
            await TurnExecutor(client, config).run(agent, [user("hi")])
        assert client.attempts == 1

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, make_executor, agent):
        client = ScriptedClient([
            TransientProviderError("flaky", "scripted", 502),
            RateLimitError(),
            assistant("finally"),
        ])
        response = await make_executor(client).run(agent, [user("hi")])
        assert response.last_content == "finally"
        assert len(client.requests) == 3


class HangsThenAnswers:
    """Hangs on the first `hangs` calls, then answers."""

    def __init__(self, hangs):
        self.hangs = hangs
        self.attempts = 0

    async def create_completion(self, request):
        self.attempts += 1
        if self.attempts <= self.hangs:
            await asyncio.sleep(30)
        return CompletionResponse(choices=[Choice(message=assistant("on time"))])

    async def create_completion_stream(self, request):
        raise NotImplementedError


class TestRequestTimeout:
    def test_policy_takes_timeout_from_config(self):
        assert RetryPolicy.from_config(SwarmConfig(request_timeout=2.5)).timeout == 2.5
        with pytest.raises(ValueError):
            SwarmConfig(request_timeout=0)

    @pytest.mark.asyncio
    async def test_hung_request_times_out_and_is_retried(self, agent):
        client = HangsThenAnswers(hangs=1)
        executor = TurnExecutor(client, SwarmConfig(retry_backoff=0.0, request_timeout=0.05))

        response = await asyncio.wait_for(executor.run(agent, [user("hi")]), timeout=5)

        assert response.last_content == "on time"
        assert client.attempts == 2

    @pytest.mark.asyncio
    async def test_every_attempt_timing_out_exhausts_retries(self, agent):
        client = HangsThenAnswers(hangs=10)
        executor = TurnExecutor(client, SwarmConfig(max_retries=1, retry_backoff=0.0, request_timeout=0.05))

        with pytest.raises(MaxRetriesExceededError) as excinfo:
            await asyncio.wait_for(executor.run(agent, [user("hi")]), timeout=5)

        assert client.attempts == 2
        assert isinstance(excinfo.value.last_error, ProviderTimeoutError)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_context_makes_no_call(self, make_executor, agent):
        client = ScriptedClient([assistant("never")])
        ctx = RunContext()
        ctx.cancel("user pressed stop")

        with pytest.raises(RunCancelledError) as excinfo:
            await make_executor(client).run(agent, [user("hi")], ctx=ctx)
        assert excinfo.value.reason == "user pressed stop"
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_cancel_aborts_backoff_sleep(self, agent):
        client = AlwaysFails(TransientProviderError("down", "scripted", 503))
        executor = TurnExecutor(client, SwarmConfig(max_retries=5, retry_backoff=30.0))
        ctx = RunContext()

        async def cancel_soon():
            await asyncio.sleep(0.05)
            ctx.cancel("shutting down")

        canceller = asyncio.ensure_future(cancel_soon())
        with pytest.raises(RunCancelledError):
            await asyncio.wait_for(executor.run(agent, [user("hi")], ctx=ctx), timeout=5)
        await canceller
        assert client.attempts == 1

    @pytest.mark.asyncio
    async def test_guard_abandons_in_flight_call(self):
        ctx = RunContext(timeout=0.05)

        async def hang():
            await asyncio.sleep(30)

        with pytest.raises(RunCancelledError) as excinfo:
            await asyncio.wait_for(ctx.guard(hang()), timeout=5)
        assert excinfo.value.reason == "deadline exceeded"
