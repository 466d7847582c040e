"""Tests for the concurrent dispatcher."""

import asyncio

import pytest

from swarmflow import (
    Agent, AgentConfig, AuthenticationError, Choice, CompletionResponse,
    ConcurrentDispatcher, Message, RunCancelledError, RunContext, SwarmConfig,
)
from fakes import assistant, user


class PerAgentClient:
    """Replies per model id; a model listed in `failing` always errors."""

    def __init__(self, failing=(), delays=None):
        self.failing = set(failing)
        self.delays = delays or {}
        self.in_flight = 0
        self.max_in_flight = 0

    async def create_completion(self, request):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(request.model, 0.01))
            if request.model in self.failing:
                raise AuthenticationError(f"model {request.model} rejected", "scripted", 401)
            return CompletionResponse(choices=[Choice(message=assistant(f"answer from {request.model}"))])
        finally:
            self.in_flight -= 1

    async def create_completion_stream(self, request):
        raise NotImplementedError


def configs(*names):
    return {
        name: AgentConfig(Agent(name=name, model=name), [user(f"task for {name}")])
        for name in names
    }


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_the_others(self, config):
        dispatcher = ConcurrentDispatcher(PerAgentClient(failing={"broken"}), config)
        results = await dispatcher.run_concurrent(configs("alpha", "broken", "gamma"))

        assert len(results) == 3
        failures = [r for r in results if not r.success]
        assert [r.agent_name for r in failures] == ["broken"]
        assert isinstance(failures[0].error, AuthenticationError)
        answers = {r.agent_name: r.response.last_content for r in results if r.success}
        assert answers == {"alpha": "answer from alpha", "gamma": "answer from gamma"}

    @pytest.mark.asyncio
    async def test_nil_agent_is_reported_per_result(self, config):
        dispatcher = ConcurrentDispatcher(PerAgentClient(), config)
        batch = configs("alpha")
        batch["ghost"] = AgentConfig(None, [user("hi")])

        results = await dispatcher.run_concurrent(batch)
        by_name = {r.agent_name: r for r in results}
        assert by_name["alpha"].success
        assert not by_name["ghost"].success

    @pytest.mark.asyncio
    async def test_results_arrive_in_completion_order(self, config):
        client = PerAgentClient(delays={"slow": 0.1, "fast": 0.0})
        results = await ConcurrentDispatcher(client, config).run_concurrent(configs("slow", "fast"))
        assert [r.agent_name for r in results] == ["fast", "slow"]

    @pytest.mark.asyncio
    async def test_ordered_variant_follows_input_order(self, config):
        client = PerAgentClient(delays={"slow": 0.1, "fast": 0.0})
        ordered = list(configs("slow", "fast").items())
        results = await ConcurrentDispatcher(client, config).run_concurrent_ordered(ordered)
        assert [r.agent_name for r in results] == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_max_workers_bounds_concurrency(self):
        client = PerAgentClient()
        dispatcher = ConcurrentDispatcher(client, SwarmConfig(retry_backoff=0.0, max_workers=2))
        results = await dispatcher.run_concurrent(configs("a", "b", "c", "d", "e"))

        assert len(results) == 5
        assert client.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_cancel_returns_partial_results(self, config):
        client = PerAgentClient(delays={"quick": 0.0, "stuck": 10.0})
        dispatcher = ConcurrentDispatcher(client, config)
        ctx = RunContext()

        async def cancel_soon():
            await asyncio.sleep(0.1)
            ctx.cancel("enough")

        canceller = asyncio.ensure_future(cancel_soon())
        ordered = list(configs("quick", "stuck").items())
        results = await asyncio.wait_for(dispatcher.run_concurrent_ordered(ordered, ctx), timeout=5)
        await canceller

        assert results[0].success
        assert isinstance(results[1].error, RunCancelledError)

    @pytest.mark.asyncio
    async def test_empty_input(self, config):
        assert await ConcurrentDispatcher(PerAgentClient(), config).run_concurrent({}) == []

    def test_agent_config_defaults(self):
        config = AgentConfig(Agent(name="x"), [Message(role="user", content="hi")])
        assert config.context_variables == {}
        assert config.execute_tools is True
