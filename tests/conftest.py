"""Pytest fixtures for swarmflow tests."""

import pytest

from swarmflow import Agent, SwarmConfig, TurnExecutor


@pytest.fixture
def config() -> SwarmConfig:
    return SwarmConfig(max_retries=3, retry_backoff=0.0)


@pytest.fixture
def make_executor(config):
    def factory(client, **kwargs) -> TurnExecutor:
        return TurnExecutor(client, config, **kwargs)

    return factory


@pytest.fixture
def agent() -> Agent:
    return Agent(name="helper", instructions="You help {{ user_name | default('everyone') }}.")
