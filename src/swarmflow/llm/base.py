# base.py - Model Client Interface
#
# Defines the protocol (interface) that any model client must implement.
# swarmflow is provider-agnostic: OpenAI, DeepSeek, Ollama, vLLM - all work
# as long as the client speaks in CompletionRequest / CompletionResponse.

from typing import Protocol, runtime_checkable, AsyncIterator
from dataclasses import dataclass, field
from ..core.models import CompletionRequest, CompletionResponse, StreamChunk


@runtime_checkable
class CompletionStream(Protocol):
    """An open stream of delta events. Iterate it, then close it."""

    def __aiter__(self) -> AsyncIterator[StreamChunk]:
        ...

    async def aclose(self) -> None:
        ...


@runtime_checkable
class ModelClient(Protocol):
    """
    Protocol that any model client must implement.

    The contract is TWO methods:
        request in -> full completion out
        request in -> stream of deltas out

    Errors should be raised as swarmflow.errors.ProviderError subclasses
    (RateLimitError, AuthenticationError, TransientProviderError, ...) so
    the engine can decide whether to retry without inspecting messages.

    Usage:
        class MyClient:
            async def create_completion(self, request):
                ...
            async def create_completion_stream(self, request):
                ...

        executor = TurnExecutor(MyClient())
    """

    async def create_completion(self, request: CompletionRequest) -> CompletionResponse:
        ...

    async def create_completion_stream(self, request: CompletionRequest) -> CompletionStream:
        ...


@dataclass
class LLMConfig:
    """Configuration for model client adapters."""
    model: str = ""
    api_key: str = ""
    base_url: str = ""
    temperature: float = 0.2
    max_tokens: int = 4096
    timeout: float = 60.0
    extra: dict = field(default_factory=dict)
