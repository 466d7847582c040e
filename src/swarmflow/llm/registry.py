# registry.py - Provider Registry
#
# Maps a provider name to a factory that builds a ModelClient from an
# LLMConfig. Callers pick a provider here, once, at construction time;
# the engine itself only ever sees the ModelClient it was given.

from typing import Callable, Optional

from ..errors import UnknownProviderError
from .base import LLMConfig, ModelClient
from .adapters import OpenAIAdapter

ClientFactory = Callable[[LLMConfig], ModelClient]


class ProviderRegistry:
    """
    Registry of model client factories.

    Usage:
        registry = ProviderRegistry.with_defaults()
        registry.register("mock", lambda cfg: MockClient())
        client = registry.create("openai", LLMConfig(model="gpt-4o", api_key="..."))
    """

    def __init__(self):
        self._factories: dict[str, ClientFactory] = {}

    @classmethod
    def with_defaults(cls) -> "ProviderRegistry":
        registry = cls()
        registry.register("openai", OpenAIAdapter)
        # OpenAI-compatible endpoints only differ by base URL
        registry.register("deepseek", lambda cfg: OpenAIAdapter(
            _with_base_url(cfg, "https://api.deepseek.com/v1")
        ))
        registry.register("ollama", lambda cfg: OpenAIAdapter(
            _with_base_url(cfg, "http://localhost:11434/v1")
        ))
        return registry

    def register(self, name: str, factory: ClientFactory) -> None:
        """Register a factory. Re-registering a name replaces it."""
        self._factories[name.lower()] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def get(self, name: str) -> Optional[ClientFactory]:
        return self._factories.get(name.lower())

    def create(self, name: str, config: LLMConfig) -> ModelClient:
        factory = self.get(name)
        if factory is None:
            raise UnknownProviderError(name, self.names())
        return factory(config)


def _with_base_url(config: LLMConfig, default: str) -> LLMConfig:
    if config.base_url:
        return config
    return LLMConfig(
        model=config.model,
        api_key=config.api_key,
        base_url=default,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        extra=dict(config.extra),
    )
