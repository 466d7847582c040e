# __init__.py - LLM package
from .base import ModelClient, CompletionStream, LLMConfig
from .adapters import OpenAIAdapter, SSECompletionStream
from .registry import ProviderRegistry

__all__ = [
    "ModelClient", "CompletionStream", "LLMConfig",
    "OpenAIAdapter", "SSECompletionStream", "ProviderRegistry",
]
