# adapters.py - Model Client Adapters
#
# Concrete ModelClient implementation for OpenAI-compatible chat APIs
# (OpenAI, DeepSeek, Together, Groq, OpenRouter, Ollama, local vLLM, ...).
#
# Uses httpx for async HTTP calls. No SDK dependencies.
# HTTP failures are translated into typed ProviderErrors so the retry
# policy never has to parse error text.

import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from ..core.models import (
    CompletionRequest, CompletionResponse, Choice, Message, Role,
    StreamChunk, StreamChoice, StreamDelta, ToolCall, ToolCallDelta, Usage,
)
from ..errors import (
    ProviderError, RateLimitError, AuthenticationError, ModelNotFoundError,
    InvalidRequestError, TransientProviderError, ProviderTimeoutError,
)
from .base import LLMConfig

logger = logging.getLogger(__name__)


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status(response: httpx.Response, provider: str) -> None:
    """Map a non-2xx response onto the ProviderError tree."""
    status = response.status_code
    if status < 400:
        return

    detail = f"{provider} API error {status}: {response.text}"
    if status == 429:
        raise RateLimitError(detail, provider, retry_after=_retry_after(response))
    if status in (401, 403):
        raise AuthenticationError(detail, provider, status)
    if status == 404:
        raise ModelNotFoundError(detail, provider, status)
    if status in (408, 409):
        raise TransientProviderError(detail, provider, status)
    if status < 500:
        raise InvalidRequestError(detail, provider, status)
    raise TransientProviderError(detail, provider, status)


def _parse_tool_calls(raw: Optional[list[dict]]) -> list[ToolCall]:
    calls = []
    for item in raw or []:
        fn = item.get("function") or {}
        calls.append(ToolCall(
            id=item.get("id") or "",
            type=item.get("type") or "function",
            name=fn.get("name") or "",
            arguments=fn.get("arguments") or "",
        ))
    return calls


def parse_completion(data: dict[str, Any]) -> CompletionResponse:
    """Build a CompletionResponse from an OpenAI-style JSON body."""
    choices = []
    for raw in data.get("choices", []):
        msg = raw.get("message") or {}
        choices.append(Choice(
            index=raw.get("index", 0),
            message=Message(
                role=Role(msg.get("role") or "assistant"),
                content=msg.get("content") or "",
                tool_calls=_parse_tool_calls(msg.get("tool_calls")),
            ),
            finish_reason=raw.get("finish_reason"),
        ))
    return CompletionResponse(
        id=data.get("id", ""),
        choices=choices,
        usage=Usage(**(data.get("usage") or {})),
    )


def parse_stream_chunk(data: dict[str, Any]) -> StreamChunk:
    """Build a StreamChunk from one OpenAI-style SSE `data:` payload."""
    choices = []
    for raw in data.get("choices", []):
        delta = raw.get("delta") or {}
        tool_deltas = []
        for item in delta.get("tool_calls") or []:
            fn = item.get("function") or {}
            tool_deltas.append(ToolCallDelta(
                index=item.get("index", 0),
                id=item.get("id") or "",
                type=item.get("type") or "function",
                name=fn.get("name") or "",
                arguments=fn.get("arguments") or "",
            ))
        role = delta.get("role")
        choices.append(StreamChoice(
            index=raw.get("index", 0),
            delta=StreamDelta(
                role=Role(role) if role else None,
                content=delta.get("content") or "",
                tool_calls=tool_deltas,
            ),
            finish_reason=raw.get("finish_reason"),
        ))
    return StreamChunk(id=data.get("id", ""), choices=choices)


class SSECompletionStream:
    """
    Server-sent-events stream over an open httpx response.

    Yields one StreamChunk per `data:` line and stops at `data: [DONE]`.
    Closing the stream closes the response (and the client, if owned).
    """

    def __init__(
        self,
        response: httpx.Response,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._response = response
        self._owned_client = client
        self._closed = False

    def __aiter__(self) -> AsyncIterator[StreamChunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamChunk]:
        async for line in self._response.aiter_lines():
            line = line.strip()
            if not line.startswith("data:"):
                continue
            payload = line[len("data:"):].strip()
            if payload == "[DONE]":
                return
            if not payload:
                continue
            yield parse_stream_chunk(json.loads(payload))

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        if self._owned_client is not None:
            await self._owned_client.aclose()


class OpenAIAdapter:
    """
    Model client for OpenAI-compatible APIs.

    Usage:
        client = OpenAIAdapter(LLMConfig(
            model="gpt-4o",
            api_key="sk-...",
        ))
        response = await client.create_completion(request)

    Pass `http_client` to share a connection pool (or to inject a
    mock transport in tests).
    """

    provider = "openai"

    def __init__(
        self,
        config: LLMConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.base_url = (config.base_url or "https://api.openai.com/v1").rstrip("/")
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _payload(self, request: CompletionRequest, stream: bool) -> dict[str, Any]:
        # Translate swarmflow request -> OpenAI format
        payload: dict[str, Any] = {
            "model": request.model or self.config.model,
            "messages": [msg.to_wire() for msg in request.messages],
            "temperature": (
                request.temperature if request.temperature is not None
                else self.config.temperature
            ),
            "max_tokens": request.max_tokens or self.config.max_tokens,
            "stream": stream,
        }
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.stop:
            payload["stop"] = request.stop
        if request.tools:
            payload["tools"] = [t.to_wire() for t in request.tools]
            if request.tool_choice:
                payload["tool_choice"] = request.tool_choice
            if request.parallel_tool_calls is not None:
                payload["parallel_tool_calls"] = request.parallel_tool_calls
        payload.update(self.config.extra)
        return payload

    def _client(self) -> tuple[httpx.AsyncClient, bool]:
        if self._http_client is not None:
            return self._http_client, False
        return httpx.AsyncClient(timeout=self.config.timeout), True

    async def create_completion(self, request: CompletionRequest) -> CompletionResponse:
        client, owned = self._client()
        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=self._payload(request, stream=False),
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"{self.provider} request timed out", self.provider, cause=e)
        except httpx.TransportError as e:
            raise TransientProviderError(f"{self.provider} transport error: {e}", self.provider, cause=e)
        finally:
            if owned:
                await client.aclose()

        raise_for_status(response, self.provider)
        try:
            return parse_completion(response.json())
        except (ValueError, KeyError) as e:
            raise ProviderError(f"{self.provider} returned malformed JSON: {e}", self.provider, cause=e)

    async def create_completion_stream(self, request: CompletionRequest) -> SSECompletionStream:
        client, owned = self._client()
        http_request = client.build_request(
            "POST",
            f"{self.base_url}/chat/completions",
            headers=self._headers(),
            json=self._payload(request, stream=True),
        )
        try:
            response = await client.send(http_request, stream=True)
        except httpx.TimeoutException as e:
            if owned:
                await client.aclose()
            raise ProviderTimeoutError(f"{self.provider} stream timed out", self.provider, cause=e)
        except httpx.TransportError as e:
            if owned:
                await client.aclose()
            raise TransientProviderError(f"{self.provider} transport error: {e}", self.provider, cause=e)

        if response.status_code >= 400:
            await response.aread()
            await response.aclose()
            if owned:
                await client.aclose()
            raise_for_status(response, self.provider)

        logger.debug("Opened %s stream for model %s", self.provider, request.model)
        return SSECompletionStream(response, client if owned else None)
