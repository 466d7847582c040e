"""Scripted model client and message helpers shared by the tests."""

import json

from swarmflow import (
    Choice, CompletionResponse, FatalProviderError, Message, Role,
    StreamChoice, StreamChunk, StreamDelta, ToolCall, ToolCallDelta,
)


def assistant(content: str = "", tool_calls=None) -> Message:
    return Message(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])


def user(content: str) -> Message:
    return Message(role=Role.USER, content=content)


def call(name: str, args=None, call_id: str = "call_1") -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=json.dumps(args or {}))


def text_chunk(content: str) -> StreamChunk:
    return StreamChunk(choices=[StreamChoice(delta=StreamDelta(content=content))])


def tool_chunk(call_id: str = "", name: str = "", arguments: str = "", index: int = 0) -> StreamChunk:
    delta = ToolCallDelta(index=index, id=call_id, name=name, arguments=arguments)
    return StreamChunk(choices=[StreamChoice(delta=StreamDelta(tool_calls=[delta]))])


class FakeStream:
    """An in-memory CompletionStream that records whether it was closed."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.closed = False
        self.consumed = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            self.consumed += 1
            yield chunk

    async def aclose(self):
        self.closed = True


class ScriptedClient:
    """
    ModelClient that replays scripted replies in order.

    A reply may be a Message, a CompletionResponse, an exception to raise,
    or a callable taking the request. Streams are lists of chunks.
    """

    def __init__(self, replies=None, streams=None):
        self.replies = list(replies or [])
        self.streams = list(streams or [])
        self.requests = []
        self.opened = []

    async def create_completion(self, request):
        self.requests.append(request)
        if not self.replies:
            raise FatalProviderError("script exhausted", "scripted")
        reply = self.replies.pop(0)
        if callable(reply) and not isinstance(reply, (Message, CompletionResponse)):
            reply = reply(request)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, CompletionResponse):
            return reply
        return CompletionResponse(id="resp", choices=[Choice(message=reply)])

    async def create_completion_stream(self, request):
        self.requests.append(request)
        if not self.streams:
            raise FatalProviderError("stream script exhausted", "scripted")
        reply = self.streams.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        stream = FakeStream(reply)
        self.opened.append(stream)
        return stream


class AlwaysFails:
    """ModelClient whose every call raises the same error."""

    def __init__(self, error: BaseException):
        self.error = error
        self.attempts = 0

    async def create_completion(self, request):
        self.attempts += 1
        raise self.error

    async def create_completion_stream(self, request):
        self.attempts += 1
        raise self.error

