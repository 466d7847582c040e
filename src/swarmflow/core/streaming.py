# streaming.py - Stream Assembler
#
# Turns a stream of deltas back into complete tool calls:
#   1. Forward content tokens to the handler as they arrive
#   2. Buffer argument fragments per call id
#   3. After every fragment, try to decode the buffer
#   4. Decoded -> execute once, close the stream, reopen with the tool result
#   5. Stream ends with no open call -> on_complete with the final message

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TYPE_CHECKING

from .models import Message, Response, Role, StreamChunk, ToolCall, ToolCallDelta, ToolExecution
from .cancel import RunContext
from .engine import TurnExecutor
from ..config import SwarmConfig
from ..errors import IncompleteToolCallError
from ..observe.hooks import HookManager

if TYPE_CHECKING:
    from ..agent import Agent
    from ..llm.base import ModelClient, CompletionStream

logger = logging.getLogger(__name__)

_END = object()


class StreamHandler:
    """
    Sink for streaming events. Override what you need; every method may
    be a plain function or a coroutine.
    """

    def on_start(self) -> Any:
        pass

    def on_token(self, token: str) -> Any:
        pass

    def on_tool_call(self, tool_call: ToolCall, execution: ToolExecution) -> Any:
        pass

    def on_complete(self, message: Message) -> Any:
        pass

    def on_error(self, error: BaseException) -> Any:
        pass


async def _notify(callback: Callable[..., Any], *args: Any) -> None:
    value = callback(*args)
    if inspect.isawaitable(value):
        await value


async def _next_chunk(iterator) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END


@dataclass
class _CallBuffer:
    id: str
    name: str = ""
    arguments: str = ""

    def decode(self) -> Optional[ToolCall]:
        """A ToolCall if the buffer holds a complete JSON object, else None."""
        if not self.name or not self.arguments.strip():
            return None
        call = ToolCall(id=self.id, name=self.name, arguments=self.arguments)
        try:
            call.parse_arguments()
        except ValueError:
            return None
        return call


class ToolCallAssembler:
    """
    Per-call-id argument buffers with exactly-once completion.

    feed() returns a ToolCall the first time its buffer decodes and None
    otherwise. Fragments for an id that already completed are ignored,
    including fragments on later streams of the same run.
    """

    def __init__(self):
        self._buffers: dict[str, _CallBuffer] = {}
        self._order: list[str] = []
        self.processed: set[str] = set()
        self._stream = 0

    def reset(self) -> None:
        """Drop open buffers before a new stream. Processed ids are kept."""
        self._buffers = {}
        self._order = []
        self._stream += 1

    def feed(self, delta: ToolCallDelta) -> Optional[ToolCall]:
        call_id = delta.id
        if not call_id:
            # Continuation chunk without an id belongs to the last opened call.
            # Synthetic ids are scoped to the stream so a later round can reuse the index.
            if not self._order:
                call_id = f"call_{self._stream}_{delta.index}"
            else:
                call_id = self._order[-1]

        if call_id in self.processed:
            return None

        buffer = self._buffers.get(call_id)
        if buffer is None:
            buffer = _CallBuffer(id=call_id)
            self._buffers[call_id] = buffer
            self._order.append(call_id)

        if delta.name and not buffer.name:
            buffer.name = delta.name
        buffer.arguments += delta.arguments

        call = buffer.decode()
        if call is not None:
            self.processed.add(call_id)
        return call

    def finish(self) -> list[ToolCall]:
        """
        Resolve calls still open at end of stream.

        A named call with an empty buffer runs with `{}`; a non-empty
        buffer that never decoded raises IncompleteToolCallError.
        """
        calls = []
        for call_id in self._order:
            if call_id in self.processed:
                continue
            buffer = self._buffers[call_id]
            if not buffer.name:
                continue
            if buffer.arguments.strip():
                raise IncompleteToolCallError(call_id, buffer.name, buffer.arguments)
            self.processed.add(call_id)
            calls.append(ToolCall(id=call_id, name=buffer.name, arguments="{}"))
        return calls


class StreamAssembler:
    """
    Streaming counterpart of TurnExecutor.

    Usage:
        class Printer(StreamHandler):
            def on_token(self, token):
                print(token, end="", flush=True)

        assembler = StreamAssembler(client)
        response = await assembler.run(agent, messages, Printer())
    """

    def __init__(
        self,
        client: Optional["ModelClient"],
        config: Optional[SwarmConfig] = None,
        hooks: Optional[HookManager] = None,
    ):
        self.executor = TurnExecutor(client, config, hooks)
        self.config = self.executor.config

    async def _open(self, request, ctx: RunContext) -> "CompletionStream":
        client = self.executor.client
        return await self.executor.retry_policy.call(
            lambda: client.create_completion_stream(request),
            ctx,
            description=f"stream ({request.model})",
        )

    async def run(
        self,
        agent: "Agent",
        messages: list[Message],
        handler: Optional[StreamHandler] = None,
        context_variables: Optional[dict[str, Any]] = None,
        model_override: str = "",
        max_turns: Optional[int] = None,
        ctx: Optional[RunContext] = None,
    ) -> Response:
        """
        Stream one logical turn, resolving every tool round trip.

        Never returns a partial tool call: either every call is executed
        or IncompleteToolCallError is raised (after on_error).
        """
        self.executor.check_ready(agent)
        handler = handler or StreamHandler()
        ctx = ctx or RunContext()
        context_variables = dict(context_variables or {})
        rounds = max(1, max_turns if max_turns is not None else self.config.max_turns)

        active = agent
        history = list(messages)
        start = len(history)
        tool_results: list[ToolExecution] = []
        assembler = ToolCallAssembler()
        final: Optional[Message] = None

        await _notify(handler.on_start)
        try:
            for _ in range(rounds):
                ctx.raise_if_cancelled()
                request = self.executor.builder.build(
                    active, history, context_variables, model_override, stream=True,
                )
                assembler.reset()
                content = []
                ready: list[ToolCall] = []

                stream = await self._open(request, ctx)
                try:
                    iterator = stream.__aiter__()
                    while not ready:
                        chunk = await ctx.guard(_next_chunk(iterator))
                        if chunk is _END:
                            break
                        ready = await self._consume(chunk, assembler, content, handler)
                finally:
                    await stream.aclose()

                if not ready:
                    ready = assembler.finish()

                assistant = Message(
                    role=Role.ASSISTANT,
                    content="".join(content),
                    name=active.name,
                    tool_calls=ready,
                )
                history.append(assistant)

                if not ready:
                    final = assistant
                    break

                batch = await self.executor.execute_tool_calls(active, ready, context_variables)
                history.extend(batch.messages)
                tool_results.extend(batch.executions)
                for call, execution in zip(ready, batch.executions):
                    await _notify(handler.on_tool_call, call, execution)

                if batch.next_agent is not None:
                    logger.debug("Stream handoff from %s to %s", active.name, batch.next_agent.name)
                    active = batch.next_agent
            else:
                logger.debug("Stream round budget of %d exhausted for %s", rounds, agent.name)
        except Exception as e:
            await _notify(handler.on_error, e)
            raise

        if final is None:
            final = next(
                (m for m in reversed(history[start:]) if m.role == Role.ASSISTANT),
                Message(role=Role.ASSISTANT, content="", name=active.name),
            )
        await _notify(handler.on_complete, final)

        return Response(
            messages=history[start:],
            agent=active,
            context_variables=context_variables,
            tool_results=tool_results,
        )

    async def _consume(
        self,
        chunk: StreamChunk,
        assembler: ToolCallAssembler,
        content: list[str],
        handler: StreamHandler,
    ) -> list[ToolCall]:
        """Fold one chunk in. Returns the call that just completed, if any."""
        for choice in chunk.choices[:1]:
            delta = choice.delta
            if delta.content:
                content.append(delta.content)
                await _notify(handler.on_token, delta.content)
            for fragment in delta.tool_calls:
                call = assembler.feed(fragment)
                if call is not None:
                    return [call]
        return []
