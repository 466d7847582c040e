# engine.py - Turn Executor
#
# The single-agent turn loop. This is the HEART of swarmflow.
# Each turn, in sequence:
#   1. Build the request (RequestBuilder)
#   2. Call the model through the retry policy (RetryPolicy)
#   3. No tool calls -> done
#   4. Execute tool calls (ToolRegistry), fold tool messages into history
#   5. Switch agent on handoff
#   6. Follow-up request WITHOUT tools -> non-empty answer ends the loop
#   7. Record tool outcomes in the agent's memory, emit hooks

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, TYPE_CHECKING

from .models import (
    CompletionRequest, CompletionResponse, Message, Response, Role,
    ToolCall, ToolExecution,
)
from .context import RequestBuilder
from .retry import RetryPolicy
from .cancel import RunContext
from ..config import SwarmConfig
from ..errors import NilAgentError, ClientNotReadyError, NoChoicesError
from ..observe.hooks import HookManager, TURN_EVENTS
from ..storage.base import MemoryEntry
from ..tools.registry import ToolRegistry

if TYPE_CHECKING:
    from ..agent import Agent
    from ..llm.base import ModelClient

logger = logging.getLogger(__name__)


def tool_message(execution: ToolExecution) -> Message:
    """The tool-role message that reports one execution back to the model."""
    return Message(
        role=Role.TOOL,
        content=execution.content,
        name=execution.tool_name,
        tool_call_id=execution.call_id,
    )


def record_tool_memory(agent: "Agent", execution: ToolExecution) -> None:
    """Append a tool outcome to the agent's memory. Never raises."""
    if agent.memory is None:
        return
    try:
        agent.memory.append(MemoryEntry(
            content=f"Tool {execution.tool_name}: {execution.content}",
            type="tool_execution",
            context={
                "agent": agent.name,
                "tool": execution.tool_name,
                "success": execution.result.is_success,
            },
        ))
    except Exception as e:
        logger.warning("Could not record tool outcome for %s: %s", agent.name, e)


@dataclass
class ToolBatch:
    """Everything one turn's tool calls produced."""
    messages: list[Message] = field(default_factory=list)
    executions: list[ToolExecution] = field(default_factory=list)
    next_agent: Optional["Agent"] = None


class TurnExecutor:
    """
    Runs one agent through one or more turns against a model client.

    Usage:
        executor = TurnExecutor(OpenAIAdapter(LLMConfig(api_key="...")))
        response = await executor.run(agent, [Message(role="user", content="hi")])
        print(response.last_content)
    """

    def __init__(
        self,
        client: Optional["ModelClient"],
        config: Optional[SwarmConfig] = None,
        hooks: Optional[HookManager] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.config = config or SwarmConfig()
        self.hooks = hooks or HookManager(TURN_EVENTS)
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config)
        self.builder = RequestBuilder(self.config)

    # ---- Model calls ----

    def check_ready(self, agent: Optional["Agent"]) -> None:
        """Precondition checks. Raised before any network call."""
        if agent is None:
            raise NilAgentError()
        if self.client is None:
            raise ClientNotReadyError()

    async def complete(self, request: CompletionRequest, ctx: RunContext) -> Message:
        """One model call through the retry policy. Returns the first choice's message."""
        logger.debug(
            "Requesting completion: model=%s messages=%d tools=%d",
            request.model, len(request.messages), len(request.tools),
        )
        response: CompletionResponse = await self.retry_policy.call(
            lambda: self.client.create_completion(request),
            ctx,
            description=f"completion ({request.model})",
        )
        if not response.choices:
            raise NoChoicesError()
        return response.choices[0].message

    # ---- Tool execution ----

    async def _execute_one(
        self,
        agent: "Agent",
        registry: ToolRegistry,
        call: ToolCall,
        context_variables: dict[str, Any],
    ) -> ToolExecution:
        execution = await registry.execute_tool_call(call, context_variables)
        record_tool_memory(agent, execution)
        await self.hooks.emit("tool_called", {
            "agent": agent.name,
            "tool": execution.tool_name,
            "args": execution.args,
            "success": execution.result.is_success,
        })
        return execution

    async def execute_tool_calls(
        self,
        agent: "Agent",
        tool_calls: list[ToolCall],
        context_variables: dict[str, Any],
    ) -> ToolBatch:
        """
        Execute the tool calls of one turn.

        Sequential in emission order unless the agent allows parallel tool
        calls; then results are folded in completion order. Either way only
        the first handoff is honored.
        """
        registry = ToolRegistry(agent.functions)
        batch = ToolBatch()

        def fold(execution: ToolExecution) -> None:
            batch.executions.append(execution)
            batch.messages.append(tool_message(execution))
            next_agent = execution.result.next_agent
            if next_agent is not None and batch.next_agent is None:
                batch.next_agent = next_agent

        if agent.parallel_tool_calls and len(tool_calls) > 1:
            tasks = [
                asyncio.ensure_future(self._execute_one(agent, registry, call, context_variables))
                for call in tool_calls
            ]
            try:
                for next_done in asyncio.as_completed(tasks):
                    fold(await next_done)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
        else:
            for call in tool_calls:
                fold(await self._execute_one(agent, registry, call, context_variables))

        return batch

    # ---- The loop ----

    async def run(
        self,
        agent: "Agent",
        messages: list[Message],
        context_variables: Optional[dict[str, Any]] = None,
        model_override: str = "",
        max_turns: Optional[int] = None,
        execute_tools: bool = True,
        ctx: Optional[RunContext] = None,
    ) -> Response:
        """
        Run the turn loop.

        Args:
            agent: Starting agent
            messages: Conversation so far (not mutated)
            context_variables: Shared variables; the run works on a copy
            model_override: Model id that beats agent.model
            max_turns: Turn budget (defaults to config.max_turns, at least 1)
            execute_tools: False leaves tool calls for the caller
            ctx: Cancellation context

        Returns:
            Response with only the newly generated messages, the active
            agent, the final context variables and every tool execution.
        """
        self.check_ready(agent)
        ctx = ctx or RunContext()
        context_variables = dict(context_variables or {})
        turns = max(1, max_turns if max_turns is not None else self.config.max_turns)

        active = agent
        history = list(messages)
        start = len(history)
        tool_results: list[ToolExecution] = []

        for turn in range(turns):
            ctx.raise_if_cancelled()
            await self.hooks.emit("turn_start", {"agent": active.name, "turn": turn + 1})

            request = self.builder.build(active, history, context_variables, model_override)
            message = await self.complete(request, ctx)
            message.name = message.name or active.name
            history.append(message)

            if not message.tool_calls or not execute_tools:
                await self.hooks.emit("turn_end", {"agent": active.name, "turn": turn + 1})
                break

            batch = await self.execute_tool_calls(active, message.tool_calls, context_variables)
            history.extend(batch.messages)
            tool_results.extend(batch.executions)

            if batch.next_agent is not None:
                logger.debug("Handoff from %s to %s", active.name, batch.next_agent.name)
                await self.hooks.emit("handoff", {
                    "from": active.name,
                    "to": batch.next_agent.name,
                })
                active = batch.next_agent

            # Follow-up without tools so the model answers in prose
            follow_up_request = self.builder.build(
                active, history, context_variables, model_override, include_tools=False,
            )
            follow_up = await self.complete(follow_up_request, ctx)
            await self.hooks.emit("turn_end", {"agent": active.name, "turn": turn + 1})

            if follow_up.content:
                follow_up.name = follow_up.name or active.name
                follow_up.tool_calls = []
                history.append(follow_up)
                break
        else:
            logger.debug("Turn budget of %d exhausted for %s", turns, agent.name)

        return Response(
            messages=history[start:],
            agent=active,
            context_variables=context_variables,
            tool_results=tool_results,
        )
