# nodes.py - Prefab graph nodes
#
# Ready-made node processes:
#   - agent_process:         run an Agent over state["messages"]
#   - add_router_node:       keyword router over the last message
#   - add_parallel_node:     run several processes on clones, merge results
#   - add_human_input_node:  append a prompt, flag the state as waiting

import asyncio
import inspect
from typing import Any, Optional, TYPE_CHECKING

from .state import GraphState, MESSAGES_KEY, VISITS_KEY
from ..core.cancel import RunContext
from ..core.models import Message, Role
from ..core.result import Failure

if TYPE_CHECKING:
    from .graph import Graph, Node, NodeFunc
    from ..agent import Agent
    from ..core.engine import TurnExecutor

TOOL_RESULTS_KEY = "tool_results"
LAST_AGENT_KEY = "last_agent"
WAITING_FOR_INPUT_KEY = "waiting_for_input"


def _result_value(result) -> Any:
    if isinstance(result, Failure):
        return result.to_content()
    return result.data


def agent_process(executor: "TurnExecutor", agent: "Agent", max_turns: int = 1) -> "NodeFunc":
    """
    Node process that runs `agent` for `max_turns` turns.

    Reads the conversation from `messages` and context variables from
    `var_` keys; writes back the extended conversation, the `var_` keys,
    `tool_results` (tool name -> data) and `last_agent`.
    """

    async def process(ctx: RunContext, state: GraphState) -> GraphState:
        messages = state.messages()
        response = await executor.run(
            agent,
            messages,
            context_variables=state.context_variables(),
            max_turns=max_turns,
            ctx=ctx,
        )

        state.set_messages(messages + response.messages)
        if response.tool_results:
            state[TOOL_RESULTS_KEY] = {
                execution.tool_name: _result_value(execution.result)
                for execution in response.tool_results
            }
        state.set_context_variables(response.context_variables)
        state[LAST_AGENT_KEY] = response.agent.name if response.agent else agent.name
        return state

    return process


def keyword_router(destinations: dict[str, str], default: Optional[str] = None):
    """
    Router over the last message's content.

    The first keyword (in insertion order) found in the lowercased content
    wins; otherwise `default`, or the first destination.
    """
    fallback = default or next(iter(destinations.values()), None)

    def route(state: GraphState) -> Optional[str]:
        last = state.last_message()
        if last is None:
            raise ValueError("no messages to route")
        content = last.content.lower()
        for keyword, node_id in destinations.items():
            if keyword.lower() in content:
                return node_id
        return fallback

    return route


def add_router_node(graph: "Graph", node_id: str, destinations: dict[str, str]) -> "Node":
    """A pass-through node whose outgoing conditional edges route by keyword."""

    def passthrough(ctx: RunContext, state: GraphState) -> GraphState:
        return state

    node = graph.add_node(node_id, f"Router-{node_id}", passthrough)
    route = keyword_router(destinations)
    for target in dict.fromkeys(destinations.values()):
        graph.add_conditional_edge(node_id, target, route)
    return node


def add_parallel_node(graph: "Graph", node_id: str, processes: list["NodeFunc"]) -> "Node":
    """
    A node that runs `processes` concurrently, each on its own clone.

    Results are merged in list order: new messages are concatenated after
    the shared history, other keys are overwritten. Any failure fails the
    node.
    """

    async def run_one(process, ctx: RunContext, state: GraphState) -> GraphState:
        working = state.clone()
        result = process(ctx, working)
        if inspect.isawaitable(result):
            result = await result
        return working if result is None else GraphState(result)

    async def parallel(ctx: RunContext, state: GraphState) -> GraphState:
        results = await asyncio.gather(*(run_one(p, ctx, state) for p in processes))

        base = state.messages()
        merged = state.clone()
        combined = list(base)
        for result in results:
            for key, value in result.items():
                if key in (MESSAGES_KEY, VISITS_KEY):
                    continue
                merged[key] = value
            combined.extend(result.messages()[len(base):])
        merged.set_messages(combined)
        return merged

    return graph.add_node(node_id, f"Parallel-{node_id}", parallel)


def add_human_input_node(graph: "Graph", node_id: str, prompt: str) -> "Node":
    """A node that asks the human for input and marks the state as waiting."""

    def ask(ctx: RunContext, state: GraphState) -> GraphState:
        state.set_messages(state.messages() + [Message(role=Role.ASSISTANT, content=prompt)])
        state[WAITING_FOR_INPUT_KEY] = True
        return state

    return graph.add_node(node_id, f"HumanInput-{node_id}", ask)
