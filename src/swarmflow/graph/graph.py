# graph.py - Workflow Graph Engine
#
# A directed graph of nodes threading a GraphState from an entry point to
# an exit point. Each step:
#   1. Check cancellation
#   2. Count the visit (> VISIT_THRESHOLD -> infinite loop / cycle handler)
#   3. Run the node against a clone of the state
#   4. Exit point -> done
#   5. Resolve the next node from the outgoing edges

import inspect
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union, TYPE_CHECKING

from .state import GraphState, VISITS_KEY
from ..core.cancel import RunContext
from ..errors import (
    UnknownNodeError, MissingEntryPointError, ClientNotReadyError,
    UnknownGraphError, StructuralError, NoValidTransitionError,
    NoOutgoingEdgesError, InfiniteLoopError, GraphExecutionError,
)
from ..observe.hooks import HookManager, GRAPH_EVENTS

if TYPE_CHECKING:
    from ..agent import Agent
    from ..core.engine import TurnExecutor

logger = logging.getLogger(__name__)

# process(ctx, state) -> new state (None means "the state I was given")
NodeFunc = Callable[[RunContext, GraphState], Union[Optional[GraphState], Awaitable[Optional[GraphState]]]]

# router(state) -> destination node id, or None/"" for "no match"
RouterFunc = Callable[[GraphState], Optional[str]]

# on_cycle(from_node, to_node, visits) -> True to keep going (may be a coroutine)
CycleHandler = Callable[[Optional[str], str, int], Union[bool, Awaitable[bool]]]

STOPPED_KEY = "stopped_reason"


class EdgeType(str, Enum):
    STANDARD = "standard"        # always taken
    CONDITIONAL = "condition"    # router picks the destination
    FALLBACK = "fallback"        # only when nothing else matched


@dataclass
class Node:
    id: str
    name: str
    process: NodeFunc
    agent: Optional["Agent"] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Edge:
    source: str
    target: str
    type: EdgeType = EdgeType.STANDARD
    router: Optional[RouterFunc] = None


class Graph:
    """
    Nodes, edges, one entry point and any number of exit points.

    Topology is fixed once execute() starts; build everything first.

    Usage:
        graph = Graph("support", executor=TurnExecutor(client))
        graph.add_agent_node("triage", "Triage", triage_agent)
        graph.add_agent_node("billing", "Billing", billing_agent)
        graph.add_conditional_edge("triage", "billing", route_by_keyword)
        graph.set_entry_point("triage")
        graph.add_exit_point("billing")

        state = await graph.execute(GraphState({"messages": [...]}))
    """

    VISIT_THRESHOLD = 10

    def __init__(
        self,
        name: str,
        description: str = "",
        executor: Optional["TurnExecutor"] = None,
        hooks: Optional[HookManager] = None,
    ):
        self.id = str(uuid.uuid4())[:8]
        self.name = name
        self.description = description
        self.executor = executor
        self.hooks = hooks or HookManager(GRAPH_EVENTS)
        self.nodes: dict[str, Node] = {}
        self.edges: dict[str, list[Edge]] = {}
        self.entry_point: Optional[str] = None
        self.exit_points: list[str] = []

    # ---- Construction ----

    def _require(self, node_id: str) -> None:
        if node_id not in self.nodes:
            raise UnknownNodeError(node_id)

    def add_node(self, node_id: str, name: str, process: NodeFunc) -> Node:
        node = Node(id=node_id, name=name, process=process)
        self.nodes[node_id] = node
        return node

    def add_agent_node(self, node_id: str, name: str, agent: "Agent", max_turns: int = 1) -> Node:
        """A node that runs `agent` through the turn executor over state['messages']."""
        from .nodes import agent_process

        if self.executor is None:
            raise ClientNotReadyError()
        node = self.add_node(node_id, name, agent_process(self.executor, agent, max_turns))
        node.agent = agent
        return node

    def _add_edge(self, edge: Edge) -> Edge:
        self._require(edge.source)
        self._require(edge.target)
        self.edges.setdefault(edge.source, []).append(edge)
        return edge

    def add_directed_edge(self, source: str, target: str) -> Edge:
        return self._add_edge(Edge(source, target, EdgeType.STANDARD))

    def add_conditional_edge(self, source: str, target: str, router: RouterFunc) -> Edge:
        return self._add_edge(Edge(source, target, EdgeType.CONDITIONAL, router))

    def add_fallback_edge(self, source: str, target: str) -> Edge:
        return self._add_edge(Edge(source, target, EdgeType.FALLBACK))

    def set_entry_point(self, node_id: str) -> None:
        self._require(node_id)
        self.entry_point = node_id

    def add_exit_point(self, node_id: str) -> None:
        self._require(node_id)
        if node_id not in self.exit_points:
            self.exit_points.append(node_id)

    def add_event_hook(self, event: str, hook: Callable[[dict[str, Any]], Any]) -> None:
        self.hooks.register(event, hook)

    # ---- Transitions ----

    def resolve_next(self, node_id: str, state: GraphState) -> str:
        """
        Pick the next node from `node_id`'s outgoing edges.

        Standard and conditional edges are tried in declaration order;
        a router that raises, returns nothing, or names an unknown node
        does not match. Fallback edges apply only if nothing matched.
        """
        edges = self.edges.get(node_id)
        if not edges:
            raise NoOutgoingEdgesError(node_id)

        for edge in edges:
            if edge.type == EdgeType.STANDARD:
                return edge.target
            if edge.type == EdgeType.CONDITIONAL and edge.router is not None:
                try:
                    destination = edge.router(state)
                except Exception as e:
                    logger.debug("Router on %s -> %s did not match: %s", node_id, edge.target, e)
                    continue
                if not destination:
                    continue
                if destination not in self.nodes:
                    logger.warning("Router on %s returned unknown node %s", node_id, destination)
                    continue
                return destination

        for edge in edges:
            if edge.type == EdgeType.FALLBACK:
                return edge.target

        raise NoValidTransitionError(node_id)

    # ---- Execution ----

    async def _process(self, node: Node, ctx: RunContext, state: GraphState) -> GraphState:
        working = state.clone()
        result = node.process(ctx, working)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return working
        if not isinstance(result, GraphState):
            result = GraphState(result)
        if VISITS_KEY not in result:
            result[VISITS_KEY] = state.visit_ledger()
        return result

    async def execute(
        self,
        initial_state: Optional[dict[str, Any]] = None,
        ctx: Optional[RunContext] = None,
        on_cycle: Optional[CycleHandler] = None,
        max_steps: Optional[int] = None,
    ) -> GraphState:
        """
        Run the graph from the entry point until an exit point.

        Without `on_cycle`, a node entered more than VISIT_THRESHOLD times
        fails the run with InfiniteLoopError. With it, the handler decides:
        True resets that node's counter and continues, False stops and
        returns the state so far (with `stopped_reason` set).

        Raises:
            MissingEntryPointError: no entry point was set
            GraphExecutionError: any failure during the run; `.state` holds
                the state accumulated before the failing node
        """
        if self.entry_point is None:
            raise MissingEntryPointError()

        ctx = ctx or RunContext()
        state = GraphState(initial_state or {})
        current = self.entry_point
        previous: Optional[str] = None
        steps = 0

        await self.hooks.emit("graph_start", {"graph": self.name, "state": state})

        while True:
            try:
                ctx.raise_if_cancelled()

                if max_steps is not None and steps >= max_steps:
                    logger.debug("Graph %s stopped after %d steps", self.name, steps)
                    state[STOPPED_KEY] = "max_steps"
                    return state

                visits = state.visit(current)
                if visits > self.VISIT_THRESHOLD:
                    if on_cycle is None:
                        raise InfiniteLoopError(current, visits)
                    decision = on_cycle(previous, current, visits)
                    if inspect.isawaitable(decision):
                        decision = await decision
                    if not decision:
                        state[STOPPED_KEY] = "cycle"
                        return state
                    state.reset_visits(current)
                    state.visit(current)
            except Exception as e:
                await self.hooks.emit("node_error", {"node_id": current, "error": e, "state": state})
                raise GraphExecutionError(str(e), state, current, cause=e) from e

            node = self.nodes[current]
            await self.hooks.emit("node_enter", {"node_id": current, "state": state})
            try:
                new_state = await self._process(node, ctx, state)
            except Exception as e:
                await self.hooks.emit("node_error", {"node_id": current, "error": e, "state": state})
                raise GraphExecutionError(
                    f"error processing node {current}: {e}", state, current, cause=e,
                ) from e

            state = new_state
            steps += 1
            await self.hooks.emit("node_exit", {"node_id": current, "state": state})

            if current in self.exit_points:
                await self.hooks.emit("graph_complete", {"graph": self.name, "state": state})
                return state

            try:
                next_node = self.resolve_next(current, state)
            except StructuralError as e:
                await self.hooks.emit("node_error", {"node_id": current, "error": e, "state": state})
                raise GraphExecutionError(str(e), state, current, cause=e) from e

            logger.debug("Graph %s: %s -> %s", self.name, current, next_node)
            previous, current = current, next_node


class GraphBuilder:
    """
    Fluent construction.

    Usage:
        graph = (
            GraphBuilder("pipeline", executor=executor)
            .with_node("clean", "Clean", clean)
            .with_agent("summarize", "Summarize", summarizer)
            .with_edge("clean", "summarize")
            .with_entry_point("clean")
            .with_exit_point("summarize")
            .build()
        )
    """

    def __init__(self, name: str, description: str = "", executor: Optional["TurnExecutor"] = None):
        self.graph = Graph(name, description, executor=executor)

    def build(self) -> Graph:
        return self.graph

    def with_agent(self, node_id: str, name: str, agent: "Agent") -> "GraphBuilder":
        self.graph.add_agent_node(node_id, name, agent)
        return self

    def with_node(self, node_id: str, name: str, process: NodeFunc) -> "GraphBuilder":
        self.graph.add_node(node_id, name, process)
        return self

    def with_edge(self, source: str, target: str) -> "GraphBuilder":
        self.graph.add_directed_edge(source, target)
        return self

    def with_conditional_edge(self, source: str, target: str, router: RouterFunc) -> "GraphBuilder":
        self.graph.add_conditional_edge(source, target, router)
        return self

    def with_fallback_edge(self, source: str, target: str) -> "GraphBuilder":
        self.graph.add_fallback_edge(source, target)
        return self

    def with_entry_point(self, node_id: str) -> "GraphBuilder":
        self.graph.set_entry_point(node_id)
        return self

    def with_exit_point(self, node_id: str) -> "GraphBuilder":
        self.graph.add_exit_point(node_id)
        return self


class GraphRunner:
    """Registry of graphs, executed by id."""

    def __init__(self):
        self._graphs: dict[str, Graph] = {}

    def register_graph(self, graph: Graph) -> None:
        self._graphs[graph.id] = graph

    def get(self, graph_id: str) -> Optional[Graph]:
        return self._graphs.get(graph_id)

    async def execute_graph(
        self,
        graph_id: str,
        initial_state: Optional[dict[str, Any]] = None,
        ctx: Optional[RunContext] = None,
    ) -> GraphState:
        graph = self._graphs.get(graph_id)
        if graph is None:
            raise UnknownGraphError(graph_id)
        return await graph.execute(initial_state, ctx)
