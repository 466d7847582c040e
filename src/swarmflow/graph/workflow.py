# workflow.py - Multi-agent Workflow
#
# The higher-level variant of the graph engine. A Workflow is a set of
# agents (optionally grouped into teams with leaders, optionally connected)
# compiled into a Graph:
#   - one node per agent
#   - one conditional edge per node carrying the strategy router
#     (explicit "route to X" instructions first)
#   - a fallback edge to an internal end node
# Cycles past the visit threshold go through CycleHandling instead of
# failing the run.

import logging
import time
from enum import Enum
from datetime import datetime
from typing import Any, Callable, Optional, TYPE_CHECKING

from .graph import Graph, NodeFunc, STOPPED_KEY
from .state import GraphState
from ..core.cancel import RunContext
from ..core.models import Message, Role
from ..errors import GraphExecutionError, UnknownAgentError
from ..observe.hooks import HookManager, GRAPH_EVENTS, WORKFLOW_EVENTS
from ..observe.trace import StepResult, WorkflowResult
from ..routing.heuristics import (
    TeamType, Router, first_match, explicit_router, supervisor_router,
    hierarchical_router, collaborative_router, mark_processed,
)

if TYPE_CHECKING:
    from ..agent import Agent
    from ..core.engine import TurnExecutor

logger = logging.getLogger(__name__)

END_NODE = "__end__"
AGENT_STATES_KEY = "agent_states"
CURRENT_AGENT_KEY = "current_agent"

CycleCallback = Callable[[str, str], bool]


class WorkflowType(str, Enum):
    COLLABORATIVE = "collaborative"
    SUPERVISOR = "supervisor"
    HIERARCHICAL = "hierarchical"


class CycleHandling(str, Enum):
    STOP = "stop"            # stop and return what was produced so far
    CONTINUE = "continue"    # ask the cycle callback (continue if none)


class Workflow:
    """
    Agents routed by a keyword strategy over the graph engine.

    Usage:
        wf = Workflow(executor, WorkflowType.SUPERVISOR)
        wf.add_agent_to_team(lead, TeamType.SUPERVISOR)
        wf.add_agent_to_team(researcher, TeamType.RESEARCH)
        wf.set_team_leader("lead", TeamType.SUPERVISOR)
        wf.set_team_leader("researcher", TeamType.RESEARCH)

        result = await wf.execute("lead", "research the history of tea")
        print(result.final_text)
    """

    def __init__(
        self,
        executor: "TurnExecutor",
        workflow_type: WorkflowType = WorkflowType.COLLABORATIVE,
        max_steps: int = 50,
        hooks: Optional[HookManager] = None,
    ):
        self.executor = executor
        self.workflow_type = workflow_type
        self.max_steps = max_steps
        self.hooks = hooks or HookManager(WORKFLOW_EVENTS)
        self.agents: dict[str, "Agent"] = {}
        self.connections: dict[str, list[str]] = {}
        self.teams: dict[TeamType, list[str]] = {}
        self.team_leaders: dict[TeamType, str] = {}
        self.cycle_handling = CycleHandling.STOP
        self.cycle_callback: Optional[CycleCallback] = None
        self.current_agent = ""

    # ---- Construction ----

    def _require(self, name: str) -> None:
        if name not in self.agents:
            raise UnknownAgentError(name)

    def add_agent(self, agent: "Agent") -> None:
        self.agents[agent.name] = agent
        self.connections.setdefault(agent.name, [])

    def add_agent_to_team(self, agent: "Agent", team: TeamType) -> None:
        self.add_agent(agent)
        members = self.teams.setdefault(team, [])
        if agent.name not in members:
            members.append(agent.name)

    def set_team_leader(self, agent_name: str, team: TeamType) -> None:
        self._require(agent_name)
        self.team_leaders[team] = agent_name

    def connect_agents(self, from_agent: str, to_agent: str) -> None:
        self._require(from_agent)
        self._require(to_agent)
        self.connections[from_agent].append(to_agent)

    def set_cycle_handling(self, handling: CycleHandling) -> None:
        self.cycle_handling = handling

    def set_cycle_callback(self, callback: CycleCallback) -> None:
        self.cycle_callback = callback

    def on(self, event: str) -> Callable:
        """Register a visualization hook (workflow_start, agent_start, ...)."""
        return self.hooks.on(event)

    # ---- Routing ----

    def router_for(self, agent_name: str) -> Router:
        names = list(self.agents)
        if self.workflow_type == WorkflowType.SUPERVISOR:
            strategy = supervisor_router(agent_name, self.teams, self.team_leaders)
        elif self.workflow_type == WorkflowType.HIERARCHICAL:
            strategy = hierarchical_router(agent_name, names, self.teams, self.team_leaders)
        else:
            strategy = collaborative_router(agent_name, names, self.connections)
        return first_match(explicit_router(names), strategy)

    # ---- Graph compilation ----

    def _agent_vars(self, state: GraphState, name: str) -> dict[str, Any]:
        if self.workflow_type == WorkflowType.COLLABORATIVE:
            return state.context_variables()
        return dict((state.get(AGENT_STATES_KEY) or {}).get(name, {}))

    def _store_vars(self, state: GraphState, name: str, variables: dict[str, Any]) -> None:
        if self.workflow_type == WorkflowType.COLLABORATIVE:
            state.set_context_variables(variables)
            return
        agent_states = dict(state.get(AGENT_STATES_KEY) or {})
        agent_states[name] = dict(variables)
        state[AGENT_STATES_KEY] = agent_states

    def _agent_process(self, name: str, result: WorkflowResult) -> NodeFunc:
        async def process(ctx: RunContext, state: GraphState) -> GraphState:
            agent = self.agents[name]
            messages = state.messages()
            if messages:
                mark_processed(state, name, messages[-1])

            step = StepResult(agent_name=name, step_number=len(result.steps) + 1, input=messages)
            self.current_agent = name
            await self.hooks.emit("agent_start", {"agent": name, "step": step.step_number})

            started = time.monotonic()
            try:
                response = await self.executor.run(
                    agent, messages, context_variables=self._agent_vars(state, name), ctx=ctx,
                )
            except Exception as e:
                step.error = str(e)
                raise
            finally:
                step.end_time = datetime.now().isoformat()
                step.duration_ms = (time.monotonic() - started) * 1000
                result.add_step(step)
                await self.hooks.emit("agent_complete", {
                    "agent": name,
                    "step": step.step_number,
                    "duration_ms": step.duration_ms,
                })

            step.output = response.messages
            self._store_vars(state, name, response.context_variables)
            state.set_messages(messages + response.messages)
            state[CURRENT_AGENT_KEY] = name
            return state

        return process

    def _log_transition(self, result: WorkflowResult, source: str, target: str, reason: str) -> None:
        entry = f"Transition: {source} -> {target} ({reason})"
        result.routing_log.append(entry)
        logger.debug(entry)

    def build_graph(self, start_agent: str, result: WorkflowResult) -> Graph:
        """Compile the agents into a Graph whose run is recorded into `result`."""
        graph = Graph(
            f"workflow-{self.workflow_type.value}",
            executor=self.executor,
            hooks=HookManager(GRAPH_EVENTS),
        )
        for name in self.agents:
            graph.add_node(name, name, self._agent_process(name, result))
            graph.nodes[name].agent = self.agents[name]
        graph.add_node(END_NODE, "End", lambda ctx, state: state)
        graph.add_exit_point(END_NODE)

        for name in self.agents:
            graph.add_conditional_edge(name, END_NODE, self.router_for(name))
            graph.add_fallback_edge(name, END_NODE)
        graph.set_entry_point(start_agent)

        async def on_enter(data: dict[str, Any]) -> None:
            if not result.steps:
                return
            previous = result.steps[-1]
            target = data["node_id"]
            if target == END_NODE:
                self._log_transition(result, previous.agent_name, "end", "workflow complete")
                return
            previous.next_agent = target
            self._log_transition(result, previous.agent_name, target, "routing")
            await self.hooks.emit("message_sent", {
                "from": previous.agent_name,
                "to": target,
                "content": previous.output_text,
            })

        graph.add_event_hook("node_enter", on_enter)
        return graph

    async def _on_cycle(self, result: WorkflowResult, source: Optional[str], target: str, count: int) -> bool:
        source = source or target
        self._log_transition(result, source, target, f"cycle detected ({count} times)")
        await self.hooks.emit("cycle_detected", {"from": source, "to": target, "count": count})

        if self.cycle_handling == CycleHandling.STOP:
            return False
        if self.cycle_callback is None:
            return True
        return bool(self.cycle_callback(source, target))

    # ---- Execution ----

    async def execute(
        self,
        start_agent: str,
        user_request: str,
        ctx: Optional[RunContext] = None,
    ) -> WorkflowResult:
        """
        Run the workflow from `start_agent` on `user_request`.

        Never raises for run failures: a failing agent, an unresolvable
        route or a cycle callback error ends the run with `result.error`
        set and the output accumulated so far in `final_output`.
        """
        self._require(start_agent)
        result = WorkflowResult()
        graph = self.build_graph(start_agent, result)

        await self.hooks.emit("workflow_start", {
            "workflow_type": self.workflow_type.value,
            "agents": list(self.agents),
        })
        self._log_transition(result, "start", start_agent, "workflow initialization")

        state = GraphState()
        state.set_messages([Message(role=Role.USER, content=user_request)])

        async def on_cycle(source: Optional[str], target: str, count: int) -> bool:
            return await self._on_cycle(result, source, target, count)

        try:
            final_state = await graph.execute(state, ctx, on_cycle=on_cycle, max_steps=self.max_steps)
        except GraphExecutionError as e:
            cause = e.cause or e
            logger.debug("Workflow failed at %s: %s", e.node_id, cause)
            result.error = str(cause)
            final_state = GraphState(e.state)

        result.stopped_reason = final_state.get(STOPPED_KEY)
        result.final_output = final_state.messages()
        result.state = dict(final_state)
        result.finalize()

        await self.hooks.emit("workflow_end", result.summary())
        return result
