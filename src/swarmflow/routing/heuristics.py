# heuristics.py - Keyword routing heuristics
#
# Free-text routing for graph-style workflows:
#   - explicit routing instructions ("route to X", "@X", ...)
#   - task-complete and final-answer markers
#   - content+role message ids
#   - router factories for the supervisor, hierarchical and collaborative
#     strategies, each a plain conditional-edge router over GraphState
#
# Pattern tables are ordered lists so routing is deterministic.

import hashlib
import re
from enum import Enum
from typing import Callable, Optional, Sequence, TYPE_CHECKING

from ..core.models import Message

if TYPE_CHECKING:
    from ..graph.state import GraphState

PROCESSED_KEY = "processed_message_ids"


class TeamType(str, Enum):
    RESEARCH = "research"
    DOCUMENT = "document"
    SUPERVISOR = "supervisor"
    ANALYSIS = "analysis"
    DEVELOPER = "developer"


ROUTING_KEYWORDS = ("route to", "send to", "forward to", "delegate to", "assign to", "@")

ROUTING_PATTERNS = [
    re.compile(r"route to (\w+)", re.IGNORECASE),
    re.compile(r"send to (\w+)", re.IGNORECASE),
    re.compile(r"forward to (\w+)", re.IGNORECASE),
    re.compile(r"delegate to (\w+)", re.IGNORECASE),
    re.compile(r"assign to (\w+)", re.IGNORECASE),
    re.compile(r"@(\w+)"),
]

COMPLETION_KEYWORDS = (
    "task complete", "completed", "finished", "done",
    "task accomplished", "objective achieved", "✓", "✔",
)

FINAL_ANSWER_KEYWORDS = (
    "final answer", "final response", "final solution", "final result",
    "end workflow", "complete workflow", "final:",
)

# Supervisor: classify the request and forward to the matching team
SUPERVISOR_TEAM_PATTERNS: list[tuple[re.Pattern, TeamType]] = [
    (re.compile(r"(research|search|find|look up|scrape|collect)", re.IGNORECASE), TeamType.RESEARCH),
    (re.compile(r"(write|draft|compose|create|document|chart|generate)", re.IGNORECASE), TeamType.DOCUMENT),
    (re.compile(r"(analyze|evaluate|assess|interpret|review|investigate)", re.IGNORECASE), TeamType.ANALYSIS),
    (re.compile(r"(code|develop|implement|program|debug|test|build)", re.IGNORECASE), TeamType.DEVELOPER),
]

# Hierarchical: tool/function talk is handed to a specialised peer
SPECIALIST_PATTERNS: list[tuple[re.Pattern, tuple[str, ...]]] = [
    (re.compile(r"(search|api)", re.IGNORECASE), ("searcher", "web_scraper")),
    (re.compile(r"(write|text)", re.IGNORECASE), ("writer", "note_taker")),
    (re.compile(r"(chart|graph|plot)", re.IGNORECASE), ("chart_generator",)),
    (re.compile(r"(analyze|evaluate|assess)", re.IGNORECASE), ("analyzer", "evaluator")),
    (re.compile(r"(interpret|review|investigate)", re.IGNORECASE), ("reviewer", "investigator")),
    (re.compile(r"(code|program|implement)", re.IGNORECASE), ("developer", "programmer")),
    (re.compile(r"(test|debug|fix)", re.IGNORECASE), ("tester", "debugger")),
    (re.compile(r"(build|deploy|release)", re.IGNORECASE), ("builder", "deployer")),
    (re.compile(r"(optimize|refactor|improve)", re.IGNORECASE), ("optimizer", "refactorer")),
]

Router = Callable[["GraphState"], Optional[str]]


# ---- Keyword helpers ----

def contains_routing_instruction(content: str) -> bool:
    content = content.lower()
    return any(keyword in content for keyword in ROUTING_KEYWORDS)


def extract_routing_agent(content: str) -> str:
    """Agent name named by the first matching routing pattern, or ''."""
    content = content.strip()
    for pattern in ROUTING_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(1)
    return ""


def is_task_complete(content: str) -> bool:
    content = content.lower()
    return any(keyword in content for keyword in COMPLETION_KEYWORDS)


def is_final_answer(content: str) -> bool:
    content = content.lower()
    return any(keyword in content for keyword in FINAL_ANSWER_KEYWORDS)


def message_id(message: Message) -> str:
    """sha256 of "role:content", first 8 bytes as hex."""
    data = f"{message.role.value}:{message.content}".encode("utf-8")
    return hashlib.sha256(data).digest()[:8].hex()


def has_processed(state: "GraphState", agent_name: str, message: Message) -> bool:
    return message_id(message) in (state.get(PROCESSED_KEY) or {}).get(agent_name, ())


def mark_processed(state: "GraphState", agent_name: str, message: Message) -> None:
    """Record that `agent_name` has seen `message`. Copies on write."""
    ledger = {k: list(v) for k, v in (state.get(PROCESSED_KEY) or {}).items()}
    seen = ledger.setdefault(agent_name, [])
    msg_id = message_id(message)
    if msg_id not in seen:
        seen.append(msg_id)
    state[PROCESSED_KEY] = ledger


# ---- Router factories ----

def explicit_router(agent_names: Sequence[str]) -> Router:
    """Honours "route to X" / "@X" in the last message when X is a known agent."""

    def route(state: "GraphState") -> Optional[str]:
        last = state.last_message()
        if last is None or not contains_routing_instruction(last.content):
            return None
        target = extract_routing_agent(last.content)
        return target if target in agent_names else None

    return route


def supervisor_router(
    current: str,
    teams: dict[TeamType, list[str]],
    team_leaders: dict[TeamType, str],
) -> Router:
    """
    The supervisor classifies the request and forwards it to the matching
    team's leader (or first member); everyone else reports back to the
    supervisor.
    """
    supervisor = team_leaders.get(TeamType.SUPERVISOR)

    def route(state: "GraphState") -> Optional[str]:
        if current != supervisor:
            return supervisor
        last = state.last_message()
        if last is None:
            return None
        content = last.content.lower()
        for pattern, team in SUPERVISOR_TEAM_PATTERNS:
            if not pattern.search(content):
                continue
            if team in team_leaders:
                return team_leaders[team]
            if teams.get(team):
                return teams[team][0]
        return None

    return route


def hierarchical_router(
    current: str,
    agent_names: Sequence[str],
    teams: dict[TeamType, list[str]],
    team_leaders: dict[TeamType, str],
) -> Router:
    """
    Completion markers send control up to the team leader (or the
    supervisor); tool/function talk goes to a specialised peer.
    """

    def route(state: "GraphState") -> Optional[str]:
        last = state.last_message()
        if last is None:
            return None

        if is_task_complete(last.content):
            for team, members in teams.items():
                if current in members:
                    leader = team_leaders.get(team)
                    if leader:
                        return leader
                    return "supervisor" if "supervisor" in agent_names else None

        if "function" in last.content or "tool" in last.content:
            for pattern, candidates in SPECIALIST_PATTERNS:
                if not pattern.search(last.content):
                    continue
                for name in candidates:
                    if name in agent_names:
                        return name
        return None

    return route


def collaborative_router(
    current: str,
    agent_names: Sequence[str],
    connections: dict[str, list[str]],
) -> Router:
    """
    Hands the latest message to the first connected peer that has not seen
    it yet; once all peers have, any other agent that has not, unless the
    message is a final answer.
    """

    def route(state: "GraphState") -> Optional[str]:
        last = state.last_message()
        if last is None:
            return None

        for peer in connections.get(current, []):
            if not has_processed(state, peer, last):
                return peer

        if not is_final_answer(last.content):
            for name in agent_names:
                if name != current and not has_processed(state, name, last):
                    return name
        return None

    return route


def first_match(*routers: Router) -> Router:
    """Combine routers: the first one that returns a destination wins."""

    def route(state: "GraphState") -> Optional[str]:
        for router in routers:
            destination = router(state)
            if destination:
                return destination
        return None

    return route
