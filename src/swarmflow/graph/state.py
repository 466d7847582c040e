# state.py - Graph State
#
# The state bag threaded through a graph run. A plain dict with:
#   - clone()          shallow copy handed to each node
#   - typed getters    get_str / get_bool
#   - message helpers  messages() / set_messages()
#   - visit ledger     per-node visit counters, copied on write so a clone
#                      never shares counters with its parent

from typing import Any, Optional

from ..core.models import Message

MESSAGES_KEY = "messages"
VISITS_KEY = "_visits"
CONTEXT_PREFIX = "var_"


class GraphState(dict):
    """
    Mapping of str -> Any threaded through graph nodes.

    Usage:
        state = GraphState({"phase": "intake"})
        state.set_messages([Message(role="user", content="hi")])
        result = await graph.execute(state)
        print(result.get_str("phase"), result.visits("intake"))
    """

    def clone(self) -> "GraphState":
        return GraphState(self)

    def update_state(self, updates: dict[str, Any]) -> None:
        self.update(updates)

    # ---- Typed getters ----

    def get_str(self, key: str, default: str = "") -> str:
        value = self.get(key)
        return value if isinstance(value, str) else default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        return value if isinstance(value, bool) else default

    # ---- Messages ----

    def messages(self) -> list[Message]:
        """Conversation stored under `messages`, decoded from dicts if needed."""
        raw = self.get(MESSAGES_KEY) or []
        return [m if isinstance(m, Message) else Message.model_validate(m) for m in raw]

    def set_messages(self, messages: list[Message]) -> None:
        self[MESSAGES_KEY] = list(messages)

    def last_message(self) -> Optional[Message]:
        messages = self.messages()
        return messages[-1] if messages else None

    # ---- Context variables ----

    def context_variables(self) -> dict[str, Any]:
        """`var_`-prefixed keys with the prefix stripped."""
        return {
            key[len(CONTEXT_PREFIX):]: value
            for key, value in self.items()
            if key.startswith(CONTEXT_PREFIX)
        }

    def set_context_variables(self, variables: dict[str, Any]) -> None:
        for key, value in variables.items():
            self[CONTEXT_PREFIX + key] = value

    # ---- Visit ledger ----

    def visit(self, node_id: str) -> int:
        """Count one more entry into `node_id`. Returns the new count."""
        ledger = dict(self.get(VISITS_KEY) or {})
        ledger[node_id] = ledger.get(node_id, 0) + 1
        self[VISITS_KEY] = ledger
        return ledger[node_id]

    def visits(self, node_id: str) -> int:
        return (self.get(VISITS_KEY) or {}).get(node_id, 0)

    def visit_ledger(self) -> dict[str, int]:
        return dict(self.get(VISITS_KEY) or {})

    def reset_visits(self, node_id: str) -> None:
        ledger = dict(self.get(VISITS_KEY) or {})
        ledger.pop(node_id, None)
        self[VISITS_KEY] = ledger
