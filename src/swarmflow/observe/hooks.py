# hooks.py - Event Hook System
#
# Lets developers plug into lifecycle events of the turn executor, the
# graph engine and the workflow layer. Hooks are observability only:
# their return values are ignored and their errors never reach the run.
#
# Usage:
#   hooks = HookManager(GRAPH_EVENTS)
#
#   @hooks.on("node_exit")
#   async def log_node(data):
#       print(f"{data['node_id']} done")

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

# Type alias for hook callbacks (sync or async)
HookCallback = Callable[[dict[str, Any]], Any]

TURN_EVENTS = frozenset({"turn_start", "tool_called", "handoff", "turn_end"})

GRAPH_EVENTS = frozenset({
    "graph_start", "node_enter", "node_exit", "node_error", "graph_complete",
})

WORKFLOW_EVENTS = frozenset({
    "workflow_start", "agent_start", "agent_complete",
    "message_sent", "cycle_detected", "workflow_end",
})


class HookManager:
    """
    Event system for lifecycle hooks.

    `valid_events` fixes the set of event names this manager accepts;
    registering for anything else is a ValueError. Emitting an unknown
    event is a no-op.
    """

    def __init__(self, valid_events: Optional[Iterable[str]] = None):
        self.valid_events = frozenset(valid_events or TURN_EVENTS | GRAPH_EVENTS | WORKFLOW_EVENTS)
        self._hooks: dict[str, list[HookCallback]] = {
            event: [] for event in self.valid_events
        }

    def _check(self, event: str) -> None:
        if event not in self.valid_events:
            raise ValueError(
                f"Unknown event '{event}'. "
                f"Valid events: {', '.join(sorted(self.valid_events))}"
            )

    def on(self, event: str) -> Callable:
        """
        Decorator to register an event hook.

        Usage:
            @hooks.on("graph_complete")
            async def my_handler(data):
                print(data)
        """
        self._check(event)

        def decorator(fn: HookCallback) -> HookCallback:
            self._hooks[event].append(fn)
            return fn

        return decorator

    def register(self, event: str, callback: HookCallback) -> None:
        """Register a hook callback programmatically."""
        self._check(event)
        self._hooks[event].append(callback)

    def has_hooks(self, event: str) -> bool:
        return bool(self._hooks.get(event))

    async def _invoke(self, callback: HookCallback, data: dict[str, Any]) -> None:
        value = callback(data)
        if inspect.isawaitable(value):
            await value

    async def emit(self, event: str, data: dict[str, Any]) -> None:
        """
        Emit an event, calling all registered hooks.
        Hooks are called concurrently. Errors in hooks are caught
        and logged, never propagated.
        """
        callbacks = self._hooks.get(event)
        if not callbacks:
            return

        results = await asyncio.gather(
            *(self._invoke(cb, data) for cb in callbacks),
            return_exceptions=True
        )

        for result in results:
            if isinstance(result, Exception):
                logger.warning(
                    "Hook error on '%s': %s: %s",
                    event, type(result).__name__, result,
                )
