# __init__.py - Observe package
from .trace import StepResult, WorkflowResult
from .hooks import HookManager, TURN_EVENTS, GRAPH_EVENTS, WORKFLOW_EVENTS

__all__ = [
    "StepResult", "WorkflowResult",
    "HookManager", "TURN_EVENTS", "GRAPH_EVENTS", "WORKFLOW_EVENTS",
]
