# routing - Who handles this next?
from .heuristics import (
    TeamType,
    contains_routing_instruction, extract_routing_agent,
    is_task_complete, is_final_answer, message_id,
    explicit_router, supervisor_router, hierarchical_router, collaborative_router,
)
from .capability import (
    TaskStatus, Task, Worker, WorkerCapability, WorkerPerformance, Supervisor,
)

__all__ = [
    "TeamType",
    "contains_routing_instruction", "extract_routing_agent",
    "is_task_complete", "is_final_answer", "message_id",
    "explicit_router", "supervisor_router", "hierarchical_router", "collaborative_router",
    "TaskStatus", "Task", "Worker", "WorkerCapability", "WorkerPerformance", "Supervisor",
]
