# capability.py - Capability-scored supervisor/worker routing
#
# A Supervisor owns a pool of Workers. For each request it:
#   1. Infers the task type from keyword hits
#   2. Scores every available worker
#   3. Runs the best one through the turn executor
#   4. Updates the worker's performance record and both memories

import logging
import time
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from ..agent import Agent
from ..core.cancel import RunContext
from ..core.models import Message, Role
from ..errors import NoSuitableWorkerError
from ..storage.base import MemoryEntry

if TYPE_CHECKING:
    from ..core.engine import TurnExecutor

logger = logging.getLogger(__name__)

# Ordered: on equal hit counts the earlier category wins
TASK_TYPE_PATTERNS: list[tuple[str, tuple[str, ...]]] = [
    ("research", ("research", "investigate", "analyze", "study", "find", "search")),
    ("coding", ("code", "program", "function", "algorithm", "implement", "write a program")),
    ("writing", ("write", "compose", "create", "draft", "author")),
    ("analysis", ("analyze", "evaluate", "assess", "review")),
]

GENERAL_TASK = "general"
WORKER_MAX_TURNS = 5

CAPABILITY_WEIGHT = 0.3
SUCCESS_RATE_WEIGHT = 0.2
AVAILABILITY_BONUS = 0.2
ROLE_MATCH_BONUS = 0.3

SUPERVISOR_INSTRUCTIONS = """You are a supervisor agent responsible for:
1. Understanding user requests and breaking them down into tasks
2. Assigning tasks to appropriate worker agents
3. Monitoring task progress and ensuring completion
4. Coordinating between multiple worker agents
5. Providing final results to the user"""


class TaskStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WorkerCapability:
    name: str
    keywords: list[str] = field(default_factory=list)
    priority: int = 1
    description: str = ""

    def matches(self, text: str) -> bool:
        text = text.lower()
        return any(keyword.lower() in text for keyword in self.keywords)


@dataclass
class WorkerPerformance:
    tasks_completed: int = 0
    tasks_failed: int = 0
    average_time: float = 0.0  # seconds
    success_rate: float = 0.0
    last_update_time: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def total_tasks(self) -> int:
        return self.tasks_completed + self.tasks_failed


@dataclass
class Task:
    id: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: str = ""
    messages: list[Message] = field(default_factory=list)
    result: str = ""
    type: str = ""
    priority: int = 0
    attempts: int = 0
    dependencies: list[str] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    completed_at: Optional[str] = None


class Worker:
    """An agent with declared capabilities and a running performance record."""

    def __init__(
        self,
        agent: Agent,
        role: str,
        capabilities: Optional[list[WorkerCapability]] = None,
    ):
        self.agent = agent
        self.role = role
        self.capabilities = list(capabilities or [])
        self.is_available = True
        self.performance = WorkerPerformance()

    @property
    def name(self) -> str:
        return self.agent.name

    def update_performance(self, task: Task, duration: float) -> None:
        """Fold one finished task into the counts, rolling average and success rate."""
        success = task.status == TaskStatus.COMPLETED
        perf = self.performance
        if success:
            perf.tasks_completed += 1
        else:
            perf.tasks_failed += 1

        total = perf.total_tasks
        if perf.average_time == 0:
            perf.average_time = duration
        else:
            perf.average_time = (perf.average_time * (total - 1) + duration) / total
        perf.success_rate = perf.tasks_completed / total
        perf.last_update_time = datetime.now().isoformat()

        if self.agent.memory is not None:
            self.agent.memory.append(MemoryEntry(
                content=(
                    f"Task completed: {task.description}, "
                    f"Duration: {duration:.3f}s, Success: {success}"
                ),
                type="performance_metric",
                context={
                    "task_id": task.id,
                    "duration": duration,
                    "success": success,
                    "total_tasks": total,
                },
                importance=0.6,
            ))

    async def process_task(
        self,
        executor: "TurnExecutor",
        task: Task,
        ctx: Optional[RunContext] = None,
    ) -> None:
        """Run the task through the turn executor. Status ends completed or failed."""
        self.is_available = False
        task.status = TaskStatus.IN_PROGRESS
        task.attempts += 1
        started = time.monotonic()
        try:
            response = await executor.run(
                self.agent,
                task.messages,
                max_turns=WORKER_MAX_TURNS,
                ctx=ctx,
            )
        except Exception:
            task.status = TaskStatus.FAILED
            raise
        else:
            if response.messages:
                task.result = response.messages[-1].content
            task.status = TaskStatus.COMPLETED
        finally:
            self.is_available = True
            task.completed_at = datetime.now().isoformat()
            self.update_performance(task, time.monotonic() - started)


class Supervisor:
    """
    Routes free-text requests to the best-scoring worker.

    Usage:
        supervisor = Supervisor(Agent(name="lead"))
        supervisor.add_worker(Worker(
            Agent(name="dev", functions=[run_tests]),
            role="coding",
            capabilities=[WorkerCapability("implementation", ["implement", "code"], priority=2)],
        ))
        answer = await supervisor.coordinate(executor, "implement a sorting algorithm")
    """

    def __init__(self, agent: Optional[Agent] = None):
        self.agent = agent or Agent(name="supervisor", instructions=SUPERVISOR_INSTRUCTIONS)
        self.workers: dict[str, Worker] = {}
        self.task_history: list[Task] = []

    def add_worker(self, worker: Worker) -> None:
        self.workers[worker.name] = worker

    # ---- Scoring ----

    @staticmethod
    def analyze_task_type(description: str) -> str:
        description = description.lower()
        best_type, best_hits = GENERAL_TASK, 0
        for task_type, keywords in TASK_TYPE_PATTERNS:
            hits = sum(1 for keyword in keywords if keyword in description)
            if hits > best_hits:
                best_type, best_hits = task_type, hits
        return best_type

    def score_worker(self, worker: Worker, task: Task) -> float:
        score = 0.0
        for capability in worker.capabilities:
            if capability.matches(task.description):
                score += capability.priority * CAPABILITY_WEIGHT

        perf = worker.performance
        if perf.tasks_completed > 0:
            score += perf.tasks_completed / perf.total_tasks * SUCCESS_RATE_WEIGHT

        if worker.is_available:
            score += AVAILABILITY_BONUS

        if worker.role == task.type:
            score += ROLE_MATCH_BONUS
        return score

    def route_task(self, task: Task) -> Worker:
        """Pick the highest-scoring available worker (first added wins ties)."""
        task.type = self.analyze_task_type(task.description)

        best: Optional[Worker] = None
        best_score = 0.0
        for worker in self.workers.values():
            if not worker.is_available:
                continue
            score = self.score_worker(worker, task)
            logger.debug("Worker %s scored %.2f for %s task", worker.name, score, task.type)
            if score > best_score:
                best, best_score = worker, score

        if best is None:
            raise NoSuitableWorkerError(task.type)
        return best

    # ---- Coordination ----

    def _remember(self, entry: MemoryEntry) -> None:
        if self.agent.memory is not None:
            self.agent.memory.append(entry)

    async def coordinate(
        self,
        executor: "TurnExecutor",
        request: str,
        ctx: Optional[RunContext] = None,
    ) -> str:
        """Create a task for `request`, route it, run it, and return the worker's answer."""
        task = Task(
            id=f"task_{len(self.task_history)}",
            description=request,
            messages=[Message(role=Role.USER, content=request)],
        )

        worker = self.route_task(task)
        task.assigned_to = worker.name
        task.status = TaskStatus.ASSIGNED
        self.task_history.append(task)

        try:
            await worker.process_task(executor, task, ctx)
        except Exception as e:
            self._remember(MemoryEntry(
                content=f"Task failed: {task.description}, Error: {e}",
                type="task_error",
                context={"task_id": task.id, "error": str(e)},
                importance=0.8,
            ))
            raise

        self._remember(MemoryEntry(
            content=f"Task completed successfully: {task.description}",
            type="task_completion",
            context={"task_id": task.id},
            importance=0.7,
        ))
        return task.result
