# trace.py - Workflow Trace Collector
#
# Records every step of a workflow run for:
#   - Debugging
#   - Performance analysis
#   - Returning partial output when a run stops early

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Any

from ..core.models import Message


@dataclass
class StepResult:
    """One agent step inside a workflow run."""
    agent_name: str
    step_number: int
    input: list[Message] = field(default_factory=list)
    output: list[Message] = field(default_factory=list)
    next_agent: Optional[str] = None
    error: Optional[str] = None
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())
    end_time: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def output_text(self) -> str:
        return self.output[-1].content if self.output else ""


@dataclass
class WorkflowResult:
    """Complete trace of a workflow run."""
    steps: list[StepResult] = field(default_factory=list)
    final_output: list[Message] = field(default_factory=list)
    error: Optional[str] = None
    stopped_reason: Optional[str] = None
    routing_log: list[str] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())
    end_time: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def final_text(self) -> str:
        return self.final_output[-1].content if self.final_output else ""

    def add_step(self, step: StepResult) -> None:
        self.steps.append(step)

    def finalize(self) -> None:
        """Mark the run as finished."""
        self.end_time = datetime.now().isoformat()

    def summary(self) -> dict:
        """Return a summary of the run for logging/display."""
        return {
            "steps": len(self.steps),
            "agents": [s.agent_name for s in self.steps],
            "final_output": self.final_text[:100],
            "error": self.error,
            "stopped_reason": self.stopped_reason,
            "start": self.start_time,
            "end": self.end_time,
        }
