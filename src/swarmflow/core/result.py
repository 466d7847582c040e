# result.py - Tool / handoff outcome
#
# A tool callback resolves to exactly one of:
#   - Success(data)          plain outcome, data is shown to the model
#   - Failure(error)         the model sees the error text instead
#   - Handoff(agent, data)   success that also transfers the conversation

from dataclasses import dataclass
from typing import Any, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from ..agent import Agent


@dataclass(frozen=True)
class Success:
    data: Any = None

    @property
    def is_success(self) -> bool:
        return True

    @property
    def next_agent(self) -> None:
        return None

    def to_content(self) -> str:
        return "" if self.data is None else str(self.data)


@dataclass(frozen=True)
class Failure:
    error: Union[BaseException, str]

    @property
    def is_success(self) -> bool:
        return False

    @property
    def next_agent(self) -> None:
        return None

    def to_content(self) -> str:
        return f"Error: {self.error}"


@dataclass(frozen=True)
class Handoff:
    agent: "Agent"
    data: Any = None

    @property
    def is_success(self) -> bool:
        return True

    @property
    def next_agent(self) -> "Agent":
        return self.agent

    def to_content(self) -> str:
        if self.data is not None:
            return str(self.data)
        return f"Handing off to {self.agent.name}"


Result = Union[Success, Failure, Handoff]


def coerce_result(value: Any) -> Result:
    """
    Normalize whatever a tool returned into a Result.

    Results pass through, an Agent becomes a Handoff, an exception
    becomes a Failure, anything else is wrapped in Success.
    """
    from ..agent import Agent

    if isinstance(value, (Success, Failure, Handoff)):
        return value
    if isinstance(value, Agent):
        return Handoff(agent=value)
    if isinstance(value, BaseException):
        return Failure(error=value)
    return Success(data=value)

