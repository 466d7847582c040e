# agent.py - Agent definition
#
# The developer-facing unit of work:
#
#   from swarmflow import Agent, tool
#
#   @tool()
#   def lookup_order(order_id: str) -> str:
#       """Fetch an order by id."""
#       ...
#
#   support = Agent(
#       name="support",
#       instructions="You help customers with {{ customer_name }}'s orders.",
#       functions=[lookup_order],
#   )
#
#   response = await TurnExecutor(client).run(support, messages)

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .errors import ConfigurationError
from .tools.base import AgentFunction, BaseTool
from .storage.base import MemoryStore, InMemoryMemoryStore

Instructions = Union[str, Callable[[dict[str, Any]], str]]

DEFAULT_INSTRUCTIONS = "You are a helpful agent."


@dataclass(eq=False)
class Agent:
    """
    A named bundle of instructions, a model id and callable tools.

    Args:
        name: Identity used in handoffs, graph nodes and dispatcher results
        model: Model id; empty means "use the configured default"
        instructions: Either a jinja2 template string rendered against the
            context variables, or a callable taking the context variables.
            Text that does not parse as jinja2 is sent verbatim
        functions: Tools the model may call (AgentFunction or BaseTool)
        tool_choice: Forwarded to the provider ("auto", "none", ...)
        parallel_tool_calls: Run the tool calls of one turn concurrently
        memory: Store that receives tool outcomes (None disables recording)
    """
    name: str
    model: str = ""
    instructions: Instructions = DEFAULT_INSTRUCTIONS
    functions: list[AgentFunction] = field(default_factory=list)
    tool_choice: Optional[str] = None
    parallel_tool_calls: bool = False
    memory: Optional[MemoryStore] = field(default_factory=InMemoryMemoryStore)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Agent name cannot be empty.")
        functions = []
        names = set()
        for fn in self.functions:
            if isinstance(fn, BaseTool):
                functions.append(fn.to_function())
            elif isinstance(fn, AgentFunction):
                functions.append(fn)
            else:
                raise TypeError(
                    f"Expected AgentFunction or BaseTool, got {type(fn).__name__}. "
                    f"Did you forget to use the @tool decorator?"
                )
            if functions[-1].name in names:
                raise ConfigurationError(
                    f"Agent '{self.name}' has more than one tool named '{functions[-1].name}'."
                )
            names.add(functions[-1].name)
        self.functions = functions

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, model={self.model!r})"
