# registry.py - Tool Registry
#
# Collects an agent's functions, validates names, produces the tool
# declarations sent to the model, and routes tool calls to the correct
# function by exact name.

import json
import logging
from typing import Any, Iterable, Optional

from .base import AgentFunction
from ..core.models import ToolCall, ToolDeclaration, ToolExecution
from ..core.result import Failure

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Name -> AgentFunction table for one agent.

    Usage:
        registry = ToolRegistry(agent.functions)
        declarations = registry.declarations()
        execution = await registry.execute_tool_call(tool_call, context_variables)
    """

    def __init__(self, functions: Optional[Iterable[AgentFunction]] = None):
        self._tools: dict[str, AgentFunction] = {}
        if functions:
            self.register_many(functions)

    def register(self, fn: AgentFunction) -> None:
        """Register a function. Raises if name already taken."""
        if fn.name in self._tools:
            raise ValueError(
                f"Tool '{fn.name}' is already registered. "
                f"Each tool must have a unique name."
            )
        self._tools[fn.name] = fn

    def register_many(self, functions: Iterable[AgentFunction]) -> None:
        for fn in functions:
            self.register(fn)

    def get(self, name: str) -> Optional[AgentFunction]:
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    def declarations(self) -> list[ToolDeclaration]:
        return [fn.declaration() for fn in self._tools.values()]

    async def execute_tool_call(
        self,
        tool_call: ToolCall,
        context_variables: dict[str, Any],
    ) -> ToolExecution:
        """
        Route a ToolCall to the matching function.

        Never raises for tool-level problems: an unknown name, undecodable
        arguments, or a failing callback all come back as a Failure so the
        model can see and react to them.
        """
        fn = self._tools.get(tool_call.name)
        if fn is None:
            logger.debug("Tool call for unknown tool %s", tool_call.name)
            return ToolExecution(
                tool_name=tool_call.name,
                args={},
                result=Failure(error=f"Tool {tool_call.name} not found"),
                call_id=tool_call.id,
            )

        try:
            args = tool_call.parse_arguments()
        except (ValueError, json.JSONDecodeError) as e:
            return ToolExecution(
                tool_name=tool_call.name,
                args={},
                result=Failure(error=f"could not parse tool call arguments: {e}"),
                call_id=tool_call.id,
            )

        logger.debug("Executing tool %s with %s", tool_call.name, args)
        result = await fn.execute(args, context_variables)
        return ToolExecution(
            tool_name=tool_call.name,
            args=args,
            result=result,
            call_id=tool_call.id,
        )
