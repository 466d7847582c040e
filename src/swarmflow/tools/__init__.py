# __init__.py - Tools package
from .base import tool, AgentFunction, BaseTool, ToolParam, params_to_schema
from .registry import ToolRegistry

__all__ = ["tool", "AgentFunction", "BaseTool", "ToolParam", "params_to_schema", "ToolRegistry"]
