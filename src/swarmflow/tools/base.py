# base.py - Tool Definition System
#
# Provides:
#   - AgentFunction: uniform internal representation of a tool
#   - @tool decorator: wraps plain typed functions into AgentFunction
#   - BaseTool: abstract class for tools with setup/teardown lifecycle

import asyncio
import inspect
import typing
from typing import Any, Callable, Optional
from dataclasses import dataclass
from abc import ABC, abstractmethod

from ..core.models import ToolDeclaration
from ..core.result import Result, Failure, coerce_result

# Name of the parameter that receives the shared context variables
CONTEXT_PARAM = "context_variables"

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


@dataclass
class ToolParam:
    """Describes a single parameter of a tool."""
    name: str
    type_hint: str
    description: str = ""
    required: bool = True
    default: Any = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type_hint}
        if self.description:
            schema["description"] = self.description
        if not self.required and self.default is not None:
            schema["default"] = self.default
        return schema


def params_to_schema(params: list[ToolParam]) -> dict[str, Any]:
    """Build a JSON-schema `object` from a parameter list."""
    return {
        "type": "object",
        "properties": {p.name: p.to_schema() for p in params},
        "required": [p.name for p in params if p.required],
    }


class AgentFunction:
    """
    A tool an agent can call.

    `function` receives the decoded arguments dict and the shared context
    variables, and returns a Result (or any value, an Agent, or raises).
    Both sync and async callables are accepted.

    Usage:
        def transfer_to_sales(args, context_variables):
            return Handoff(sales_agent)

        fn = AgentFunction(
            name="transfer_to_sales",
            description="Hand the conversation to the sales agent",
            function=transfer_to_sales,
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        function: Callable[[dict[str, Any], dict[str, Any]], Any],
        parameters: Optional[dict[str, Any]] = None,
    ):
        if not name:
            raise ValueError("Tool name cannot be empty.")
        self.name = name
        self.description = description
        self.function = function
        self.parameters = parameters or {"type": "object", "properties": {}}

    def declaration(self) -> ToolDeclaration:
        return ToolDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    async def execute(
        self,
        args: dict[str, Any],
        context_variables: dict[str, Any],
    ) -> Result:
        """Run the callback. Exceptions become Failure results, never propagate."""
        try:
            value = self.function(args, context_variables)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            return Failure(error=e)
        return coerce_result(value)

    def __repr__(self) -> str:
        return f"AgentFunction(name={self.name!r})"


def _json_type(hint: Any) -> str:
    origin = typing.get_origin(hint)
    if origin is typing.Union:
        # Optional[X] -> X
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return _json_type(args[0])
        return "string"
    if origin is not None:
        hint = origin
    return _JSON_TYPES.get(hint, "string")


def _extract_params(fn: Callable) -> list[ToolParam]:
    """Extract parameters from a function's signature and type hints."""
    sig = inspect.signature(fn)
    try:
        hints = typing.get_type_hints(fn)
    except (NameError, TypeError):
        hints = getattr(fn, "__annotations__", {})
    params = []

    for param_name, param in sig.parameters.items():
        if param_name in ("self", CONTEXT_PARAM):
            continue
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue

        has_default = param.default is not inspect.Parameter.empty
        params.append(ToolParam(
            name=param_name,
            type_hint=_json_type(hints.get(param_name, str)),
            required=not has_default,
            default=param.default if has_default else None,
        ))

    return params


def _bind(fn: Callable, wants_context: bool) -> Callable[[dict, dict], Any]:
    def call(args: dict[str, Any], context_variables: dict[str, Any]) -> Any:
        kwargs = dict(args)
        if wants_context:
            kwargs[CONTEXT_PARAM] = context_variables
        return fn(**kwargs)

    return call


def tool(description: str = "", name: Optional[str] = None):
    """
    Decorator that wraps a plain function into an AgentFunction.

    Parameters become a JSON schema derived from the signature. A
    parameter named `context_variables` is not advertised to the model;
    it receives the shared context dict instead.

    Description priority:
        1. Explicit description parameter (if provided)
        2. Function's docstring
        3. Raises ValueError (no description = model can't understand the tool)

    Usage:
        @tool()
        def get_weather(city: str, unit: str = "c") -> str:
            \"\"\"Look up the current weather for a city.\"\"\"
            ...
    """
    MAX_DESCRIPTION_LENGTH = 1024

    def decorator(fn: Callable) -> AgentFunction:
        resolved = description or inspect.cleandoc(fn.__doc__ or "")
        if not resolved:
            raise ValueError(
                f"Tool '{fn.__name__}' has no description. "
                f"Add a docstring or pass description to @tool()."
            )
        if len(resolved) > MAX_DESCRIPTION_LENGTH:
            resolved = resolved[:MAX_DESCRIPTION_LENGTH] + "..."

        wants_context = CONTEXT_PARAM in inspect.signature(fn).parameters
        return AgentFunction(
            name=name or fn.__name__,
            description=resolved,
            function=_bind(fn, wants_context),
            parameters=params_to_schema(_extract_params(fn)),
        )

    return decorator


class BaseTool(ABC):
    """
    Abstract base for tools that need setup/teardown or carry state.

    Usage:
        class LookupOrder(BaseTool):
            name = "lookup_order"
            description = "Fetch an order by id"
            params = [ToolParam("order_id", "string")]

            async def setup(self):
                self.db = await connect_db()

            async def run(self, args, context_variables):
                return await self.db.fetch(args["order_id"])

        agent = Agent(name="support", functions=[LookupOrder().to_function()])
    """
    name: str = ""
    description: str = ""
    params: list[ToolParam] = []

    _ready: bool = False
    _setup_lock: Optional[asyncio.Lock] = None

    async def setup(self) -> None:
        """Called once, before the first run. Override for initialization."""
        pass

    @abstractmethod
    async def run(self, args: dict[str, Any], context_variables: dict[str, Any]) -> Any:
        """Execute the tool. Must be implemented by subclasses."""
        ...

    async def teardown(self) -> None:
        """Called by aclose() after a successful setup. Override for cleanup."""
        pass

    async def aclose(self) -> None:
        """Release the tool. A later call runs setup again."""
        if self._ready:
            self._ready = False
            await self.teardown()

    async def _call(self, args: dict[str, Any], context_variables: dict[str, Any]) -> Any:
        if not self._ready:
            if self._setup_lock is None:
                self._setup_lock = asyncio.Lock()
            async with self._setup_lock:
                if not self._ready:
                    await self.setup()
                    self._ready = True
        return await self.run(args, context_variables)

    def to_function(self) -> AgentFunction:
        """Convert to AgentFunction for use on an Agent."""
        return AgentFunction(
            name=self.name,
            description=self.description,
            function=self._call,
            parameters=params_to_schema(list(self.params)),
        )
