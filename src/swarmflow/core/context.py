# context.py - Request Builder
#
# Builds the CompletionRequest for each model call.
# Handles:
#   - Instruction resolution (jinja2 template or callable)
#   - System message prepended when the history carries none
#   - Tool declarations from the agent's function table
#   - Model selection and max_tokens capping

import logging
from typing import Any, Optional, TYPE_CHECKING
from jinja2 import Template, TemplateSyntaxError

from .models import CompletionRequest, Message, Role
from ..config import SwarmConfig
from ..tools.registry import ToolRegistry

if TYPE_CHECKING:
    from ..agent import Agent

logger = logging.getLogger(__name__)


class RequestBuilder:
    def __init__(self, config: Optional[SwarmConfig] = None):
        self.config = config or SwarmConfig()
        self._templates: dict[str, Optional[Template]] = {}

    # --- Instructions ---
    def _template(self, source: str) -> Optional[Template]:
        """Compiled template, or None when the text is not valid jinja2."""
        if source not in self._templates:
            try:
                self._templates[source] = Template(source)
            except TemplateSyntaxError as e:
                logger.debug("Instructions are not a valid template, using them verbatim: %s", e)
                self._templates[source] = None
        return self._templates[source]

    def resolve_instructions(self, agent: "Agent", context_variables: dict[str, Any]) -> str:
        instructions = agent.instructions
        if callable(instructions):
            return str(instructions(context_variables))
        if not instructions:
            return ""
        template = self._template(instructions)
        if template is None:
            return instructions
        return template.render(**context_variables)

    # --- Model selection ---
    def resolve_model(self, agent: "Agent", model_override: str = "") -> str:
        return model_override or agent.model or self.config.default_model

    def max_tokens_for(self, model: str) -> int:
        limit = self.config.token_limit(model)
        if limit is None:
            return self.config.max_tokens
        return min(self.config.max_tokens, limit)

    # =============================================
    # PUBLIC METHODS - Called by the executors
    # =============================================

    def build_messages(
        self,
        agent: "Agent",
        history: list[Message],
        context_variables: dict[str, Any],
    ) -> list[Message]:
        """History with the agent's system message in front (unless one exists)."""
        messages = list(history)
        if not any(m.role == Role.SYSTEM for m in messages):
            messages.insert(0, Message(
                role=Role.SYSTEM,
                content=self.resolve_instructions(agent, context_variables),
            ))
        return messages

    def build(
        self,
        agent: "Agent",
        history: list[Message],
        context_variables: dict[str, Any],
        model_override: str = "",
        include_tools: bool = True,
        stream: bool = False,
    ) -> CompletionRequest:
        model = self.resolve_model(agent, model_override)
        tools = ToolRegistry(agent.functions).declarations() if include_tools else []

        return CompletionRequest(
            model=model,
            messages=self.build_messages(agent, history, context_variables),
            tools=tools,
            max_tokens=self.max_tokens_for(model),
            tool_choice=agent.tool_choice if tools else None,
            parallel_tool_calls=agent.parallel_tool_calls if tools else None,
            stream=stream,
        )
