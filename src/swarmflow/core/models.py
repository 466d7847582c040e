# models.py - All data structures shared by the engine
#
# Contains:
#   - Message          (role + content + tool calls)
#   - ToolCall         (id + name + raw JSON arguments)
#   - ToolDeclaration  (what the model is told about a tool)
#   - CompletionRequest / CompletionResponse / Choice / Usage
#   - StreamChunk / StreamChoice / StreamDelta / ToolCallDelta
#   - ToolExecution    (record of one executed tool call)
#   - Response         (what a turn-executor run returns)

import json
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Any, TYPE_CHECKING
from pydantic import BaseModel, Field

from .result import Result

if TYPE_CHECKING:
    from ..agent import Agent


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# ------ LLM INTERFACE STRUCTURES ------
class ToolCall(BaseModel):
    id: str = ""
    type: str = "function"
    name: str
    arguments: str = ""

    def parse_arguments(self) -> dict[str, Any]:
        """Decode the argument buffer. Raises ValueError if it is not a JSON object."""
        raw = self.arguments.strip() or "{}"
        args = json.loads(raw)
        if not isinstance(args, dict):
            raise ValueError(f"expected a JSON object, got {type(args).__name__}")
        return args

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }


class Message(BaseModel):
    role: Role
    content: str = ""
    name: Optional[str] = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.name:
            data["name"] = self.name
        if self.tool_calls:
            data["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data


class ToolDeclaration(BaseModel):
    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class CompletionRequest(BaseModel):
    model: str
    messages: list[Message]
    tools: list[ToolDeclaration] = Field(default_factory=list)
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: list[str] = Field(default_factory=list)
    tool_choice: Optional[str] = None
    parallel_tool_calls: Optional[bool] = None
    stream: bool = False


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Choice(BaseModel):
    index: int = 0
    message: Message
    finish_reason: Optional[str] = None


class CompletionResponse(BaseModel):
    id: str = ""
    choices: list[Choice] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)


# ------ STREAMING STRUCTURES ------
class ToolCallDelta(BaseModel):
    index: int = 0
    id: str = ""
    type: str = "function"
    name: str = ""
    arguments: str = ""


class StreamDelta(BaseModel):
    role: Optional[Role] = None
    content: str = ""
    tool_calls: list[ToolCallDelta] = Field(default_factory=list)


class StreamChoice(BaseModel):
    index: int = 0
    delta: StreamDelta = Field(default_factory=StreamDelta)
    finish_reason: Optional[str] = None


class StreamChunk(BaseModel):
    id: str = ""
    choices: list[StreamChoice] = Field(default_factory=list)


# ------ INTERNAL STRUCTURES ------
@dataclass
class ToolExecution:
    """One executed tool call: what was asked and what came back."""
    tool_name: str
    args: dict[str, Any]
    result: Result
    call_id: str = ""

    @property
    def content(self) -> str:
        """Text shown to the model as the tool message."""
        return self.result.to_content()


@dataclass
class Response:
    """Result of a turn-executor run. `messages` holds only the new messages."""
    messages: list[Message] = field(default_factory=list)
    agent: Optional["Agent"] = None
    context_variables: dict[str, Any] = field(default_factory=dict)
    tool_results: list[ToolExecution] = field(default_factory=list)

    @property
    def last_content(self) -> str:
        for msg in reversed(self.messages):
            if msg.role == Role.ASSISTANT and msg.content:
                return msg.content
        return ""
