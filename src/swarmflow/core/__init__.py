# __init__.py - Core package
from .models import (
    Role, Message, ToolCall, ToolDeclaration, CompletionRequest, CompletionResponse,
    Choice, Usage, StreamChunk, StreamChoice, StreamDelta, ToolCallDelta,
    ToolExecution, Response,
)
from .result import Success, Failure, Handoff, Result, coerce_result
from .cancel import RunContext
from .retry import RetryPolicy, ErrorKind, classify_error
