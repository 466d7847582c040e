# swarmflow - Multi-agent orchestration over LLM tool calling
#
#   from swarmflow import Agent, TurnExecutor, tool
#   from swarmflow.llm import OpenAIAdapter, LLMConfig
#
#   executor = TurnExecutor(OpenAIAdapter(LLMConfig(api_key="...")))
#   response = await executor.run(agent, messages)

from .errors import (
    SwarmError, ConfigurationError, NilAgentError, ClientNotReadyError,
    UnknownNodeError, MissingEntryPointError, UnknownAgentError,
    UnknownGraphError, UnknownProviderError, ProviderError, RateLimitError,
    FatalProviderError, AuthenticationError, ModelNotFoundError,
    InvalidRequestError, TransientProviderError, ProviderTimeoutError,
    MaxRetriesExceededError, NoChoicesError, IncompleteToolCallError,
    RunCancelledError, StructuralError, NoValidTransitionError,
    NoOutgoingEdgesError, InfiniteLoopError, GraphExecutionError,
    NoSuitableWorkerError, WorkflowSpecError,
)
from .config import SwarmConfig, RateLimitStrategy
from .core import (
    Role, Message, ToolCall, ToolDeclaration, CompletionRequest, CompletionResponse,
    Choice, Usage, StreamChunk, StreamChoice, StreamDelta, ToolCallDelta,
    ToolExecution, Response,
    Success, Failure, Handoff, Result,
    RunContext, RetryPolicy, ErrorKind, classify_error,
)
from .agent import Agent
from .tools import tool, AgentFunction, BaseTool, ToolParam, ToolRegistry
from .core.context import RequestBuilder
from .core.engine import TurnExecutor
from .core.streaming import StreamAssembler, StreamHandler, ToolCallAssembler
from .core.concurrent import ConcurrentDispatcher, AgentConfig, ConcurrentResult
from .llm import ModelClient, CompletionStream, LLMConfig, OpenAIAdapter, ProviderRegistry
from .storage import MemoryEntry, MemoryStore, InMemoryMemoryStore
from .observe import HookManager, StepResult, WorkflowResult
from .graph import (
    GraphState, Graph, GraphBuilder, GraphRunner, Node, Edge, EdgeType,
    Workflow, WorkflowType, CycleHandling, DynamicWorkflowCreator,
)
from .routing import TeamType, Supervisor, Worker, WorkerCapability, Task, TaskStatus

__version__ = "0.1.0"
