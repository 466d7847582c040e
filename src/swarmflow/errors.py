# errors.py - Error hierarchy
#
# Every error raised by swarmflow derives from SwarmError and carries a
# stable `code`. The tree follows the failure taxonomy of the engine:
#   - ConfigurationError  (detected before any network call)
#   - ProviderError       (raised by model clients, classified for retry)
#   - StructuralError     (graph routing / cycle failures)
#   - GraphExecutionError (wraps a failure together with the partial state)

from typing import Any, Optional


class SwarmError(Exception):
    """Base class for all swarmflow errors."""

    code = "SWARM_ERROR"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


# ---- Configuration errors ----

class ConfigurationError(SwarmError):
    code = "CONFIGURATION_ERROR"


class NilAgentError(ConfigurationError):
    code = "NIL_AGENT"

    def __init__(self):
        super().__init__("agent cannot be None")


class ClientNotReadyError(ConfigurationError):
    code = "CLIENT_NOT_READY"

    def __init__(self):
        super().__init__("model client is not initialized")


class UnknownNodeError(ConfigurationError):
    code = "UNKNOWN_NODE"

    def __init__(self, node_id: str):
        super().__init__(f"node {node_id} does not exist")
        self.node_id = node_id


class MissingEntryPointError(ConfigurationError):
    code = "MISSING_ENTRY_POINT"

    def __init__(self):
        super().__init__("no entry point defined for graph")


class UnknownAgentError(ConfigurationError):
    code = "UNKNOWN_AGENT"

    def __init__(self, agent_name: str):
        super().__init__(f"agent {agent_name} does not exist")
        self.agent_name = agent_name


class UnknownGraphError(ConfigurationError):
    code = "UNKNOWN_GRAPH"

    def __init__(self, graph_id: str):
        super().__init__(f"graph {graph_id} not found")
        self.graph_id = graph_id


class UnknownProviderError(ConfigurationError):
    code = "UNKNOWN_PROVIDER"

    def __init__(self, provider: str, available: list[str]):
        super().__init__(
            f"unknown provider '{provider}'. Registered: {', '.join(available) or '(none)'}"
        )
        self.provider = provider


# ---- Provider errors ----

class ProviderError(SwarmError):
    """Raised by a model client. Subclasses drive retry classification."""

    code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.provider = provider
        self.status_code = status_code


class RateLimitError(ProviderError):
    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str = "rate limit exceeded",
        provider: str = "",
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, provider, 429)
        self.retry_after = retry_after


class FatalProviderError(ProviderError):
    """Never retried."""

    code = "PROVIDER_FATAL"


class AuthenticationError(FatalProviderError):
    code = "AUTHENTICATION_FAILED"


class ModelNotFoundError(FatalProviderError):
    code = "MODEL_NOT_FOUND"


class InvalidRequestError(FatalProviderError):
    code = "INVALID_REQUEST"


class TransientProviderError(ProviderError):
    code = "PROVIDER_TRANSIENT"


class ProviderTimeoutError(TransientProviderError):
    code = "PROVIDER_TIMEOUT"


class MaxRetriesExceededError(SwarmError):
    code = "MAX_RETRIES_EXCEEDED"

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"max retries exceeded after {attempts} attempts: {last_error}",
            cause=last_error,
        )
        self.attempts = attempts
        self.last_error = last_error


class NoChoicesError(SwarmError):
    code = "NO_CHOICES"

    def __init__(self):
        super().__init__("no choices in model response")


# ---- Streaming ----

class IncompleteToolCallError(SwarmError):
    code = "INCOMPLETE_TOOL_CALL"

    def __init__(self, call_id: str, name: str, arguments: str):
        super().__init__(
            f"stream ended before tool call {call_id} ({name}) was complete: {arguments!r}"
        )
        self.call_id = call_id
        self.name = name
        self.arguments = arguments


# ---- Cancellation ----

class RunCancelledError(SwarmError):
    code = "RUN_CANCELLED"

    def __init__(self, reason: str = "run cancelled"):
        super().__init__(reason)
        self.reason = reason


# ---- Structural errors ----

class StructuralError(SwarmError):
    code = "STRUCTURAL_ERROR"


class NoValidTransitionError(StructuralError):
    code = "NO_VALID_TRANSITION"

    def __init__(self, node_id: str):
        super().__init__(f"no valid transition from node {node_id}")
        self.node_id = node_id


class NoOutgoingEdgesError(StructuralError):
    code = "NO_OUTGOING_EDGES"

    def __init__(self, node_id: str):
        super().__init__(f"node {node_id} has no outgoing edges")
        self.node_id = node_id


class InfiniteLoopError(StructuralError):
    code = "INFINITE_LOOP"

    def __init__(self, node_id: str, visits: int):
        super().__init__(
            f"potential infinite loop detected at node {node_id} ({visits} visits)"
        )
        self.node_id = node_id
        self.visits = visits


class GraphExecutionError(SwarmError):
    """A graph run failed. `state` is what had accumulated before the failure."""

    code = "GRAPH_EXECUTION_FAILED"

    def __init__(
        self,
        message: str,
        state: Any,
        node_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, cause)
        self.state = state
        self.node_id = node_id


# ---- Routing ----

class NoSuitableWorkerError(SwarmError):
    code = "NO_SUITABLE_WORKER"

    def __init__(self, task_type: str):
        super().__init__(f"no suitable worker found for task type: {task_type}")
        self.task_type = task_type


# ---- Workflow ----

class WorkflowSpecError(SwarmError):
    code = "INVALID_WORKFLOW_SPEC"
