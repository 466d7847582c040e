# __init__.py - Graph package
from .state import GraphState
from .graph import Graph, GraphBuilder, GraphRunner, Node, Edge, EdgeType
from .nodes import agent_process, keyword_router, add_router_node, add_parallel_node, add_human_input_node
from .workflow import Workflow, WorkflowType, CycleHandling
from .dynamic import DynamicWorkflowCreator, WorkflowSpec, AgentSpec, DataFlowSpec, extract_workflow_spec

__all__ = [
    "GraphState",
    "Graph", "GraphBuilder", "GraphRunner", "Node", "Edge", "EdgeType",
    "agent_process", "keyword_router", "add_router_node", "add_parallel_node", "add_human_input_node",
    "Workflow", "WorkflowType", "CycleHandling",
    "DynamicWorkflowCreator", "WorkflowSpec", "AgentSpec", "DataFlowSpec", "extract_workflow_spec",
]
