# dynamic.py - Dynamic Workflow Creator
#
# Lets a planner agent design the workflow:
#   1. Ask the analyzer agent for a JSON workflow specification
#   2. Extract the outermost {...} and validate it (pydantic)
#   3. Build a Workflow, inheriting tools/model from registered base agents
#   4. Execute it from the declared entry point

import json
import logging
from typing import Optional, TYPE_CHECKING
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .workflow import Workflow, WorkflowType
from ..agent import Agent
from ..core.cancel import RunContext
from ..core.models import Message, Role
from ..errors import WorkflowSpecError
from ..observe.trace import WorkflowResult

if TYPE_CHECKING:
    from ..core.engine import TurnExecutor

logger = logging.getLogger(__name__)

ANALYZER_INSTRUCTIONS = """You are a specialized agent that analyzes user tasks and determines the optimal workflow structure.
Your job is to:
1. Identify the main goal of the user's task
2. Break down the task into logical sub-tasks
3. Determine which agent types would be needed (research, writing, analysis, coding, etc.)
4. Suggest a workflow structure (collaborative, hierarchical, or supervisor-based)
5. Define the agent relationships and data flow

Output your analysis in the following JSON format:
{
  "mainGoal": "Brief description of the overall goal",
  "workflowType": "collaborative|hierarchical|supervisor",
  "agents": [
    {
      "name": "AgentName",
      "role": "Brief description of agent role",
      "instructions": "Detailed instructions for this agent",
      "model": "Recommended model (e.g., gpt-4o, gpt-4o-mini, etc.)",
      "connections": ["AgentName1", "AgentName2"]
    }
  ],
  "dataFlow": [
    {"from": "AgentName1", "to": "AgentName2", "description": "What data/results are passed"}
  ],
  "entryPoint": "Name of the agent that should start the workflow"
}"""


class AgentSpec(BaseModel):
    name: str = Field(min_length=1)
    role: str = ""
    instructions: str = ""
    model: str = ""
    connections: list[str] = Field(default_factory=list)


class DataFlowSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")
    description: str = ""


class WorkflowSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    main_goal: str = Field(alias="mainGoal", min_length=1)
    workflow_type: WorkflowType = Field(alias="workflowType")
    agents: list[AgentSpec] = Field(min_length=1)
    data_flow: list[DataFlowSpec] = Field(default_factory=list, alias="dataFlow")
    entry_point: str = Field(alias="entryPoint", min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _lowercase_type(cls, data):
        if isinstance(data, dict) and isinstance(data.get("workflowType"), str):
            data = {**data, "workflowType": data["workflowType"].strip().lower()}
        return data

    @model_validator(mode="after")
    def _check_references(self) -> "WorkflowSpec":
        names = {agent.name for agent in self.agents}
        if self.entry_point not in names:
            raise ValueError("entry point agent does not exist in the agent list")
        for agent in self.agents:
            for connection in agent.connections:
                if connection not in names:
                    raise ValueError(
                        f"agent {agent.name} has connection to non-existent agent {connection}"
                    )
        return self


def extract_workflow_spec(text: str) -> WorkflowSpec:
    """Parse and validate the outermost JSON object in `text`."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise WorkflowSpecError("could not find valid JSON in the response")

    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise WorkflowSpecError(f"error parsing JSON specification: {e}", cause=e) from e

    try:
        return WorkflowSpec.model_validate(data)
    except ValidationError as e:
        raise WorkflowSpecError(f"invalid workflow specification: {e}", cause=e) from e


class DynamicWorkflowCreator:
    """
    Usage:
        creator = DynamicWorkflowCreator(executor)
        creator.register_base_agent("Researcher", Agent(name="Researcher", functions=[web_search]))
        result = await creator.create_and_execute("Compare the top three vector databases")
    """

    def __init__(
        self,
        executor: "TurnExecutor",
        planner_model: str = "gpt-4o",
        analyzer: Optional[Agent] = None,
    ):
        self.executor = executor
        self.planner_model = planner_model
        self.analyzer = analyzer or Agent(
            name="TaskAnalyzer",
            instructions=ANALYZER_INSTRUCTIONS,
            model=planner_model,
        )
        self.base_agents: dict[str, Agent] = {}

    def register_base_agent(self, name: str, agent: Agent) -> None:
        self.base_agents[name] = agent

    async def create_spec(self, user_task: str, ctx: Optional[RunContext] = None) -> WorkflowSpec:
        """Ask the analyzer for a workflow design. Tools are never executed here."""
        messages = [Message(
            role=Role.USER,
            content=f"Analyze the following task and design an optimal workflow: {user_task}",
        )]
        response = await self.executor.run(
            self.analyzer,
            messages,
            model_override=self.planner_model,
            max_turns=1,
            execute_tools=False,
            ctx=ctx,
        )
        spec = extract_workflow_spec(response.last_content)
        logger.debug(
            "Planned %s workflow with %d agents: %s",
            spec.workflow_type.value, len(spec.agents), spec.main_goal,
        )
        return spec

    def build_workflow(self, spec: WorkflowSpec) -> Workflow:
        workflow = Workflow(self.executor, spec.workflow_type)

        for agent_spec in spec.agents:
            base = self.base_agents.get(agent_spec.name)
            workflow.add_agent(Agent(
                name=agent_spec.name,
                instructions=agent_spec.instructions or (base.instructions if base else ""),
                model=agent_spec.model or (base.model if base else ""),
                functions=list(base.functions) if base else [],
            ))

        for agent_spec in spec.agents:
            for connection in agent_spec.connections:
                workflow.connect_agents(agent_spec.name, connection)
        return workflow

    async def create_and_execute(self, user_task: str, ctx: Optional[RunContext] = None) -> WorkflowResult:
        spec = await self.create_spec(user_task, ctx)
        workflow = self.build_workflow(spec)
        return await workflow.execute(spec.entry_point, user_task, ctx)
