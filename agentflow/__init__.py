"""
AgentFlow - Rule-based agent routing and graph workflows for LLM agents

AgentFlow routes chat messages to one of several configured LLM agents and
can chain agents together through editable directed-graph workflows.

Key Features:
- Composable selection rules (keywords, regex, AND/OR, default with exclusion)
- Priority-ordered agent selection with creation/fallback shortcuts
- Workflow graphs with if-else branching, while loops and a step budget
- {{ input_user }} / {{ agent_response }} templates in agent instructions
- YAML configuration with ${VAR} environment substitution
- Built-in LLM client (powered by litellm)

Quick Start:
    from agentflow import AgentFlow

    app = AgentFlow("config.yaml")
    result = await app.chat("fix this code")
    print(result.agent_name, result.response)

Lower-level use:
    from agentflow.agents import AgentRegistry, AgentSelector, YamlAgentStore
    from agentflow.workflow import WorkflowEngine
"""

__version__ = "0.1.0"

from .errors import (
    AgentFlowError,
    ConfigurationError,
    RuleEvaluationError,
    ExecutionLoopError,
    DispatchError,
)
from .rules import parse_rule, evaluate
from .templates import substitute, extract_variables
from .agents import (
    AgentDefinition,
    AgentRole,
    AgentRegistry,
    AgentSelector,
    AgentService,
    AgentCrudError,
    MemoryAgentStore,
    YamlAgentStore,
)
from .workflow import (
    WorkflowDefinition,
    WorkflowEngine,
    WorkflowExecutionResult,
    MemoryWorkflowStore,
    YamlWorkflowStore,
)
from .events import WorkflowEvent, WorkflowEventType, LoggingEventSink, CollectingEventSink
from .llm import LiteLLMClient, LLMAgentProvider
from .app import AgentFlow, ChatResult

__all__ = [
    "__version__",
    # Errors
    "AgentFlowError",
    "ConfigurationError",
    "RuleEvaluationError",
    "ExecutionLoopError",
    "DispatchError",
    # Rules and templates
    "parse_rule",
    "evaluate",
    "substitute",
    "extract_variables",
    # Agents
    "AgentDefinition",
    "AgentRole",
    "AgentRegistry",
    "AgentSelector",
    "AgentService",
    "AgentCrudError",
    "MemoryAgentStore",
    "YamlAgentStore",
    # Workflows
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowExecutionResult",
    "MemoryWorkflowStore",
    "YamlWorkflowStore",
    # Events
    "WorkflowEvent",
    "WorkflowEventType",
    "LoggingEventSink",
    "CollectingEventSink",
    # LLM
    "LiteLLMClient",
    "LLMAgentProvider",
    # App
    "AgentFlow",
    "ChatResult",
]
