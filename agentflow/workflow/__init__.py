"""
AgentFlow Workflow - Directed-graph workflows that chain agents

Node types: start, agent, end, condition, merge, if-else, user-approval, while.

Example usage:
    from agentflow.workflow import WorkflowEngine, WorkflowLoader

    loader = WorkflowLoader()
    loader.load_from_file("workflows.yaml")

    engine = WorkflowEngine(registry=registry, provider=provider)
    result = await engine.run(loader.active, "hello")
    print(result.path, result.result)
"""

from .models import (
    NodeType,
    EdgeConditionType,
    ConditionWhen,
    IfElseCondition,
    WhileConfig,
    WorkflowNode,
    EdgeCondition,
    WorkflowEdge,
    WorkflowDefinition,
    HistoryEntry,
    ExecutionContext,
    WorkflowExecutionResult,
)
from .loader import (
    WorkflowLoader,
    WorkflowLoadError,
    WorkflowValidationError,
    parse_workflow,
    resolve_condition_id,
)
from .conditions import (
    evaluate_edge_condition,
    ExpressionConditionEvaluator,
    LLMConditionEvaluator,
)
from .executor import WorkflowEngine
from .store import (
    BaseWorkflowStore,
    MemoryWorkflowStore,
    YamlWorkflowStore,
    WorkflowNotFoundError,
    slugify,
)

__all__ = [
    # Models
    "NodeType",
    "EdgeConditionType",
    "ConditionWhen",
    "IfElseCondition",
    "WhileConfig",
    "WorkflowNode",
    "EdgeCondition",
    "WorkflowEdge",
    "WorkflowDefinition",
    "HistoryEntry",
    "ExecutionContext",
    "WorkflowExecutionResult",
    # Loader
    "WorkflowLoader",
    "WorkflowLoadError",
    "WorkflowValidationError",
    "parse_workflow",
    "resolve_condition_id",
    # Conditions
    "evaluate_edge_condition",
    "ExpressionConditionEvaluator",
    "LLMConditionEvaluator",
    # Engine
    "WorkflowEngine",
    # Store
    "BaseWorkflowStore",
    "MemoryWorkflowStore",
    "YamlWorkflowStore",
    "WorkflowNotFoundError",
    "slugify",
]
