"""
AgentFlow Workflow Models - Directed-graph workflows and run state

A workflow is a set of typed nodes connected by edges:
- start: entry point, exactly one per workflow
- agent: dispatches a message to a configured agent
- condition / merge / user-approval: bookkeeping nodes
- if-else: named conditions, each bound to one outgoing edge, plus an else edge
- while: repeats a list of step nodes while a condition holds
- end: terminal

Edges may carry an EdgeCondition that gates traversal.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional, Union

from ..constants import ELSE_BRANCH, MAX_WHILE_ITERATIONS, VAR_AGENT_RESPONSE, VAR_INPUT_USER
from ..rules import RuleNode, parse_rule, rule_to_dict

logger = logging.getLogger(__name__)


class NodeType(str, Enum):
    """Type of a workflow node"""
    START = "start"
    AGENT = "agent"
    END = "end"
    CONDITION = "condition"
    MERGE = "merge"
    IF_ELSE = "if-else"
    USER_APPROVAL = "user-approval"
    WHILE = "while"


class EdgeConditionType(str, Enum):
    """Kind of gate on an edge"""
    SHOULD_USE = "shouldUse"  # Rule evaluated against the message
    RESULT = "result"         # Outcome of the previous node
    AUTO = "auto"
    CUSTOM = "custom"         # Script hook, not implemented


class ConditionWhen(str, Enum):
    ALWAYS = "always"
    SUCCESS = "success"
    ERROR = "error"
    CONDITION = "condition"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring invalid timestamp: {value!r}")
        return None


@dataclass
class IfElseCondition:
    """
    One named branch of an if-else node.

    Example:
        IfElseCondition(id="c1", case_name="Wants help", condition="'help' in lower(input_user)")
    """
    id: str
    condition: str = ""
    case_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "condition": self.condition}
        if self.case_name:
            data["caseName"] = self.case_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IfElseCondition":
        return cls(
            id=str(data.get("id", "")),
            condition=data.get("condition") or "",
            case_name=data.get("caseName", data.get("case_name")),
        )


@dataclass
class WhileConfig:
    """Loop settings of a while node (``data.config.while``)"""
    condition: str
    max_iterations: int = MAX_WHILE_ITERATIONS
    steps: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WhileConfig":
        max_iterations = data.get("maxIterations", data.get("max_iterations"))
        if not isinstance(max_iterations, int) or max_iterations <= 0:
            max_iterations = MAX_WHILE_ITERATIONS
        steps = data.get("steps") or []
        if isinstance(steps, str):
            steps = [steps]
        return cls(
            condition=data.get("condition") or "",
            max_iterations=max_iterations,
            steps=[str(s) for s in steps],
        )


@dataclass
class WorkflowNode:
    """
    A node in a workflow graph.

    ``data`` carries the per-type payload (label, condition string,
    if-else conditions, while config). A ``data.type`` naming a known
    node type overrides ``type``.
    """
    id: str
    type: NodeType
    agent_name: Optional[str] = None
    label: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    position: Optional[Dict[str, float]] = None

    @property
    def node_type(self) -> NodeType:
        """Effective node type, honoring a ``data.type`` override"""
        override = self.data.get("type") if self.data else None
        if override:
            try:
                return NodeType(override)
            except ValueError:
                pass
        return self.type

    @property
    def display_name(self) -> str:
        return self.label or self.data.get("label") or self.id

    @property
    def config(self) -> Dict[str, Any]:
        config = self.data.get("config") if self.data else None
        return config if isinstance(config, dict) else {}

    @property
    def if_else_conditions(self) -> List[IfElseCondition]:
        """Named conditions of an if-else node, in declared order"""
        return [
            IfElseCondition.from_dict(c)
            for c in self.config.get("conditions") or []
            if isinstance(c, dict)
        ]

    @property
    def while_config(self) -> Optional[WhileConfig]:
        raw = self.config.get("while")
        if not isinstance(raw, dict):
            return None
        return WhileConfig.from_dict(raw)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type.value}
        if self.agent_name:
            data["agentName"] = self.agent_name
        if self.label:
            data["label"] = self.label
        if self.data:
            data["data"] = dict(self.data)
        if self.position is not None:
            data["position"] = dict(self.position)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowNode":
        node_data = data.get("data") or {}
        raw_type = data.get("type")
        if raw_type not in NodeType._value2member_map_:
            # Editor exports may use a generic node type and keep the real one in data.type
            raw_type = node_data.get("type")
        if raw_type not in NodeType._value2member_map_:
            raise ValueError(f"Node '{data.get('id')}' has unknown type: {data.get('type')!r}")
        return cls(
            id=str(data["id"]),
            type=NodeType(raw_type),
            agent_name=data.get("agentName", data.get("agent_name")),
            label=data.get("label"),
            data=dict(node_data),
            position=data.get("position"),
        )


@dataclass
class EdgeCondition:
    """
    Gate on a workflow edge.

    Example:
        EdgeCondition(type=EdgeConditionType.RESULT, when=ConditionWhen.SUCCESS)
    """
    # Unrecognised types are kept as their raw string and always pass
    type: Union[EdgeConditionType, str]
    rule: Optional[RuleNode] = None
    when: Optional[ConditionWhen] = None
    script: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value if isinstance(self.type, EdgeConditionType) else self.type
        }
        if self.rule is not None:
            data["shouldUseRule"] = rule_to_dict(self.rule)
        if self.when is not None:
            data["when"] = self.when.value
        if self.script:
            data["customScript"] = self.script
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EdgeCondition":
        raw_type = data.get("type")
        try:
            condition_type: Union[EdgeConditionType, str] = EdgeConditionType(raw_type)
        except ValueError:
            logger.warning(f"Unknown edge condition type '{raw_type}', edge will always pass")
            condition_type = str(raw_type)

        rule_data = data.get("shouldUseRule", data.get("rule"))
        when = None
        if data.get("when"):
            try:
                when = ConditionWhen(data["when"])
            except ValueError:
                logger.warning(f"Unknown edge condition 'when' value: {data['when']!r}")

        return cls(
            type=condition_type,
            rule=parse_rule(rule_data) if rule_data is not None else None,
            when=when,
            script=data.get("customScript", data.get("script")),
        )


@dataclass
class WorkflowEdge:
    """
    Connection between two nodes.

    ``condition_id`` binds an edge leaving an if-else node to one of its
    conditions (or to the ``"else"`` branch).
    """
    id: str
    source: str
    target: str
    condition: Optional[EdgeCondition] = None
    condition_id: Optional[str] = None
    label: Optional[str] = None

    @property
    def is_else(self) -> bool:
        return self.condition_id == ELSE_BRANCH

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "source": self.source, "target": self.target}
        if self.condition is not None:
            data["condition"] = self.condition.to_dict()
        if self.condition_id:
            data["conditionId"] = self.condition_id
        if self.label:
            data["label"] = self.label
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowEdge":
        condition = data.get("condition")
        return cls(
            id=str(data["id"]),
            source=str(data["source"]),
            target=str(data["target"]),
            condition=EdgeCondition.from_dict(condition) if isinstance(condition, dict) else None,
            condition_id=data.get("conditionId", data.get("condition_id")),
            label=data.get("label"),
        )


@dataclass
class WorkflowDefinition:
    """
    A complete workflow graph.

    Example:
        WorkflowDefinition(
            id="translate",
            name="Translate",
            nodes=[
                WorkflowNode(id="start", type=NodeType.START),
                WorkflowNode(id="Agent", type=NodeType.AGENT, agent_name="Translator"),
                WorkflowNode(id="end", type=NodeType.END),
            ],
            edges=[
                WorkflowEdge(id="e1", source="start", target="Agent"),
                WorkflowEdge(id="e2", source="Agent", target="end"),
            ],
        )
    """
    id: str
    name: str
    description: str = ""
    version: Optional[str] = None
    nodes: List[WorkflowNode] = field(default_factory=list)
    edges: List[WorkflowEdge] = field(default_factory=list)
    active: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> List[WorkflowEdge]:
        """Edges leaving a node, in declared order"""
        return [e for e in self.edges if e.source == node_id]

    def start_nodes(self) -> List[WorkflowNode]:
        return [n for n in self.nodes if n.node_type == NodeType.START]

    def validate(self) -> List[str]:
        """Validate the graph, returns list of errors"""
        errors = []

        node_ids = set()
        for node in self.nodes:
            if node.id in node_ids:
                errors.append(f"Duplicate node id: '{node.id}'")
            node_ids.add(node.id)
            if node.node_type == NodeType.AGENT and not node.agent_name:
                errors.append(f"Agent node '{node.id}' has no agent_name")
            if node.node_type == NodeType.WHILE:
                config = node.while_config
                if config is None or not config.condition:
                    errors.append(f"While node '{node.id}' has no condition configured")
                if config is not None:
                    for step_id in config.steps:
                        step = self.get_node(step_id)
                        if step is not None and step.node_type == NodeType.WHILE:
                            errors.append(
                                f"While node '{node.id}' cannot run while node '{step_id}' as a step"
                            )

        starts = self.start_nodes()
        if not starts:
            errors.append("Workflow has no start node")
        elif len(starts) > 1:
            errors.append(f"Workflow has {len(starts)} start nodes (expected exactly one)")

        for edge in self.edges:
            if edge.source not in node_ids:
                errors.append(f"Edge '{edge.id}' references unknown source node '{edge.source}'")
            if edge.target not in node_ids:
                errors.append(f"Edge '{edge.id}' references unknown target node '{edge.target}'")

        if len(starts) == 1 and not self.outgoing_edges(starts[0].id):
            errors.append(f"Start node '{starts[0].id}' has no outgoing edges")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "active": self.active,
        }
        if self.version:
            data["version"] = self.version
        if self.created_at:
            data["createdAt"] = self.created_at.isoformat()
        if self.updated_at:
            data["updatedAt"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowDefinition":
        """Build from the plain dict form. Use loader.parse_workflow for editor exports."""
        version = data.get("version")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            description=data.get("description") or "",
            version=str(version) if version is not None else None,
            nodes=[WorkflowNode.from_dict(n) for n in data.get("nodes") or []],
            edges=[WorkflowEdge.from_dict(e) for e in data.get("edges") or []],
            active=bool(data.get("active", False)),
            created_at=_parse_datetime(data.get("createdAt", data.get("created_at"))),
            updated_at=_parse_datetime(data.get("updatedAt", data.get("updated_at"))),
        )


@dataclass
class HistoryEntry:
    """One executed node in a run"""
    node_id: str
    result: Any
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "result": self.result,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ExecutionContext:
    """
    State of a single workflow run.

    Created per run and discarded once the result is returned.
    """
    message: str
    last_node: Optional[str] = None
    last_result: Any = None
    history: List[HistoryEntry] = field(default_factory=list)
    variables: Dict[str, Any] = field(default_factory=dict)
    # Node executions so far, while-loop steps included
    steps: int = 0

    @property
    def last_response(self) -> str:
        """Textual response of the previous node, or empty string"""
        if isinstance(self.last_result, dict):
            response = self.last_result.get("response")
            if response is not None:
                return str(response)
        return ""

    def template_variables(self) -> Dict[str, str]:
        """Reserved template variables for the current point in the run"""
        return {
            VAR_INPUT_USER: self.message or "",
            VAR_AGENT_RESPONSE: self.last_response,
        }

    def record(self, node_id: str, result: Any) -> HistoryEntry:
        """Append a history entry and make it the latest result"""
        entry = HistoryEntry(node_id=node_id, result=result)
        self.history.append(entry)
        self.last_result = result
        self.last_node = node_id
        return entry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "last_node": self.last_node,
            "last_result": self.last_result,
            "history": [h.to_dict() for h in self.history],
            "variables": dict(self.variables),
            "steps": self.steps,
        }


@dataclass
class WorkflowExecutionResult:
    """Outcome of a workflow run. Errors are reported here, never raised."""
    success: bool
    result: Any
    path: List[str]
    context: ExecutionContext
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result,
            "path": list(self.path),
            "context": self.context.to_dict(),
            "error": self.error,
            "error_type": self.error_type,
        }
