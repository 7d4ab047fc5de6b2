"""
AgentFlow Workflow Loader - Load and validate workflow graphs from YAML/JSON

This module handles:
1. Loading workflow definitions from YAML or JSON files
2. Translating editor (React Flow) edge conventions into explicit condition ids
3. Validating workflow structure
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple, Union
import yaml

from ..constants import ELSE_BRANCH
from ..errors import AgentFlowError, ConfigurationError
from .models import NodeType, WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowLoadError(AgentFlowError):
    """Raised when a workflow file cannot be read or parsed"""
    pass


class WorkflowValidationError(ConfigurationError):
    """Raised when a workflow fails validation"""
    pass


def _if_else_condition_ids(node_data: Dict[str, Any]) -> List[str]:
    """Condition ids declared by a raw if-else node dict"""
    inner = node_data.get("data") or {}
    config = inner.get("config") or {}
    return [str(c["id"]) for c in config.get("conditions") or [] if isinstance(c, dict) and c.get("id")]


def _is_if_else(node_data: Dict[str, Any]) -> bool:
    inner = node_data.get("data") or {}
    return NodeType.IF_ELSE.value in (node_data.get("type"), inner.get("type"))


def resolve_condition_id(edge_data: Dict[str, Any], condition_ids: List[str]) -> Optional[str]:
    """
    Work out which if-else branch an editor edge belongs to.

    Editor exports encode the branch in ``sourceHandle`` (``condition-<id>``,
    ``source-condition-<id>``, ``else``, ``source-else``) or in the edge id
    (``reactflow__edge-<node>source-condition-<id>``).
    """
    explicit = edge_data.get("conditionId", edge_data.get("condition_id"))
    if explicit:
        return str(explicit)

    handle = str(edge_data.get("sourceHandle") or "")
    edge_id = str(edge_data.get("id") or "")

    for condition_id in condition_ids:
        handles = (condition_id, f"condition-{condition_id}", f"source-condition-{condition_id}")
        if handle in handles:
            return condition_id

    # Longest ids first so "c10" is not claimed by "c1"
    for condition_id in sorted(condition_ids, key=len, reverse=True):
        if f"source-condition-{condition_id}" in edge_id or f"source-{condition_id}" in edge_id:
            return condition_id

    if handle in (ELSE_BRANCH, f"source-{ELSE_BRANCH}") or f"source-{ELSE_BRANCH}" in edge_id:
        return ELSE_BRANCH

    return None


def parse_workflow(data: Dict[str, Any], validate: bool = False) -> WorkflowDefinition:
    """
    Parse a single workflow dict (plain or editor export) into a WorkflowDefinition.

    Args:
        data: Workflow dict with id, name, nodes and edges
        validate: Raise WorkflowValidationError if the graph is invalid

    Raises:
        WorkflowLoadError: If the dict is malformed
        WorkflowValidationError: If validate is set and the graph is invalid
    """
    if not isinstance(data, dict):
        raise WorkflowLoadError(f"Workflow entry must be a mapping, got {type(data).__name__}")
    if not data.get("id"):
        raise WorkflowLoadError("Workflow entry is missing 'id'")

    nodes_data = data.get("nodes") or []
    edges_data = data.get("edges") or []

    conditions_by_node: Dict[str, List[str]] = {}
    for node_data in nodes_data:
        if isinstance(node_data, dict) and _is_if_else(node_data):
            conditions_by_node[str(node_data.get("id"))] = _if_else_condition_ids(node_data)

    normalized_edges = []
    for edge_data in edges_data:
        if not isinstance(edge_data, dict):
            raise WorkflowLoadError(f"Workflow '{data['id']}': edge entry must be a mapping")
        edge_data = dict(edge_data)
        source = str(edge_data.get("source"))
        if source in conditions_by_node:
            condition_id = resolve_condition_id(edge_data, conditions_by_node[source])
            if condition_id:
                edge_data["conditionId"] = condition_id
        normalized_edges.append(edge_data)

    try:
        workflow = WorkflowDefinition.from_dict({**data, "edges": normalized_edges})
    except (KeyError, TypeError, ValueError) as e:
        raise WorkflowLoadError(f"Workflow '{data['id']}' is malformed: {e}")

    if validate:
        errors = workflow.validate()
        if errors:
            raise WorkflowValidationError(
                f"Workflow '{workflow.id}' validation failed: {'; '.join(errors)}"
            )

    return workflow


def parse_workflow_file_data(data: Any, source: str = "<dict>") -> Tuple[List[WorkflowDefinition], Optional[str]]:
    """
    Parse the content of a workflows file.

    Accepts ``{"workflows": [...], "activeWorkflowId": ...}``, a bare list of
    workflows, or a single workflow dict.

    Returns:
        (workflows, active_workflow_id)
    """
    if not data:
        return [], None

    active_id = None
    if isinstance(data, dict) and "workflows" in data:
        workflows_data = data.get("workflows") or []
        active_id = data.get("activeWorkflowId", data.get("active_workflow_id"))
    elif isinstance(data, list):
        workflows_data = data
    else:
        workflows_data = [data]

    workflows = []
    for entry in workflows_data:
        try:
            workflows.append(parse_workflow(entry))
        except WorkflowLoadError as e:
            raise WorkflowLoadError(f"Error loading workflow from {source}: {e}")

    return workflows, (str(active_id) if active_id else None)


def read_workflow_file(file_path: Union[str, Path]) -> Any:
    """Read a YAML or JSON workflows file (JSON is valid YAML)"""
    file_path = Path(file_path)

    if not file_path.exists():
        raise WorkflowLoadError(f"Workflow file not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise WorkflowLoadError(f"Invalid YAML/JSON in {file_path}: {e}")


class WorkflowLoader:
    """
    Loads and validates workflow definitions.

    Example usage:
        loader = WorkflowLoader()
        loader.load_from_file("workflows.yaml")

        workflow = loader.get("translate")
        active = loader.active
    """

    def __init__(self):
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self.active_workflow_id: Optional[str] = None

    def load_from_file(self, file_path: Union[str, Path]) -> List[WorkflowDefinition]:
        """
        Load workflows from a YAML or JSON file.

        Raises:
            WorkflowLoadError: If file cannot be read or parsed
            WorkflowValidationError: If a workflow definition is invalid
        """
        data = read_workflow_file(file_path)
        return self._load(data, source=str(file_path))

    def load_from_dict(self, data: Any, source: str = "<dict>") -> List[WorkflowDefinition]:
        """Load workflows from already-parsed data"""
        return self._load(data, source)

    def _load(self, data: Any, source: str) -> List[WorkflowDefinition]:
        workflows, active_id = parse_workflow_file_data(data, source)

        for workflow in workflows:
            errors = workflow.validate()
            if errors:
                raise WorkflowValidationError(
                    f"Workflow '{workflow.id}' from {source} validation failed: {'; '.join(errors)}"
                )
            self._workflows[workflow.id] = workflow

        if active_id:
            self.active_workflow_id = active_id

        logger.info(f"Loaded {len(workflows)} workflow(s) from {source}")
        return workflows

    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """Get a workflow by ID"""
        return self._workflows.get(workflow_id)

    def get_all(self) -> List[WorkflowDefinition]:
        """Get all loaded workflows"""
        return list(self._workflows.values())

    @property
    def active(self) -> Optional[WorkflowDefinition]:
        if not self.active_workflow_id:
            return None
        return self._workflows.get(self.active_workflow_id)

    def __len__(self) -> int:
        return len(self._workflows)

    def __contains__(self, workflow_id: str) -> bool:
        return workflow_id in self._workflows
