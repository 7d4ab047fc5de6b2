"""
AgentFlow Workflow Store - Persistence and CRUD for workflow definitions

Implementations of WorkflowStoreProtocol:
- MemoryWorkflowStore: in-process, for tests and embedding
- YamlWorkflowStore: a single YAML (or JSON) file with
  ``workflows`` and ``activeWorkflowId`` keys
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple, Union

import yaml

from ..errors import AgentFlowError
from .loader import parse_workflow, parse_workflow_file_data, read_workflow_file
from .models import WorkflowDefinition

logger = logging.getLogger(__name__)


class WorkflowNotFoundError(AgentFlowError):
    """Raised when a workflow id does not exist in the store"""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


def slugify(name: str) -> str:
    """Lowercase, alphanumerics separated by single dashes"""
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "workflow"


def generate_workflow_id(name: str) -> str:
    """Slug of the name plus a millisecond timestamp"""
    return f"{slugify(name)}-{int(time.time() * 1000)}"


class BaseWorkflowStore(ABC):
    """
    Workflow CRUD on top of a storage backend.

    Subclasses provide _read() and _write(); everything else is shared.
    """

    @abstractmethod
    async def _read(self) -> Tuple[List[WorkflowDefinition], Optional[str]]:
        """Return (workflows, active_workflow_id)"""
        pass

    @abstractmethod
    async def _write(self, workflows: List[WorkflowDefinition], active_id: Optional[str]) -> None:
        pass

    # ===== WorkflowStoreProtocol =====

    async def load_all(self) -> List[WorkflowDefinition]:
        workflows, _ = await self._read()
        return workflows

    async def save(self, workflows: List[WorkflowDefinition]) -> None:
        _, active_id = await self._read()
        if active_id and not any(w.id == active_id for w in workflows):
            active_id = None
        await self._write(list(workflows), active_id)

    async def set_active(self, workflow_id: Optional[str]) -> None:
        """
        Mark a workflow as the active one (None clears it).

        Raises:
            WorkflowNotFoundError: If the id is unknown
        """
        workflows, _ = await self._read()
        if workflow_id is not None and not any(w.id == workflow_id for w in workflows):
            raise WorkflowNotFoundError(workflow_id)

        for workflow in workflows:
            workflow.active = workflow.id == workflow_id
        await self._write(workflows, workflow_id)
        logger.info(f"Active workflow set to {workflow_id}")

    async def get_active(self) -> Optional[WorkflowDefinition]:
        workflows, active_id = await self._read()
        if not active_id:
            return None
        return next((w for w in workflows if w.id == active_id), None)

    # ===== CRUD =====

    async def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        workflows, _ = await self._read()
        return next((w for w in workflows if w.id == workflow_id), None)

    async def create(self, data: Union[Dict[str, Any], WorkflowDefinition]) -> WorkflowDefinition:
        """
        Create a workflow. The id is always generated from the name.

        Args:
            data: Workflow dict (name, nodes, edges, ...) or definition
        """
        if isinstance(data, WorkflowDefinition):
            data = data.to_dict()

        now = datetime.now()
        workflow = parse_workflow({
            **data,
            "id": generate_workflow_id(data.get("name", "")),
            "name": data.get("name") or "Untitled workflow",
            "active": False,
        })
        workflow.created_at = now
        workflow.updated_at = now

        workflows, active_id = await self._read()
        workflows.append(workflow)
        await self._write(workflows, active_id)

        logger.info(f"Created workflow '{workflow.name}' ({workflow.id})")
        return workflow

    async def update(self, workflow_id: str, updates: Dict[str, Any]) -> WorkflowDefinition:
        """
        Apply updates to a workflow. The id cannot change.

        Raises:
            WorkflowNotFoundError: If the id is unknown
        """
        workflows, active_id = await self._read()
        for index, existing in enumerate(workflows):
            if existing.id != workflow_id:
                continue

            merged = {**existing.to_dict(), **updates, "id": workflow_id}
            workflow = parse_workflow(merged)
            workflow.created_at = existing.created_at
            workflow.updated_at = datetime.now()
            workflow.active = workflow_id == active_id
            workflows[index] = workflow

            await self._write(workflows, active_id)
            logger.info(f"Updated workflow {workflow_id}")
            return workflow

        raise WorkflowNotFoundError(workflow_id)

    async def delete(self, workflow_id: str) -> None:
        """
        Delete a workflow, clearing the active id if it pointed to it.

        Raises:
            WorkflowNotFoundError: If the id is unknown
        """
        workflows, active_id = await self._read()
        remaining = [w for w in workflows if w.id != workflow_id]
        if len(remaining) == len(workflows):
            raise WorkflowNotFoundError(workflow_id)

        if active_id == workflow_id:
            active_id = None
        await self._write(remaining, active_id)
        logger.info(f"Deleted workflow {workflow_id}")


class MemoryWorkflowStore(BaseWorkflowStore):
    """
    In-memory workflow store.

    Example:
        store = MemoryWorkflowStore([workflow])
        await store.set_active(workflow.id)
    """

    def __init__(self, workflows: Optional[List[WorkflowDefinition]] = None, active_id: Optional[str] = None):
        self._workflows: List[WorkflowDefinition] = list(workflows or [])
        self._active_id = active_id

    async def _read(self) -> Tuple[List[WorkflowDefinition], Optional[str]]:
        return list(self._workflows), self._active_id

    async def _write(self, workflows: List[WorkflowDefinition], active_id: Optional[str]) -> None:
        self._workflows = list(workflows)
        self._active_id = active_id


class YamlWorkflowStore(BaseWorkflowStore):
    """
    Workflow store backed by one YAML file.

    File format:
        activeWorkflowId: translate-1700000000000
        workflows:
          - id: translate-1700000000000
            name: Translate
            nodes: [...]
            edges: [...]

    A missing file reads as an empty store.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def _read(self) -> Tuple[List[WorkflowDefinition], Optional[str]]:
        if not self.path.exists():
            return [], None
        data = read_workflow_file(self.path)
        return parse_workflow_file_data(data, source=str(self.path))

    async def _write(self, workflows: List[WorkflowDefinition], active_id: Optional[str]) -> None:
        data = {
            "activeWorkflowId": active_id,
            "updatedAt": datetime.now().isoformat(),
            "workflows": [w.to_dict() for w in workflows],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
