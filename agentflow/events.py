"""
AgentFlow Events - Observability events emitted during workflow runs

This module defines:
- WorkflowEventType and the WorkflowEvent structure
- LoggingEventSink: writes events to the log
- CollectingEventSink: keeps events in memory (tests, UIs that poll)
- emit_safely: delivers an event without letting a sink break a run
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from .protocols import EventSinkProtocol

logger = logging.getLogger(__name__)


class WorkflowEventType(str, Enum):
    """Types of events emitted by the workflow engine"""
    WORKFLOW_START = "workflow_start"
    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    EDGE_EVALUATED = "edge_evaluated"
    WORKFLOW_END = "workflow_end"


@dataclass
class WorkflowEvent:
    """
    Event structure for workflow observability.

    All events have:
    - type: The type of event
    - data: Event-specific data (node id, type, name, result, ...)
    - timestamp: When the event occurred
    - workflow_id: Which workflow run generated the event
    """
    type: WorkflowEventType
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)
    workflow_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization"""
        return {
            "type": self.type.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "workflow_id": self.workflow_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowEvent":
        """Create event from dictionary"""
        return cls(
            type=WorkflowEventType(data["type"]),
            data=data["data"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            workflow_id=data.get("workflow_id"),
        )


class LoggingEventSink:
    """Writes every event to the log at the given level"""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def emit(self, event: WorkflowEvent) -> None:
        node = event.data.get("node_id") or event.data.get("edge_id") or ""
        logger.log(self.level, f"[Workflow {event.workflow_id}] {event.type.value} {node}".rstrip())


class CollectingEventSink:
    """Keeps events in memory"""

    def __init__(self):
        self.events: List[WorkflowEvent] = []

    def emit(self, event: WorkflowEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: WorkflowEventType) -> List[WorkflowEvent]:
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        self.events.clear()


def emit_safely(sink: Optional[EventSinkProtocol], event: WorkflowEvent) -> None:
    """Deliver an event to a sink. Sink failures are logged and ignored."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.warning(f"Event sink failed on {event.type.value}: {e}")
