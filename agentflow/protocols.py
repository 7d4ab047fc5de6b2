"""
AgentFlow Protocols - Abstract interfaces for dependency injection

These protocols define the contracts that external implementations must fulfill.
The selector and workflow engine only talk to collaborators through them, so any
LLM provider, configuration store or event sink can be plugged in.
"""

from typing import Protocol, List, Dict, Any, Optional, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from .agents.models import AgentDefinition
    from .events import WorkflowEvent
    from .llm.base import AgentHandle, DispatchResult
    from .workflow.models import ExecutionContext, WorkflowDefinition


@runtime_checkable
class LLMClientProtocol(Protocol):
    """
    Abstract interface for LLM clients

    Example:
        class MyLLMClient:
            async def chat_completion(
                self,
                messages: List[Dict[str, Any]],
                tools: Optional[List[Dict]] = None,
                config: Optional[Dict] = None
            ) -> Any:
                ...
    """

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict]] = None,
        config: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Call LLM for chat completion

        Args:
            messages: List of message dicts with 'role' and 'content'
            tools: Optional list of tool schemas (OpenAI format)
            config: Optional configuration (model, temperature, etc.)

        Returns:
            Response object exposing the reply text as ``content``
        """
        ...


@runtime_checkable
class LLMProviderProtocol(Protocol):
    """
    The single dispatch contract the core needs from an LLM provider.

    Example:
        handle = await provider.ensure_agent(definition)
        result = await provider.dispatch(handle, "hello")
        print(result.response_text)
    """

    async def ensure_agent(self, definition: "AgentDefinition") -> "AgentHandle":
        """Return a reusable handle for the agent, creating it if needed"""
        ...

    async def dispatch(self, handle: "AgentHandle", message: str) -> "DispatchResult":
        """Send a message to the agent. Failures are reported in the result."""
        ...


@runtime_checkable
class AgentStoreProtocol(Protocol):
    """Persistent source of agent definitions"""

    async def load_all(self) -> List["AgentDefinition"]:
        """Load every agent definition"""
        ...

    async def save(self, definitions: List["AgentDefinition"]) -> None:
        """Replace the stored agent definitions"""
        ...


@runtime_checkable
class WorkflowStoreProtocol(Protocol):
    """Persistent source of workflow definitions and the active workflow id"""

    async def load_all(self) -> List["WorkflowDefinition"]:
        """Load every workflow definition"""
        ...

    async def save(self, workflows: List["WorkflowDefinition"]) -> None:
        """Replace the stored workflows"""
        ...

    async def set_active(self, workflow_id: Optional[str]) -> None:
        """Mark a workflow as active (None clears it)"""
        ...

    async def get_active(self) -> Optional["WorkflowDefinition"]:
        """Get the active workflow, if any"""
        ...


@runtime_checkable
class EventSinkProtocol(Protocol):
    """Receives workflow observability events"""

    def emit(self, event: "WorkflowEvent") -> None:
        """Handle one event"""
        ...


@runtime_checkable
class ConditionEvaluatorProtocol(Protocol):
    """Decides if-else and while conditions"""

    async def evaluate(
        self,
        condition: str,
        context: "ExecutionContext",
        variables: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Evaluate a condition against the run context"""
        ...
