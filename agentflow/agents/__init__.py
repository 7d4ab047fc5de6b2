"""
AgentFlow Agents - Agent definitions, registry, selection and CRUD

Example usage:
    from agentflow.agents import AgentRegistry, AgentSelector, YamlAgentStore

    registry = AgentRegistry()
    await registry.load(YamlAgentStore("agents.yaml"))

    agent = AgentSelector(registry).select("fix this code")
"""

from .models import AgentDefinition, AgentRole, validate_extensions
from .registry import AgentGroup, AgentRegistry, RegistrySnapshot
from .selector import AgentSelector
from .store import MemoryAgentStore, YamlAgentStore, expand_tools
from .service import AgentCrudError, AgentService, validate_payload

__all__ = [
    "AgentDefinition",
    "AgentRole",
    "validate_extensions",
    "AgentGroup",
    "AgentRegistry",
    "RegistrySnapshot",
    "AgentSelector",
    "MemoryAgentStore",
    "YamlAgentStore",
    "expand_tools",
    "AgentCrudError",
    "AgentService",
    "validate_payload",
]
