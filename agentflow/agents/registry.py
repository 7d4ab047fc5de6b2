"""
Agent Registry - In-memory snapshot of agent definitions

The registry never mutates a published snapshot. Every reload builds a new
RegistrySnapshot (priority-sorted list, name index, selector shortcuts) and
swaps a single reference, so a reader holding a snapshot always sees a
consistent view.

Mutations (create/update/delete/reload) must be serialized by the caller;
AgentService does this with an asyncio.Lock.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..constants import (
    CREATION_AGENT_NAME,
    DEFAULT_PRIORITY,
    EXTENSION_GROUP_ID,
    EXTENSION_GROUP_NAME,
    FALLBACK_AGENT_NAME,
)
from ..errors import ConfigurationError
from ..protocols import AgentStoreProtocol
from .models import AgentDefinition, AgentRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrySnapshot:
    """Immutable view of the registry at one point in time"""
    agents: Tuple[AgentDefinition, ...] = ()
    sorted_agents: Tuple[AgentDefinition, ...] = ()
    by_name: Mapping[str, AgentDefinition] = field(default_factory=lambda: MappingProxyType({}))

    # O(1) shortcuts used by the selector
    creation_agent: Optional[AgentDefinition] = None
    fallback_agent: Optional[AgentDefinition] = None
    main_selector: Optional[AgentDefinition] = None

    # sorted_agents without the mainSelector entry
    selectable: Tuple[AgentDefinition, ...] = ()

    version: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.agents

    def get(self, name: str) -> Optional[AgentDefinition]:
        return self.by_name.get(name)

    @classmethod
    def build(
        cls,
        definitions: Iterable[AgentDefinition],
        creation_agent_name: str = CREATION_AGENT_NAME,
        fallback_agent_name: str = FALLBACK_AGENT_NAME,
        version: int = 0,
    ) -> "RegistrySnapshot":
        """
        Build a snapshot from agent definitions.

        Raises:
            ConfigurationError: If two agents share a name
        """
        agents = tuple(definitions)

        by_name: Dict[str, AgentDefinition] = {}
        for agent in agents:
            if agent.name in by_name:
                raise ConfigurationError(f"Duplicate agent name: '{agent.name}'")
            by_name[agent.name] = agent

        # sorted() is stable: equal priorities keep configuration order
        sorted_agents = tuple(sorted(agents, key=lambda a: a.priority))

        main_selector = next((a for a in sorted_agents if a.role == AgentRole.MAIN_SELECTOR), None)

        fallback = by_name.get(fallback_agent_name)
        if fallback is None:
            fallback = next((a for a in sorted_agents if a.role == AgentRole.FALLBACK), None)
        if fallback is None:
            fallback = next((a for a in sorted_agents if a.priority == DEFAULT_PRIORITY), None)

        return cls(
            agents=agents,
            sorted_agents=sorted_agents,
            by_name=MappingProxyType(by_name),
            creation_agent=by_name.get(creation_agent_name),
            fallback_agent=fallback,
            main_selector=main_selector,
            selectable=tuple(a for a in sorted_agents if a is not main_selector),
            version=version,
        )


@dataclass
class AgentGroup:
    """Agents sharing a group_id, with their orchestrator if one is configured"""
    group_id: str
    group_name: str
    orchestrator: Optional[AgentDefinition] = None
    agents: List[AgentDefinition] = field(default_factory=list)


class AgentRegistry:
    """
    Runtime registry of agent definitions.

    Example:
        registry = AgentRegistry()
        await registry.load(store)

        snapshot = registry.snapshot()
        agent = snapshot.get("Translator")

        # After editing the store
        await registry.load(store)
    """

    def __init__(
        self,
        creation_agent_name: str = CREATION_AGENT_NAME,
        fallback_agent_name: str = FALLBACK_AGENT_NAME,
    ):
        """
        Initialize agent registry

        Args:
            creation_agent_name: Agent tried first for creation requests
            fallback_agent_name: Preferred general fallback agent
        """
        self.creation_agent_name = creation_agent_name
        self.fallback_agent_name = fallback_agent_name
        self._snapshot = RegistrySnapshot()

    def snapshot(self) -> RegistrySnapshot:
        """Return the current snapshot. Hold on to it for a consistent view."""
        return self._snapshot

    def reload(self, definitions: Iterable[AgentDefinition]) -> RegistrySnapshot:
        """
        Rebuild the snapshot from definitions and publish it.

        On error the previous snapshot stays in place.
        """
        snapshot = RegistrySnapshot.build(
            definitions,
            creation_agent_name=self.creation_agent_name,
            fallback_agent_name=self.fallback_agent_name,
            version=self._snapshot.version + 1,
        )
        self._snapshot = snapshot
        logger.info(f"AgentRegistry loaded {len(snapshot.agents)} agent(s) (version {snapshot.version})")
        return snapshot

    async def load(self, store: AgentStoreProtocol) -> RegistrySnapshot:
        """Load all definitions from a configuration store and publish them"""
        definitions = await store.load_all()
        return self.reload(definitions)

    # ===== Read access =====

    def get(self, name: str) -> Optional[AgentDefinition]:
        """Get an agent definition by name"""
        return self._snapshot.get(name)

    def get_all_agent_names(self) -> List[str]:
        """Get all agent names in priority order"""
        return [a.name for a in self._snapshot.sorted_agents]

    def __len__(self) -> int:
        return len(self._snapshot.agents)

    def groups(self) -> Dict[str, AgentGroup]:
        """
        Group agents by their ``group_id`` extension.

        Orchestrator-role agents become the group's orchestrator, agent-role
        agents its members. Agents without a group_id are not included.
        """
        groups: Dict[str, AgentGroup] = {}

        for agent in self._snapshot.sorted_agents:
            group_id = agent.extensions.get(EXTENSION_GROUP_ID)
            if not group_id or agent.role not in (AgentRole.ORCHESTRATOR, AgentRole.AGENT):
                continue

            group_id = str(group_id)
            group = groups.get(group_id)
            if group is None:
                group_name = agent.extensions.get(EXTENSION_GROUP_NAME) or group_id
                group = AgentGroup(group_id=group_id, group_name=str(group_name))
                groups[group_id] = group

            if agent.role == AgentRole.ORCHESTRATOR:
                if group.orchestrator is None:
                    group.orchestrator = agent
            else:
                group.agents.append(agent)

        return groups
