"""
Agent Selector - Picks the agent that should answer a message

Selection order:
1. Creation requests ("create", "novo", ...) try the creation specialist first
2. Priority scan over every agent except the mainSelector
3. File/data requests get a looser match over orchestrator/agent-role entries
4. The general fallback agent
5. The mainSelector agent
6. The lowest-precedence agent
"""

import logging
from typing import List, Optional, Sequence

from ..constants import CREATION_KEYWORDS, DOMAIN_KEYWORDS
from ..errors import ConfigurationError
from ..rules import contains_any, evaluate, matched_keywords
from .models import AgentDefinition, AgentRole
from .registry import AgentRegistry, RegistrySnapshot

logger = logging.getLogger(__name__)


class AgentSelector:
    """
    Chooses one agent for a message from a registry snapshot.

    Selection is a deterministic function of (message, snapshot).

    Example:
        selector = AgentSelector(registry)
        agent = selector.select("fix this code")
    """

    def __init__(
        self,
        registry: AgentRegistry,
        creation_keywords: Sequence[str] = CREATION_KEYWORDS,
        domain_keywords: Sequence[str] = DOMAIN_KEYWORDS,
    ):
        self.registry = registry
        self.creation_keywords = tuple(creation_keywords)
        self.domain_keywords = tuple(domain_keywords)

    def select(self, message: str, snapshot: Optional[RegistrySnapshot] = None) -> AgentDefinition:
        """
        Select the agent for a message.

        Args:
            message: User message
            snapshot: Snapshot to select from (defaults to the registry's current one)

        Returns:
            The selected AgentDefinition

        Raises:
            ConfigurationError: If no agents are configured
        """
        snapshot = snapshot or self.registry.snapshot()
        if snapshot.is_empty:
            raise ConfigurationError("No agents configured. Check the agents configuration file")

        message = message or ""
        creation = snapshot.creation_agent
        tried_creation = False

        # 1. Creation intent overrides priority
        if creation is not None and contains_any(message, self.creation_keywords):
            tried_creation = True
            if evaluate(creation.should_use, message):
                logger.debug(f"Selected creation agent '{creation.name}'")
                return creation

        # 2. Priority scan
        for agent in snapshot.selectable:
            if tried_creation and agent is creation:
                continue
            if evaluate(agent.should_use, message):
                logger.debug(f"Selected agent '{agent.name}' (priority {agent.priority})")
                return agent

        # 3. Domain terms: looser match over orchestrator/agent roles
        domain_terms = matched_keywords(message, self.domain_keywords)
        if domain_terms:
            agent = self._select_by_domain(snapshot, domain_terms)
            if agent is not None:
                logger.debug(f"Selected agent '{agent.name}' by domain terms {domain_terms}")
                return agent

        # 4-6. Fallbacks
        if snapshot.fallback_agent is not None:
            return snapshot.fallback_agent
        if snapshot.main_selector is not None:
            return snapshot.main_selector
        return snapshot.sorted_agents[-1]

    @staticmethod
    def _select_by_domain(
        snapshot: RegistrySnapshot,
        domain_terms: List[str],
    ) -> Optional[AgentDefinition]:
        """
        First orchestrator/agent-role entry that matches the domain terms.

        An entry matches when its rule accepts the domain terms on their own,
        or when its description mentions one of them.
        """
        probe = " ".join(domain_terms)
        for agent in snapshot.selectable:
            if agent.role not in (AgentRole.ORCHESTRATOR, AgentRole.AGENT):
                continue
            if evaluate(agent.should_use, probe) or contains_any(agent.description, domain_terms):
                return agent
        return None
