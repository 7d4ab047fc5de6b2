"""
AgentFlow Agent Service - Create, update and delete agent definitions

Every mutation is serialized by an asyncio.Lock, written to the store, and
followed by a registry rebuild so readers switch to the new snapshot at once.
"""

import asyncio
import logging
from typing import Dict, Any, List

from ..errors import AgentFlowError, ConfigurationError
from ..protocols import AgentStoreProtocol
from .models import AgentDefinition
from .registry import AgentRegistry, RegistrySnapshot

logger = logging.getLogger(__name__)

_REQUIRED_TEXT_FIELDS = ("name", "description", "instructions", "model")

# snake_case payload keys -> serialized keys
_KEY_ALIASES = {
    "should_use": "shouldUse",
    "provider_agent_id": "providerAgentId",
}


class AgentCrudError(AgentFlowError):
    """
    Raised by AgentService operations.

    ``status`` follows HTTP conventions: 400 validation, 404 not found,
    409 conflict.
    """

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def _normalize_keys(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {_KEY_ALIASES.get(k, k): v for k, v in payload.items()}


def validate_payload(payload: Dict[str, Any]) -> AgentDefinition:
    """
    Check a create/update payload and build the definition.

    Raises:
        AgentCrudError: (400) If a required field is missing or invalid
    """
    if not isinstance(payload, dict):
        raise AgentCrudError("Agent payload must be an object")

    payload = _normalize_keys(payload)
    for field_name in _REQUIRED_TEXT_FIELDS:
        value = payload.get(field_name)
        if not value or not isinstance(value, str):
            raise AgentCrudError(f'Field "{field_name}" is required for the agent')
    if not payload.get("shouldUse"):
        raise AgentCrudError('Field "shouldUse" is required for the agent')

    try:
        return AgentDefinition.from_dict(payload)
    except ConfigurationError as e:
        raise AgentCrudError(str(e))


class AgentService:
    """
    CRUD over agent definitions.

    Example:
        service = AgentService(YamlAgentStore("agents.yaml"), registry)
        await service.create_agent({
            "name": "Translator",
            "description": "Translates text",
            "instructions": "Translate to English: {{ input_user }}",
            "model": "gpt-4o-mini",
            "shouldUse": {"type": "keywords", "keywords": ["translate"]},
        })
    """

    def __init__(self, store: AgentStoreProtocol, registry: AgentRegistry):
        self.store = store
        self.registry = registry
        self._lock = asyncio.Lock()

    async def list_agents(self) -> List[AgentDefinition]:
        return await self.store.load_all()

    async def get_agent(self, name: str) -> AgentDefinition:
        for definition in await self.store.load_all():
            if definition.name == name:
                return definition
        raise AgentCrudError(f'Agent "{name}" not found', 404)

    async def create_agent(self, payload: Dict[str, Any]) -> AgentDefinition:
        """
        Create an agent.

        Raises:
            AgentCrudError: 400 on invalid payload, 409 if the name is taken
        """
        definition = validate_payload(payload)

        async with self._lock:
            definitions = await self.store.load_all()
            if any(d.name == definition.name for d in definitions):
                raise AgentCrudError(f'An agent named "{definition.name}" already exists', 409)

            definitions.append(definition)
            await self._persist(definitions)

        logger.info(f"Created agent '{definition.name}'")
        return definition

    async def update_agent(self, name: str, updates: Dict[str, Any]) -> AgentDefinition:
        """
        Merge updates into an existing agent. Renaming is allowed.

        Raises:
            AgentCrudError: 400 on invalid payload, 404 if missing, 409 on name conflict
        """
        if not name:
            raise AgentCrudError('Parameter "name" is required')

        async with self._lock:
            definitions = await self.store.load_all()
            index = next((i for i, d in enumerate(definitions) if d.name == name), None)
            if index is None:
                raise AgentCrudError(f'Agent "{name}" not found', 404)

            merged = {**definitions[index].to_dict(), **_normalize_keys(updates or {})}
            merged["name"] = (updates or {}).get("name") or name
            definition = validate_payload(merged)

            if definition.name != name and any(
                i != index and d.name == definition.name for i, d in enumerate(definitions)
            ):
                raise AgentCrudError(f'Another agent is already named "{definition.name}"', 409)

            definitions[index] = definition
            await self._persist(definitions)

        logger.info(f"Updated agent '{name}'")
        return definition

    async def delete_agent(self, name: str) -> None:
        """
        Delete an agent.

        Raises:
            AgentCrudError: 404 if the agent does not exist
        """
        if not name:
            raise AgentCrudError('Parameter "name" is required')

        async with self._lock:
            definitions = await self.store.load_all()
            remaining = [d for d in definitions if d.name != name]
            if len(remaining) == len(definitions):
                raise AgentCrudError(f'Agent "{name}" not found', 404)
            await self._persist(remaining)

        logger.info(f"Deleted agent '{name}'")

    async def reload(self) -> RegistrySnapshot:
        """Rebuild the registry from the store"""
        async with self._lock:
            return await self.registry.load(self.store)

    async def _persist(self, definitions: List[AgentDefinition]) -> None:
        await self.store.save(definitions)
        await self.registry.load(self.store)
