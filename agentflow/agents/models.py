"""
AgentFlow Agent Models - Agent definitions as loaded from configuration
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..constants import DEFAULT_PRIORITY, MAX_EXTENSION_KEYS
from ..errors import ConfigurationError
from ..rules import DefaultRule, RuleNode, parse_rule, rule_to_dict

logger = logging.getLogger(__name__)

ExtensionValue = Union[str, int, float, bool, None]

# Keys consumed by from_dict; anything else is routed to extensions.
_STANDARD_FIELDS = {
    "name", "description", "instructions", "model", "tools",
    "shouldUse", "should_use", "priority", "role",
    "providerAgentId", "provider_agent_id", "stackspotAgentId",
    "extensions",
}


class AgentRole(str, Enum):
    """Role metadata used by the selector"""
    MAIN_SELECTOR = "mainSelector"
    ORCHESTRATOR = "orchestrator"
    AGENT = "agent"
    FALLBACK = "fallback"


def validate_extensions(extensions: Dict[str, Any]) -> Dict[str, ExtensionValue]:
    """
    Check an extension map: string keys, scalar values, bounded size.

    Raises:
        ConfigurationError: If the map breaks any of those rules
    """
    if not isinstance(extensions, dict):
        raise ConfigurationError("Agent extensions must be a mapping")
    if len(extensions) > MAX_EXTENSION_KEYS:
        raise ConfigurationError(
            f"Agent extensions exceed {MAX_EXTENSION_KEYS} keys ({len(extensions)} given)"
        )
    for key, value in extensions.items():
        if not isinstance(key, str):
            raise ConfigurationError(f"Extension key must be a string, got {key!r}")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise ConfigurationError(
                f"Extension '{key}' must be a scalar value, got {type(value).__name__}"
            )
    return dict(extensions)


@dataclass
class AgentDefinition:
    """
    A configured agent persona.

    Example:
        AgentDefinition(
            name="Translator",
            description="Translates text to English",
            instructions="Translate: {{ input_user }}",
            model="gpt-4o-mini",
            should_use=parse_rule({"type": "keywords", "keywords": ["translate"]}),
            priority=10,
        )
    """
    name: str
    description: str = ""
    instructions: str = ""
    model: str = ""
    tools: List[str] = field(default_factory=list)
    should_use: RuleNode = field(default_factory=DefaultRule)
    priority: int = DEFAULT_PRIORITY
    role: Optional[AgentRole] = None

    # Handle of this agent on the external LLM provider, if pre-provisioned
    provider_agent_id: Optional[str] = None

    # Bounded open-ended metadata (e.g. group_id, group_name)
    extensions: Dict[str, ExtensionValue] = field(default_factory=dict)

    def __post_init__(self):
        self.extensions = validate_extensions(self.extensions)

    @property
    def is_main_selector(self) -> bool:
        return self.role == AgentRole.MAIN_SELECTOR

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the serialized (file) form"""
        data: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "instructions": self.instructions,
            "model": self.model,
            "tools": list(self.tools),
            "shouldUse": rule_to_dict(self.should_use),
            "priority": self.priority,
        }
        if self.role is not None:
            data["role"] = self.role.value
        if self.provider_agent_id:
            data["providerAgentId"] = self.provider_agent_id
        if self.extensions:
            data["extensions"] = dict(self.extensions)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentDefinition":
        """
        Create an AgentDefinition from its serialized form.

        Accepts camelCase (``shouldUse``) and snake_case (``should_use``)
        keys. Unknown top-level scalar keys are folded into ``extensions``.
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"Agent entry must be a mapping, got {type(data).__name__}")

        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ConfigurationError("Agent entry is missing 'name'")

        tools = data.get("tools") or []
        if isinstance(tools, str):
            tools = [tools]

        priority = data.get("priority")
        if not isinstance(priority, int) or isinstance(priority, bool):
            priority = DEFAULT_PRIORITY

        role = None
        raw_role = data.get("role")
        if raw_role:
            try:
                role = AgentRole(raw_role)
            except ValueError:
                logger.warning(f"Agent '{name}' has unknown role '{raw_role}', ignoring")

        rule_data = data.get("shouldUse", data.get("should_use"))

        extensions = dict(data.get("extensions") or {})
        for key, value in data.items():
            if key in _STANDARD_FIELDS or key in extensions:
                continue
            if value is None or isinstance(value, (str, int, float, bool)):
                extensions[key] = value
            else:
                logger.debug(f"Agent '{name}': dropping non-scalar field '{key}'")

        return cls(
            name=name,
            description=data.get("description") or "",
            instructions=data.get("instructions") or "",
            model=data.get("model") or "",
            tools=[str(t) for t in tools if t],
            should_use=parse_rule(rule_data),
            priority=priority,
            role=role,
            provider_agent_id=(
                data.get("providerAgentId")
                or data.get("provider_agent_id")
                or data.get("stackspotAgentId")
            ),
            extensions=extensions,
        )
