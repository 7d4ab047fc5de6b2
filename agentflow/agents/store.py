"""
AgentFlow Agent Stores - Where agent definitions are persisted

Implementations of AgentStoreProtocol:
- MemoryAgentStore: in-process list
- YamlAgentStore: YAML file with an ``agents`` list and optional ``tool_sets``

Tool sets are named groups of tools. An agent listing a set name in its
``tools`` gets the set's members instead (deduplicated, order preserved):

    tool_sets:
      files: [read_file, write_file, list_dir]
    agents:
      - name: Code Analyzer
        tools: [files, run_tests]
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import yaml

from ..errors import ConfigurationError
from .models import AgentDefinition

logger = logging.getLogger(__name__)


def expand_tools(tools: List[str], tool_sets: Dict[str, List[str]]) -> List[str]:
    """Replace tool-set names with their members and drop duplicates"""
    expanded: List[str] = []
    for name in tools:
        members = tool_sets.get(name)
        for tool in (members if members is not None else [name]):
            if tool not in expanded:
                expanded.append(tool)
    return expanded


class MemoryAgentStore:
    """In-memory agent store"""

    def __init__(self, definitions: Optional[List[AgentDefinition]] = None):
        self._definitions: List[AgentDefinition] = list(definitions or [])

    async def load_all(self) -> List[AgentDefinition]:
        return list(self._definitions)

    async def save(self, definitions: List[AgentDefinition]) -> None:
        self._definitions = list(definitions)


class YamlAgentStore:
    """
    Agent store backed by one YAML (or JSON) file.

    Example:
        store = YamlAgentStore("agents.yaml")
        registry = AgentRegistry()
        await registry.load(store)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.tool_sets: Dict[str, List[str]] = {}
        # Tools as written in the file, so saving keeps set names
        self._raw_tools: Dict[str, List[str]] = {}

    def _read_raw(self) -> Dict[str, Any]:
        if not self.path.exists():
            raise ConfigurationError(f"Agents file not found: {self.path}")

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.path}: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("agents", []), list):
            raise ConfigurationError(f"{self.path}: expected a mapping with an 'agents' list")
        return data

    async def load_all(self) -> List[AgentDefinition]:
        """
        Load agent definitions, expanding tool sets.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        data = self._read_raw()

        tool_sets = data.get("tool_sets", data.get("toolSets")) or {}
        if not isinstance(tool_sets, dict):
            raise ConfigurationError(f"{self.path}: 'tool_sets' must be a mapping")
        self.tool_sets = {str(k): [str(t) for t in (v or [])] for k, v in tool_sets.items()}

        definitions = []
        self._raw_tools = {}
        for entry in data.get("agents") or []:
            definition = AgentDefinition.from_dict(entry)
            self._raw_tools[definition.name] = list(definition.tools)
            definition.tools = expand_tools(definition.tools, self.tool_sets)
            definitions.append(definition)

        logger.info(f"Loaded {len(definitions)} agent(s) from {self.path}")
        return definitions

    async def save(self, definitions: List[AgentDefinition]) -> None:
        """Write definitions back, keeping the file's tool sets"""
        agents = []
        for definition in definitions:
            entry = definition.to_dict()
            raw = self._raw_tools.get(definition.name)
            if raw is not None and expand_tools(raw, self.tool_sets) == definition.tools:
                entry["tools"] = list(raw)
            agents.append(entry)

        data: Dict[str, Any] = {}
        if self.tool_sets:
            data["tool_sets"] = self.tool_sets
        data["agents"] = agents

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)

        logger.info(f"Saved {len(agents)} agent(s) to {self.path}")
