"""
AgentFlow LLM Agent Provider - Runs configured agents on a chat-completion client

LLMAgentProvider implements LLMProviderProtocol:
- ensure_agent(definition) returns a cached AgentHandle, refreshed when the
  agent's model, instructions or tools change
- dispatch(handle, message) sends the instructions as the system prompt and
  the message as the user turn; failures come back as DispatchResult(success=False)
"""

import logging
import uuid
from typing import Dict, Any, List

from ..agents.models import AgentDefinition
from ..protocols import LLMClientProtocol
from .base import AgentHandle, DispatchResult

logger = logging.getLogger(__name__)


class LLMAgentProvider:
    """
    LLM provider backed by any LLMClientProtocol implementation.

    Example:
        provider = LLMAgentProvider(LiteLLMClient(model="gpt-4o-mini"))
        handle = await provider.ensure_agent(definition)
        result = await provider.dispatch(handle, "hello")
    """

    def __init__(self, llm_client: LLMClientProtocol):
        self.llm_client = llm_client
        self._handles: Dict[str, AgentHandle] = {}

    async def ensure_agent(self, definition: AgentDefinition) -> AgentHandle:
        """Get or create the handle for an agent"""
        cached = self._handles.get(definition.name)
        if (
            cached is not None
            and cached.model == definition.model
            and cached.instructions == definition.instructions
            and cached.tools == list(definition.tools)
        ):
            return cached

        agent_id = definition.provider_agent_id or f"agent_{uuid.uuid4().hex[:12]}"
        handle = AgentHandle(
            agent_id=agent_id,
            name=definition.name,
            model=definition.model,
            instructions=definition.instructions,
            tools=list(definition.tools),
        )
        self._handles[definition.name] = handle

        if cached is None:
            logger.debug(f"Created agent handle '{definition.name}' ({agent_id})")
        else:
            logger.debug(f"Refreshed agent handle '{definition.name}' ({agent_id})")
        return handle

    async def dispatch(self, handle: AgentHandle, message: str) -> DispatchResult:
        """Send a message to the agent and return its textual response"""
        messages: List[Dict[str, Any]] = []
        if handle.instructions:
            messages.append({"role": "system", "content": handle.instructions})
        messages.append({"role": "user", "content": message or ""})

        config = {"model": handle.model} if handle.model else None

        try:
            response = await self.llm_client.chat_completion(messages=messages, config=config)
        except Exception as e:
            logger.error(f"Dispatch to agent '{handle.name}' failed: {e}")
            return DispatchResult(response_text="", success=False, error=str(e))

        content = getattr(response, "content", None)
        if content is None and isinstance(response, dict):
            content = response.get("content")

        return DispatchResult(response_text=content or "", success=True)

    def forget(self, name: str) -> None:
        """Drop the cached handle for an agent (e.g. after it was deleted)"""
        self._handles.pop(name, None)
