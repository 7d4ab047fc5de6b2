"""
AgentFlow LLM - Chat-completion clients and the agent dispatch provider

Example usage:
    from agentflow.llm import LiteLLMClient, LLMConfig, LLMAgentProvider

    client = LiteLLMClient(config=LLMConfig(model="gpt-4o-mini"), provider_name="openai")
    provider = LLMAgentProvider(client)
"""

from .base import (
    AgentHandle,
    BaseLLMClient,
    DispatchResult,
    LLMConfig,
    LLMResponse,
    StopReason,
    Usage,
)
from .litellm_client import LiteLLMClient, build_litellm_model_string
from .provider import LLMAgentProvider

__all__ = [
    "BaseLLMClient",
    "LLMConfig",
    "LLMResponse",
    "StopReason",
    "Usage",
    "LiteLLMClient",
    "build_litellm_model_string",
    "AgentHandle",
    "DispatchResult",
    "LLMAgentProvider",
]
