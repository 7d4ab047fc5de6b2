"""
AgentFlow Application - Single entry point for routing chat messages to agents.

Usage:
    from agentflow import AgentFlow

    app = AgentFlow("config.yaml")
    result = await app.chat("translate this to English: bom dia")
    print(result.agent_name, result.response)

Config file (``${VAR}`` is replaced from the environment):

    agents: agents.yaml
    workflows: workflows.yaml
    llm:
      provider: openai
      model: gpt-4o-mini
      api_key: ${OPENAI_API_KEY}
    selector:
      creation_agent: Code Analyzer
      fallback_agent: General Assistant
    conditions:
      evaluator: expression   # or: llm
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .agents import AgentRegistry, AgentSelector, AgentService, YamlAgentStore
from .constants import CREATION_AGENT_NAME, FALLBACK_AGENT_NAME
from .events import LoggingEventSink
from .llm import LiteLLMClient, LLMAgentProvider, LLMConfig
from .protocols import EventSinkProtocol, LLMClientProtocol
from .templates import chain_variables, substitute
from .workflow import (
    BaseWorkflowStore,
    ExpressionConditionEvaluator,
    LLMConditionEvaluator,
    MemoryWorkflowStore,
    WorkflowEngine,
    WorkflowNotFoundError,
    YamlWorkflowStore,
)

logger = logging.getLogger(__name__)


def _load_config(path: str) -> dict:
    """Read YAML config file with ${VAR} environment variable substitution."""
    import yaml

    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    # Replace ${VAR} with environment variable values
    def _replace_env(match):
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ValueError(
                f"Environment variable '{var_name}' not set "
                f"(referenced in config file '{path}')"
            )
        return value

    resolved = re.sub(r"\$\{(\w+)\}", _replace_env, raw)
    return yaml.safe_load(resolved) or {}


@dataclass
class ChatResult:
    """Answer to one chat message"""
    response: str
    success: bool = True
    agent_name: Optional[str] = None
    error: Optional[str] = None

    # Set when the message went through the active workflow
    workflow_id: Optional[str] = None
    path: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "success": self.success,
            "agent_name": self.agent_name,
            "error": self.error,
            "workflow_id": self.workflow_id,
            "path": list(self.path),
        }


class AgentFlow:
    """
    AgentFlow application entry point.

    Sync constructor reads config; async initialization is deferred
    to the first call that needs it.

    Args:
        config: Path to YAML configuration file, or an already-loaded dict.
        llm_client: Optional client to use instead of building a LiteLLMClient.
        event_sink: Optional sink for workflow events (defaults to logging).

    Example:
        app = AgentFlow("config.yaml")
        result = await app.chat("fix this code")
    """

    def __init__(
        self,
        config: Union[str, Dict[str, Any]],
        llm_client: Optional[LLMClientProtocol] = None,
        event_sink: Optional[EventSinkProtocol] = None,
    ):
        if isinstance(config, dict):
            self._config = dict(config)
            self._base_dir = Path.cwd()
        else:
            self._config = _load_config(config)
            self._base_dir = Path(config).resolve().parent
        self._initialized = False

        # Validate required fields
        if not self._config.get("agents"):
            raise ValueError("Missing required config field: 'agents'")
        llm_cfg = self._config.get("llm", {})
        if llm_client is None and (not llm_cfg.get("provider") or not llm_cfg.get("model")):
            raise ValueError("Missing required config fields: 'llm.provider' and 'llm.model'")
        evaluator = self._config.get("conditions", {}).get("evaluator", "expression")
        if evaluator not in ("expression", "llm"):
            raise ValueError(f"Invalid 'conditions.evaluator': {evaluator!r} (expected expression or llm)")

        self._llm_client = llm_client
        self._event_sink = event_sink

        # Will be set during lazy initialization
        self._registry: Optional[AgentRegistry] = None
        self._selector: Optional[AgentSelector] = None
        self._agent_service: Optional[AgentService] = None
        self._workflow_store: Optional[BaseWorkflowStore] = None
        self._provider: Optional[LLMAgentProvider] = None
        self._engine: Optional[WorkflowEngine] = None

    def _resolve_path(self, value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else self._base_dir / path

    async def _ensure_initialized(self) -> None:
        """Lazy initialization, runs once."""
        if self._initialized:
            return

        cfg = self._config

        # 1. LLM client
        if self._llm_client is None:
            llm_cfg = cfg["llm"]
            llm_config = LLMConfig(
                model=llm_cfg["model"],
                api_key=llm_cfg.get("api_key"),
                base_url=llm_cfg.get("base_url"),
            )
            self._llm_client = LiteLLMClient(config=llm_config, provider_name=llm_cfg["provider"])
            logger.info(f"LLM client: provider={llm_cfg['provider']}, model={llm_cfg['model']}")

        # 2. Agents
        selector_cfg = cfg.get("selector", {})
        self._registry = AgentRegistry(
            creation_agent_name=selector_cfg.get("creation_agent", CREATION_AGENT_NAME),
            fallback_agent_name=selector_cfg.get("fallback_agent", FALLBACK_AGENT_NAME),
        )
        agent_store = YamlAgentStore(self._resolve_path(cfg["agents"]))
        await self._registry.load(agent_store)
        self._selector = AgentSelector(self._registry)
        self._agent_service = AgentService(agent_store, self._registry)

        # 3. Workflows
        if cfg.get("workflows"):
            self._workflow_store = YamlWorkflowStore(self._resolve_path(cfg["workflows"]))
        else:
            self._workflow_store = MemoryWorkflowStore()

        # 4. Engine
        self._provider = LLMAgentProvider(self._llm_client)
        if cfg.get("conditions", {}).get("evaluator") == "llm":
            condition_evaluator = LLMConditionEvaluator(self._llm_client)
        else:
            condition_evaluator = ExpressionConditionEvaluator()
        self._engine = WorkflowEngine(
            registry=self._registry,
            provider=self._provider,
            condition_evaluator=condition_evaluator,
            event_sink=self._event_sink or LoggingEventSink(level=logging.DEBUG),
        )

        self._initialized = True
        logger.info(f"AgentFlow initialized with {len(self._registry)} agent(s)")

    @property
    def config(self) -> dict:
        """Return a copy of the raw configuration dict."""
        return dict(self._config)

    async def shutdown(self) -> None:
        """Release the LLM client and drop cached state."""
        if not self._initialized:
            return
        try:
            close = getattr(self._llm_client, "close", None)
            if close is not None:
                await close()
        except Exception as e:
            logger.warning(f"Error during shutdown: {e}")
        finally:
            self._initialized = False
            self._registry = None
            self._selector = None
            self._agent_service = None
            self._workflow_store = None
            self._provider = None
            self._engine = None
        logger.info("AgentFlow shut down")

    # ── Components ──

    async def registry(self) -> AgentRegistry:
        await self._ensure_initialized()
        return self._registry

    async def agent_service(self) -> AgentService:
        await self._ensure_initialized()
        return self._agent_service

    async def workflow_store(self) -> BaseWorkflowStore:
        await self._ensure_initialized()
        return self._workflow_store

    async def delete_agent(self, name: str) -> None:
        """Delete an agent and drop its cached provider handle."""
        await self._ensure_initialized()
        await self._agent_service.delete_agent(name)
        self._provider.forget(name)

    # ── Chat ──

    async def chat(self, message: str) -> ChatResult:
        """
        Answer a message.

        Goes through the active workflow when one is set, otherwise through
        the agent selector.
        """
        await self._ensure_initialized()

        active = await self._workflow_store.get_active()
        if active is not None:
            return await self._run(active.id, message)

        agent = self._selector.select(message)
        logger.info(f"Routing message to agent '{agent.name}'")

        runtime_agent = agent
        instructions = substitute(agent.instructions, chain_variables(message))
        if instructions != agent.instructions:
            runtime_agent = replace(agent, instructions=instructions)

        handle = await self._provider.ensure_agent(runtime_agent)
        dispatch = await self._provider.dispatch(handle, message)
        return ChatResult(
            response=dispatch.response_text,
            success=dispatch.success,
            agent_name=agent.name,
            error=dispatch.error,
        )

    async def run_workflow(self, workflow_id: str, message: str) -> ChatResult:
        """
        Run a specific workflow.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
        """
        await self._ensure_initialized()
        return await self._run(workflow_id, message)

    async def _run(self, workflow_id: str, message: str) -> ChatResult:
        workflow = await self._workflow_store.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        outcome = await self._engine.run(workflow, message)
        last = outcome.result if isinstance(outcome.result, dict) else {}
        success = outcome.success and last.get("success", True) is not False
        return ChatResult(
            response=str(last.get("response") or ""),
            success=success,
            agent_name=last.get("agent_name"),
            error=outcome.error or last.get("error"),
            workflow_id=workflow.id,
            path=list(outcome.path),
        )
